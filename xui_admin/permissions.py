"""Access levels of chat users."""
from __future__ import annotations

import logging
from enum import Enum
from typing import Iterable, Optional

from .storage import StorageError, TrustStore

LOGGER = logging.getLogger(__name__)


class AccessType(Enum):
    NONE = "none"
    TRUSTED = "trusted"
    ADMIN = "admin"


class PermissionController:
    """Resolve the access level of a chat user.

    Administrators come from configuration. Trusted users come from the
    trust store; a user added by ``@username`` only is recognised on first
    contact and bound to the real chat id from then on.
    """

    def __init__(self, admin_ids: Iterable[int], store: TrustStore) -> None:
        self.admin_ids = frozenset(int(uid) for uid in admin_ids)
        self.store = store
        LOGGER.info("Initialized permission controller with %d admins", len(self.admin_ids))

    def is_admin(self, user_id: int) -> bool:
        return user_id in self.admin_ids

    def access_type(self, user_id: int, username: Optional[str] = None) -> AccessType:
        if self.is_admin(user_id):
            return AccessType.ADMIN
        if self.store.is_trusted(user_id):
            return AccessType.TRUSTED
        if username and self.store.find_trusted_by_username(username) is not None:
            try:
                self.store.bind_telegram_id(username, user_id)
            except StorageError as exc:
                # Still trusted by username; binding is retried on the next message.
                LOGGER.error("Failed to bind @%s to chat id %s: %s", username, user_id, exc)
            return AccessType.TRUSTED
        LOGGER.debug("user %s has no access", user_id)
        return AccessType.NONE
