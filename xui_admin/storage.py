"""JSON persistence of trusted chat users and the accounts they created.

The whole document is rewritten on every change: it is written to a
``.tmp`` sibling first and then moved over the old file so readers never
see a half written file.
"""
from __future__ import annotations

import json
import logging
import os
import threading
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

LOGGER = logging.getLogger(__name__)

FNV64_OFFSET_BASIS = 0xCBF29CE484222325
FNV64_PRIME = 0x100000001B3
_UINT64_MASK = 0xFFFFFFFFFFFFFFFF
_INT64_MASK = 0x7FFFFFFFFFFFFFFF


class StorageError(RuntimeError):
    """Raised when the trust store cannot be read or written."""


def pseudo_telegram_id(username: str) -> int:
    """Stable placeholder id for a user known only by ``@username``.

    64-bit FNV-1a of the username, masked to a positive signed value. The
    placeholder is replaced by the real chat id on the user's first message.
    """
    value = FNV64_OFFSET_BASIS
    for byte in username.encode("utf-8"):
        value ^= byte
        value = (value * FNV64_PRIME) & _UINT64_MASK
    value &= _INT64_MASK
    return value or 1


@dataclass
class TrustedUser:
    telegram_id: int
    username: str
    added_at: int = 0


@dataclass
class VpnAccount:
    id: int
    username: str
    password: str
    added_by: int
    created_at: int = 0


class TrustStore:
    """Thread-safe JSON-backed store.

    Parameters
    ----------
    path:
        Location of the JSON document. A missing file is an empty store.
    clock:
        Source of the Unix timestamps recorded on new entries.
    """

    def __init__(self, path: str, *, clock: Callable[[], float] = time.time) -> None:
        self.path = Path(path)
        self._clock = clock
        self._lock = threading.Lock()
        self._trusted: List[TrustedUser] = []
        self._accounts: List[VpnAccount] = []
        self._next_id = 1
        try:
            self.load()
        except StorageError as exc:
            LOGGER.warning("Failed to load storage file: %s", exc)

    def load(self) -> None:
        with self._lock:
            if not self.path.exists():
                LOGGER.info("Storage file %s does not exist, starting with empty data", self.path)
                return
            try:
                data = json.loads(self.path.read_text(encoding="utf-8"))
                trusted = [TrustedUser(**item) for item in data.get("trusted_users") or []]
                accounts = [VpnAccount(**item) for item in data.get("vpn_accounts") or []]
                next_id = int(data.get("next_id") or 1)
            except (OSError, ValueError, TypeError, AttributeError) as exc:
                raise StorageError(f"cannot read {self.path}: {exc}") from exc
            self._trusted = trusted
            self._accounts = accounts
            self._next_id = max(next_id, max((a.id for a in accounts), default=0) + 1)

    def _snapshot(self) -> Dict[str, Any]:
        return {
            "trusted_users": [asdict(user) for user in self._trusted],
            "vpn_accounts": [asdict(account) for account in self._accounts],
            "next_id": self._next_id,
        }

    def _restore(self, snapshot: Dict[str, Any]) -> None:
        self._trusted = [TrustedUser(**item) for item in snapshot["trusted_users"]]
        self._accounts = [VpnAccount(**item) for item in snapshot["vpn_accounts"]]
        self._next_id = snapshot["next_id"]

    def _save(self, backup: Dict[str, Any]) -> None:
        """Write the document; on failure memory is rolled back to ``backup``."""
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            if self.path.parent and not self.path.parent.exists():
                self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(self._snapshot(), indent=2), encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError as exc:
            self._restore(backup)
            raise StorageError(f"cannot write {self.path}: {exc}") from exc

    # ------------------------------------------------------------------
    # Trusted users
    # ------------------------------------------------------------------
    def is_trusted(self, telegram_id: int) -> bool:
        with self._lock:
            return any(user.telegram_id == telegram_id for user in self._trusted)

    def find_trusted_by_username(self, username: str) -> Optional[TrustedUser]:
        with self._lock:
            for user in self._trusted:
                if user.username.lower() == username.lower():
                    return user
        return None

    def bind_telegram_id(self, username: str, telegram_id: int) -> bool:
        """Replace the placeholder id of ``username`` with the real chat id."""

        with self._lock:
            for user in self._trusted:
                if user.username.lower() == username.lower():
                    if user.telegram_id == telegram_id:
                        return False
                    backup = self._snapshot()
                    old_id = user.telegram_id
                    user.telegram_id = telegram_id
                    for account in self._accounts:
                        if account.added_by == old_id:
                            account.added_by = telegram_id
                    self._save(backup)
                    LOGGER.info("bound trusted user @%s to chat id %s", username, telegram_id)
                    return True
        return False

    def add_trusted(self, telegram_id: int, username: str) -> bool:
        """Add a trusted user; returns False when already present."""

        with self._lock:
            for user in self._trusted:
                if user.telegram_id == telegram_id or user.username.lower() == username.lower():
                    return False
            backup = self._snapshot()
            self._trusted.append(TrustedUser(telegram_id, username, int(self._clock())))
            self._save(backup)
        LOGGER.info("added trusted user @%s", username)
        return True

    def remove_trusted(self, telegram_id: int) -> bool:
        with self._lock:
            for index, user in enumerate(self._trusted):
                if user.telegram_id == telegram_id:
                    backup = self._snapshot()
                    del self._trusted[index]
                    self._save(backup)
                    LOGGER.info("revoked trusted user @%s", user.username)
                    return True
        return False

    def trusted_users(self) -> List[TrustedUser]:
        with self._lock:
            return list(self._trusted)

    # ------------------------------------------------------------------
    # VPN accounts
    # ------------------------------------------------------------------
    def account_count(self, telegram_id: int) -> int:
        with self._lock:
            return sum(1 for account in self._accounts if account.added_by == telegram_id)

    def accounts_for(self, telegram_id: int) -> List[VpnAccount]:
        with self._lock:
            return [account for account in self._accounts if account.added_by == telegram_id]

    def get_account(self, account_id: int, telegram_id: int) -> Optional[VpnAccount]:
        with self._lock:
            for account in self._accounts:
                if account.id == account_id and account.added_by == telegram_id:
                    return account
        return None

    def add_account(self, username: str, password: str, added_by: int) -> VpnAccount:
        with self._lock:
            backup = self._snapshot()
            account = VpnAccount(
                id=self._next_id,
                username=username,
                password=password,
                added_by=added_by,
                created_at=int(self._clock()),
            )
            self._accounts.append(account)
            self._next_id += 1
            self._save(backup)
        return account

    def remove_account(self, account_id: int, telegram_id: int) -> bool:
        with self._lock:
            for index, account in enumerate(self._accounts):
                if account.id == account_id and account.added_by == telegram_id:
                    backup = self._snapshot()
                    del self._accounts[index]
                    self._save(backup)
                    return True
        return False
