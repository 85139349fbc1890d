"""Fan-out of member operations across the panel's inbounds.

Inbounds are processed one after another and each outcome is recorded on
its own: a member may legitimately exist on a subset of inbounds. Every
operation ends in one of three ways:

* no (enabled) inbound exists: :class:`NoInboundsError`, nothing attempted;
* attempted, nothing succeeded: ``result.success is False`` with one
  warning per failure;
* partial or full success: ``result.success is True``, warnings list the
  inbounds that failed.
"""
from __future__ import annotations

import logging
import secrets
import string
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from .inbounds import (
    INFINITE_EXPIRY,
    MILLISECONDS_IN_DAY,
    ClientStat,
    Inbound,
    InboundClient,
    InboundRepository,
    current_millis,
    iter_client_stats,
)
from .naming import format_inbound_email, matches_identifier
from .xui_api import ClientNotFoundError, XUIClient, XUIError

LOGGER = logging.getLogger(__name__)

SUB_ID_LENGTH = 16
SUB_ID_ALPHABET = string.ascii_letters + string.digits


class NoInboundsError(XUIError):
    """Raised when the panel has no inbound to provision on."""


def generate_sub_id() -> str:
    return "".join(secrets.choice(SUB_ID_ALPHABET) for _ in range(SUB_ID_LENGTH))


def expiry_from_days(days: Optional[int], now_ms: int) -> int:
    """Absolute expiry for a duration; ``None`` means never."""

    if days is None:
        return INFINITE_EXPIRY
    return now_ms + days * MILLISECONDS_IN_DAY


@dataclass
class FanOutResult:
    """Per-inbound outcome of one logical operation."""

    succeeded: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    sub_id: str = ""
    expiry_time: int = INFINITE_EXPIRY

    @property
    def success(self) -> bool:
        return bool(self.succeeded)

    @property
    def partial(self) -> bool:
        return self.success and bool(self.warnings)

    @property
    def created(self) -> List[str]:
        return self.succeeded


@dataclass
class ExtendResult:
    email: str
    inbound_id: int
    expiry_time: int
    sub_id: str


class ProvisioningEngine:
    """Create, extend, reset and delete members through one shared client."""

    def __init__(
        self,
        client: XUIClient,
        *,
        clock: Callable[[], int] = current_millis,
        sub_id_factory: Callable[[], str] = generate_sub_id,
    ) -> None:
        self.client = client
        self.repository = InboundRepository(client)
        self._clock = clock
        self._sub_id_factory = sub_id_factory

    def enabled_inbounds(self) -> List[Inbound]:
        inbounds = self.repository.list()
        if not inbounds:
            raise NoInboundsError("no inbounds available")
        enabled = [inbound for inbound in inbounds if inbound.enable]
        if not enabled:
            raise NoInboundsError("no enabled inbounds available")
        return enabled

    def create_member(
        self,
        base_username: str,
        days: Optional[int] = None,
        owner_id: Optional[int] = None,
    ) -> FanOutResult:
        """Add ``base_username`` to every enabled inbound.

        The n-th enabled inbound receives ``{base_username}-{n}``. All
        copies share one freshly generated subscription id so they can be
        found again as a single member.

        Parameters
        ----------
        base_username:
            Validated member name.
        days:
            Duration in days; ``None`` creates a client that never expires.
        owner_id:
            Chat id of the requester, stored as the client's ``tgId``.
        """
        inbounds = self.enabled_inbounds()
        sub_id = self._sub_id_factory()
        result = FanOutResult(sub_id=sub_id, expiry_time=expiry_from_days(days, self._clock()))

        for number, inbound in enumerate(inbounds, start=1):
            email = format_inbound_email(base_username, number)
            client = InboundClient(
                email=email,
                id=email,
                enable=True,
                expiry_time=result.expiry_time,
                sub_id=sub_id,
                tg_id=str(owner_id) if owner_id is not None else "",
            )
            try:
                self.client.add_client(inbound.id, client)
            except XUIError as exc:
                LOGGER.error("Failed to add client %s to inbound %s: %s", email, inbound.id, exc)
                result.warnings.append(f"Inbound {inbound.id}: {exc}")
                continue
            LOGGER.info("Successfully added client %s to inbound %s", email, inbound.id)
            result.succeeded.append(email)

        return result

    def _find_first_stat(self, identifier: str) -> Tuple[Inbound, ClientStat]:
        inbounds = self.repository.list()
        fallback: Optional[Tuple[Inbound, ClientStat]] = None
        for inbound, stat in iter_client_stats(inbounds):
            if stat.email == identifier:
                return inbound, stat
            if fallback is None and matches_identifier(stat.email, identifier):
                fallback = inbound, stat
        if fallback is None:
            raise ClientNotFoundError(f"Client {identifier} not found")
        return fallback

    def extend_member(self, identifier: str, days: int, owner_id: Optional[int] = None) -> ExtendResult:
        """Push the expiry of the first matching record ``days`` further.

        Only one record is replaced: the first inbound whose usage records
        hold ``identifier`` (exactly, or as a numbered copy). Copies on other
        inbounds keep their expiry. The replacement gets a new subscription
        id. Clients without expiry stay without expiry.
        """
        inbound, stat = self._find_first_stat(identifier)
        existing = next((c for c in inbound.clients if c.email == stat.email), None)

        expiry_time = stat.expiry_time
        if expiry_time != INFINITE_EXPIRY:
            expiry_time += days * MILLISECONDS_IN_DAY

        client = InboundClient(
            email=stat.email,
            id=stat.email,
            enable=stat.enable,
            expiry_time=expiry_time,
            sub_id=self._sub_id_factory(),
            total_gb=existing.total_gb if existing else stat.total,
            limit_ip=existing.limit_ip if existing else 0,
            flow=existing.flow if existing else "",
        )
        if owner_id is not None:
            client.tg_id = str(owner_id)
        elif existing is not None:
            client.tg_id = existing.tg_id

        self.client.remove_clients([stat.email])
        self.client.add_client(inbound.id, client)
        LOGGER.info("extended %s on inbound %s by %d days", stat.email, inbound.id, days)
        return ExtendResult(
            email=stat.email,
            inbound_id=inbound.id,
            expiry_time=expiry_time,
            sub_id=client.sub_id,
        )

    def reset_traffic(self, identifier: str) -> FanOutResult:
        """Reset usage counters of every record belonging to ``identifier``."""

        targets = [
            (inbound, stat)
            for inbound, stat in iter_client_stats(self.repository.list())
            if matches_identifier(stat.email, identifier)
        ]
        if not targets:
            raise ClientNotFoundError(f"Client {identifier} not found")

        result = FanOutResult()
        for inbound, stat in targets:
            try:
                self.client.reset_client_traffic(inbound.id, stat.email)
            except XUIError as exc:
                LOGGER.error("Failed to reset traffic of %s on inbound %s: %s", stat.email, inbound.id, exc)
                result.warnings.append(f"Inbound {inbound.id}: {stat.email}: {exc}")
                continue
            result.succeeded.append(stat.email)
        return result

    def delete_member(self, identifier: str) -> FanOutResult:
        """Remove every record of ``identifier`` from every inbound.

        Raises :class:`ClientNotFoundError` when nothing matches and
        :class:`~xui_admin.xui_api.XUIRemoteError` when no record could be
        deleted.
        """
        deleted, warnings = self.client.remove_clients([identifier])
        return FanOutResult(succeeded=deleted, warnings=warnings)
