"""Typed view of the panel's inbound list.

The ``inbounds/list`` endpoint returns each inbound with two independent
descriptions of its clients: ``settings`` is a JSON *string* holding the
client definitions (identifier, expiry, ``subId`` ...) and ``clientStats``
is a regular list of usage counters. Both are keyed by the client email.
"""
from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Tuple

if TYPE_CHECKING:  # pragma: no cover
    from .xui_api import XUIClient

LOGGER = logging.getLogger(__name__)

MILLISECONDS_IN_DAY = 24 * 60 * 60 * 1000
BYTES_IN_GB = 1024 * 1024 * 1024

# An expiry of zero means the client never expires.
INFINITE_EXPIRY = 0


def current_millis() -> int:
    """Wall-clock time in the panel's unit (Unix milliseconds)."""

    return int(time.time() * 1000)


def _as_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


@dataclass
class InboundClient:
    """A client definition stored in an inbound's ``settings`` blob."""

    email: str
    id: str = ""
    enable: bool = True
    expiry_time: int = 0
    sub_id: str = ""
    tg_id: str = ""
    total_gb: int = 0
    limit_ip: int = 0
    flow: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InboundClient":
        return cls(
            email=str(data.get("email") or ""),
            id=str(data.get("id") or data.get("password") or ""),
            enable=bool(data.get("enable", True)),
            expiry_time=_as_int(data.get("expiryTime")),
            sub_id=str(data.get("subId") or ""),
            tg_id=str(data.get("tgId") or ""),
            total_gb=_as_int(data.get("totalGB")),
            limit_ip=_as_int(data.get("limitIp")),
            flow=str(data.get("flow") or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize in the shape ``addClient`` expects."""

        return {
            "id": self.id or self.email,
            "flow": self.flow,
            "email": self.email,
            "limitIp": self.limit_ip,
            "totalGB": self.total_gb,
            "expiryTime": self.expiry_time,
            "enable": self.enable,
            "tgId": self.tg_id,
            "subId": self.sub_id,
            "reset": 0,
        }

    @property
    def uuid(self) -> str:
        """Identifier accepted by the per-client delete endpoint."""

        return self.id or self.sub_id or self.email


@dataclass
class ClientStat:
    """Usage counters reported for one client of one inbound."""

    email: str
    id: int = 0
    inbound_id: int = 0
    enable: bool = True
    up: int = 0
    down: int = 0
    expiry_time: int = 0
    total: int = 0
    reset: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClientStat":
        return cls(
            email=str(data.get("email") or ""),
            id=_as_int(data.get("id")),
            inbound_id=_as_int(data.get("inboundId")),
            enable=bool(data.get("enable", True)),
            up=_as_int(data.get("up")),
            down=_as_int(data.get("down")),
            expiry_time=_as_int(data.get("expiryTime")),
            total=_as_int(data.get("total")),
            reset=_as_int(data.get("reset")),
        )


def parse_settings(raw: Any, *, inbound_id: Any = None) -> List[InboundClient]:
    """Decode the inner ``settings`` blob into client definitions.

    A missing or malformed blob yields an empty list: such an inbound simply
    contributes no settings-derived data.
    """
    if not raw:
        return []
    settings = raw
    if isinstance(raw, (str, bytes)):
        try:
            settings = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            LOGGER.warning("ignoring malformed settings of inbound %s: %s", inbound_id, exc)
            return []
    if not isinstance(settings, dict):
        return []
    clients = settings.get("clients")
    if not isinstance(clients, list):
        return []
    return [InboundClient.from_dict(item) for item in clients if isinstance(item, dict)]


@dataclass
class Inbound:
    id: int
    remark: str = ""
    enable: bool = True
    port: int = 0
    protocol: str = ""
    settings: str = ""
    client_stats: List[ClientStat] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Inbound":
        settings = data.get("settings") or ""
        if not isinstance(settings, str):
            settings = json.dumps(settings)
        stats = data.get("clientStats")
        return cls(
            id=_as_int(data.get("id")),
            remark=str(data.get("remark") or ""),
            enable=bool(data.get("enable", False)),
            port=_as_int(data.get("port")),
            protocol=str(data.get("protocol") or ""),
            settings=settings,
            client_stats=[
                ClientStat.from_dict(item) for item in stats if isinstance(item, dict)
            ] if isinstance(stats, list) else [],
        )

    @property
    def clients(self) -> List[InboundClient]:
        return parse_settings(self.settings, inbound_id=self.id)


def parse_inbounds(obj: Any) -> List[Inbound]:
    """Re-marshal the ``obj`` field of an ``inbounds/list`` envelope."""

    if not isinstance(obj, list):
        return []
    return [Inbound.from_dict(item) for item in obj if isinstance(item, dict)]


def iter_clients(inbounds: List[Inbound]) -> Iterator[Tuple[Inbound, InboundClient]]:
    for inbound in inbounds:
        for client in inbound.clients:
            yield inbound, client


def iter_client_stats(inbounds: List[Inbound]) -> Iterator[Tuple[Inbound, ClientStat]]:
    for inbound in inbounds:
        for stat in inbound.client_stats:
            yield inbound, stat


class InboundRepository:
    """Read-only access to the inbound list through a shared panel client."""

    def __init__(self, client: "XUIClient") -> None:
        self.client = client

    def list(self) -> List[Inbound]:
        return parse_inbounds(self.client.list_inbounds())
