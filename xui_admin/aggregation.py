"""Logical views reconstructed from per-inbound client records.

Two correlation strategies are used:

* by subscription id: the ``subId`` stored in each inbound's settings blob
  is shared by all records created together. Usage records whose email has
  no known ``subId`` are left out of these views.
* by base name: ``alice-1``, ``alice-2`` ... belong to member ``alice``.
  This works for records created externally or before ``subId`` existed.

Nothing here is cached; every view is rebuilt from a fresh inbound list.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from .inbounds import (
    INFINITE_EXPIRY,
    MILLISECONDS_IN_DAY,
    Inbound,
    current_millis,
    iter_client_stats,
    iter_clients,
)
from .naming import extract_base_username, matches_identifier


class SortType(Enum):
    CREATION_ORDER = "creation"
    EXPIRY_DATE = "expiry"
    TRAFFIC_TOTAL = "traffic"
    STATUS = "status"
    NAME = "name"

    @property
    def label(self) -> str:
        return _SORT_LABELS[self]


_SORT_LABELS = {
    SortType.CREATION_ORDER: "📅 By creation date",
    SortType.EXPIRY_DATE: "⏰ By expiry date",
    SortType.TRAFFIC_TOTAL: "📊 By total traffic",
    SortType.STATUS: "🔄 By status",
    SortType.NAME: "🔤 By name",
}


@dataclass
class SubscriptionSummary:
    """Usage of every record sharing one subscription id."""

    sub_id: str
    total_up: int = 0
    total_down: int = 0
    enable: bool = False
    expiry_time: int = 0
    inbound_names: List[str] = field(default_factory=list)
    emails: List[str] = field(default_factory=list)

    @property
    def total_traffic(self) -> int:
        return self.total_up + self.total_down


@dataclass
class MemberInfo:
    """A logical member grouped by base name."""

    base_username: str
    emails: List[str] = field(default_factory=list)
    record_id: int = 0
    enable: bool = False
    expiry_time: int = 0
    total_up: int = 0
    total_down: int = 0

    @property
    def total_traffic(self) -> int:
        return self.total_up + self.total_down

    def is_expired(self, now_ms: Optional[int] = None) -> bool:
        if self.expiry_time == INFINITE_EXPIRY:
            return False
        now_ms = current_millis() if now_ms is None else now_ms
        return now_ms > self.expiry_time

    def expiry_status(self, now_ms: Optional[int] = None) -> str:
        """Short human readable expiry state, e.g. ``✅ 12 days``."""

        if self.expiry_time == INFINITE_EXPIRY:
            return "∞ Infinite"
        now_ms = current_millis() if now_ms is None else now_ms
        if self.is_expired(now_ms):
            return "❌ Expired"
        days_left = (self.expiry_time - now_ms) // MILLISECONDS_IN_DAY
        if days_left <= 0:
            return "⚠️ Expires today"
        if days_left <= 7:
            return f"⚠️ {days_left} days"
        return f"✅ {days_left} days"


def _add_unique(items: List[str], item: str) -> None:
    if item not in items:
        items.append(item)


def email_to_sub_id(inbounds: List[Inbound]) -> Dict[str, str]:
    """Map client emails to their subscription id using the settings blobs."""

    mapping: Dict[str, str] = {}
    for _, client in iter_clients(inbounds):
        if client.sub_id:
            mapping[client.email] = client.sub_id
    return mapping


def aggregate_by_sub_id(inbounds: List[Inbound]) -> Dict[str, SubscriptionSummary]:
    """Group usage records by subscription id.

    Records whose email is unknown to every settings blob are dropped.
    Upload and download are summed, the group is enabled when any record
    is, and the expiry is the latest one seen.
    """
    mapping = email_to_sub_id(inbounds)
    summaries: Dict[str, SubscriptionSummary] = {}

    for inbound, stat in iter_client_stats(inbounds):
        sub_id = mapping.get(stat.email)
        if sub_id is None:
            continue

        summary = summaries.get(sub_id)
        if summary is None:
            summary = SubscriptionSummary(sub_id=sub_id, enable=stat.enable, expiry_time=stat.expiry_time)
            summaries[sub_id] = summary

        summary.total_up += stat.up
        summary.total_down += stat.down
        summary.enable = summary.enable or stat.enable
        summary.expiry_time = max(summary.expiry_time, stat.expiry_time)
        _add_unique(summary.inbound_names, inbound.remark)
        _add_unique(summary.emails, stat.email)

    return summaries


def _sort_key(sort: SortType):
    if sort is SortType.EXPIRY_DATE:
        # Infinite expiry last, ties by name.
        return lambda m: (m.expiry_time == INFINITE_EXPIRY, m.expiry_time, m.base_username)
    if sort is SortType.TRAFFIC_TOTAL:
        return lambda m: -m.total_traffic
    if sort is SortType.STATUS:
        return lambda m: (not m.enable, m.base_username)
    if sort is SortType.NAME:
        return lambda m: m.base_username
    return lambda m: m.record_id


def aggregate_members(
    inbounds: List[Inbound],
    sort: SortType = SortType.CREATION_ORDER,
) -> List[MemberInfo]:
    """Group usage records into members by base name.

    Parameters
    ----------
    inbounds:
        Freshly fetched inbound list.
    sort:
        Ordering of the returned members.

    Returns
    -------
    list of MemberInfo
        One entry per base name. ``record_id`` is the smallest usage record
        id of the member and therefore reflects creation order. The expiry
        also takes the settings blobs into account.
    """
    members: Dict[str, MemberInfo] = {}

    for _, stat in iter_client_stats(inbounds):
        base = extract_base_username(stat.email)
        member = members.get(base)
        if member is None:
            members[base] = MemberInfo(
                base_username=base,
                emails=[stat.email],
                record_id=stat.id,
                enable=stat.enable,
                expiry_time=stat.expiry_time,
                total_up=stat.up,
                total_down=stat.down,
            )
            continue
        member.emails.append(stat.email)
        member.total_up += stat.up
        member.total_down += stat.down
        member.enable = member.enable or stat.enable
        member.expiry_time = max(member.expiry_time, stat.expiry_time)
        member.record_id = min(member.record_id, stat.id)

    for _, client in iter_clients(inbounds):
        member = members.get(extract_base_username(client.email))
        if member is not None:
            member.expiry_time = max(member.expiry_time, client.expiry_time)

    return sorted(members.values(), key=_sort_key(sort))


def member_names(inbounds: List[Inbound]) -> List[str]:
    """Raw emails of every usage record, in panel order."""

    return [stat.email for _, stat in iter_client_stats(inbounds)]


def sub_id_for_member(inbounds: List[Inbound], identifier: str) -> Optional[str]:
    """Subscription id of the first client matching ``identifier``.

    ``identifier`` may be an exact email or a base name.
    """
    for _, client in iter_clients(inbounds):
        if not client.sub_id:
            continue
        if matches_identifier(client.email, identifier):
            return client.sub_id
    return None
