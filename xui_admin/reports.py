"""HTML formatted chat reports."""
from __future__ import annotations

import html
from datetime import datetime, timezone
from typing import List, Optional

from .aggregation import MemberInfo, SortType, aggregate_by_sub_id
from .inbounds import BYTES_IN_GB, INFINITE_EXPIRY, Inbound
from .naming import group_similar_emails
from .provisioning import FanOutResult

MAX_EMAIL_DISPLAY_LENGTH = 17
TRUNCATED_EMAIL_LENGTH = 14
DATE_FORMAT = "%Y-%m-%d"


def _gb(value: int) -> float:
    return value / BYTES_IN_GB


def format_expiry_date(expiry_ms: int) -> str:
    if expiry_ms == INFINITE_EXPIRY:
        return "∞"
    return datetime.fromtimestamp(expiry_ms / 1000, tz=timezone.utc).strftime(DATE_FORMAT)


def format_online_report(emails: List[str]) -> str:
    if not emails:
        return "No users are currently online."
    lines = ["Online users:", ""]
    lines.extend(f"・{html.escape(email)}" for email in emails)
    return "\n".join(lines)


def format_table_line(email: str, down_bytes: int, up_bytes: int) -> str:
    """One fixed-width row of the usage table; long emails are truncated."""

    display = email
    if len(email) > MAX_EMAIL_DISPLAY_LENGTH:
        display = email[:TRUNCATED_EMAIL_LENGTH] + "..."
    return f"{html.escape(display):<17} | {_gb(down_bytes):6.2f} | {_gb(up_bytes):6.2f}\n"


def format_network_usage_report(inbounds: List[Inbound]) -> str:
    """Per-inbound usage table with inbound and grand totals."""

    parts = [
        "<b>Network Usage Report:</b>\n",
        "<pre>\n",
        "Email             | ↓ (GB) | ↑ (GB)\n",
        "------------------|--------|--------\n",
    ]
    total_down = total_up = 0

    for inbound in inbounds:
        if not inbound.client_stats:
            continue
        parts.append("\n")
        parts.append(f"Inbound: {html.escape(inbound.remark)}\n")
        inbound_down = inbound_up = 0
        for stat in inbound.client_stats:
            parts.append(format_table_line(stat.email, stat.down, stat.up))
            inbound_down += stat.down
            inbound_up += stat.up
        parts.append("-----------\n")
        parts.append(format_table_line("Total:", inbound_down, inbound_up))
        total_down += inbound_down
        total_up += inbound_up

    parts.append("\n")
    parts.append(format_table_line("Grand Total:", total_down, total_up))
    parts.append("</pre>")
    return "".join(parts)


def format_detailed_report(inbounds: List[Inbound]) -> str:
    """Usage grouped by subscription id, followed by a summary."""

    summaries = aggregate_by_sub_id(inbounds)
    if not summaries:
        return "No active subscriptions found."

    total_up = sum(s.total_up for s in summaries.values())
    total_down = sum(s.total_down for s in summaries.values())
    active = sum(1 for s in summaries.values() if s.enable)

    lines = ["<b>📊 Detailed Subscription Information</b>", ""]
    for summary in summaries.values():
        status = "🟢" if summary.enable else "🔴"
        label = ", ".join(group_similar_emails(summary.emails))
        lines.append(f"{status} <b>{html.escape(label)}</b>")
        lines.append(f"├ ⬆️ {_gb(summary.total_up):.2f} GB")
        lines.append(f"└ ⬇️ {_gb(summary.total_down):.2f} GB")
        lines.append("")

    lines.append("<b>📈 Summary</b>")
    lines.append(f"├ 👥 Total: {len(summaries)} subscriptions ({active} active)")
    lines.append(f"├ ⬆️ Total Upload: {_gb(total_up):.2f} GB")
    lines.append(f"└ ⬇️ Total Download: {_gb(total_down):.2f} GB")
    return "\n".join(lines)


def format_members_overview(members: List[MemberInfo], sort: SortType, now_ms: Optional[int] = None) -> str:
    if not members:
        return "No members found."
    lines = [f"<b>Members</b> ({html.escape(sort.label)})", ""]
    for member in members:
        status = "🟢" if member.enable else "🔴"
        lines.append(
            f"{status} <b>{html.escape(member.base_username)}</b> · "
            f"{member.expiry_status(now_ms)} · {_gb(member.total_traffic):.2f} GB"
        )
    return "\n".join(lines)


def format_subscription_info(
    base_username: str,
    days: Optional[int],
    result: FanOutResult,
    subscription_url: str,
) -> str:
    """Summary sent after a member was created on at least one inbound."""

    lines = ["Client added successfully!", "", f"Base username: {html.escape(base_username)}"]
    if result.expiry_time == INFINITE_EXPIRY:
        lines.append("Duration: ∞ (infinite)")
    else:
        lines.append(f"Duration: {days} days")
        lines.append(f"Expiry: {format_expiry_date(result.expiry_time)}")
    lines.append("Traffic limit: Unlimited")
    lines.append("")
    lines.append("Created accounts:")
    lines.extend(f"- {html.escape(email)}" for email in result.created)
    if result.created:
        lines.append("")
        lines.append(f"Link to connect: {html.escape(subscription_url)}")
    if result.warnings:
        lines.append("")
        lines.append("Warning: Failed to add to some inbounds:")
        lines.extend(html.escape(warning) for warning in result.warnings)
    return "\n".join(lines)


def format_failures(title: str, warnings: List[str]) -> str:
    return "\n".join([title, *(html.escape(w) for w in warnings)])
