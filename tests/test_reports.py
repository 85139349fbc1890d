"""Tests for chat report formatting."""
import json

from xui_admin.aggregation import MemberInfo, SortType
from xui_admin.inbounds import BYTES_IN_GB, MILLISECONDS_IN_DAY, parse_inbounds
from xui_admin.provisioning import FanOutResult
from xui_admin.reports import (
    format_detailed_report,
    format_expiry_date,
    format_failures,
    format_members_overview,
    format_network_usage_report,
    format_online_report,
    format_subscription_info,
    format_table_line,
)


def usage_inbounds():
    return parse_inbounds([
        {
            "id": 1,
            "remark": "ws",
            "enable": True,
            "settings": json.dumps({"clients": [
                {"email": "alice-1", "subId": "S1"},
                {"email": "bob-1", "subId": "S2"},
            ]}),
            "clientStats": [
                {"email": "alice-1", "enable": True, "up": BYTES_IN_GB, "down": 2 * BYTES_IN_GB},
                {"email": "bob-1", "enable": False, "up": 0, "down": BYTES_IN_GB // 2},
            ],
        },
        {
            "id": 2,
            "remark": "grpc",
            "enable": True,
            "settings": json.dumps({"clients": [{"email": "alice-2", "subId": "S1"}]}),
            "clientStats": [
                {"email": "alice-2", "enable": True, "up": BYTES_IN_GB, "down": 0},
            ],
        },
        {"id": 3, "remark": "empty", "enable": True, "settings": "", "clientStats": []},
    ])


class TestSimpleFormatting:
    """Tests for small formatting helpers."""

    def test_expiry_date(self):
        assert format_expiry_date(0) == "∞"
        assert format_expiry_date(1_700_000_000_000) == "2023-11-14"

    def test_online_report(self):
        assert format_online_report([]) == "No users are currently online."
        report = format_online_report(["alice-1", "<b>"])
        assert report.startswith("Online users:")
        assert "・alice-1" in report
        assert "・&lt;b&gt;" in report

    def test_table_line_truncates_long_emails(self):
        line = format_table_line("averyveryverylongname-1", BYTES_IN_GB, 0)
        assert line.startswith("averyveryveryl...")
        assert "  1.00 |   0.00" in line

    def test_table_line_keeps_short_emails(self):
        assert format_table_line("alice-1", 0, 0).startswith("alice-1".ljust(17) + " |")

    def test_failures(self):
        assert format_failures("Failed:", ["Inbound 1: <err>"]) == "Failed:\nInbound 1: &lt;err&gt;"


class TestUsageReports:
    """Tests for traffic reports."""

    def test_network_usage_totals(self):
        report = format_network_usage_report(usage_inbounds())
        assert report.startswith("<b>Network Usage Report:</b>")
        assert "Inbound: ws" in report
        assert "Inbound: grpc" in report
        assert "Inbound: empty" not in report
        assert format_table_line("Total:", int(2.5 * BYTES_IN_GB), BYTES_IN_GB) in report
        assert format_table_line("Grand Total:", int(2.5 * BYTES_IN_GB), 2 * BYTES_IN_GB) in report
        assert report.endswith("</pre>")

    def test_detailed_report_groups_by_subscription(self):
        report = format_detailed_report(usage_inbounds())
        assert "🟢 <b>alice</b>" in report
        assert "🔴 <b>bob-1</b>" in report
        assert "├ ⬆️ 2.00 GB" in report
        assert "Total: 2 subscriptions (1 active)" in report

    def test_detailed_report_without_subscriptions(self):
        assert format_detailed_report([]) == "No active subscriptions found."


class TestMemberFormatting:
    """Tests for member listings and creation summaries."""

    def test_members_overview(self):
        now = 1_700_000_000_000
        members = [
            MemberInfo("alice", enable=True, expiry_time=now + 30 * MILLISECONDS_IN_DAY, total_up=BYTES_IN_GB),
            MemberInfo("bob", enable=False, expiry_time=0),
        ]
        text = format_members_overview(members, SortType.NAME, now)
        assert "🔤 By name" in text
        assert "🟢 <b>alice</b> · ✅ 30 days · 1.00 GB" in text
        assert "🔴 <b>bob</b> · ∞ Infinite · 0.00 GB" in text

    def test_members_overview_empty(self):
        assert format_members_overview([], SortType.NAME) == "No members found."

    def test_subscription_info(self):
        result = FanOutResult(succeeded=["alice-1", "alice-2"], warnings=["Inbound 3: boom"],
                              sub_id="S1", expiry_time=1_700_000_000_000)
        text = format_subscription_info("alice", 30, result, "https://sub.example.com/S1?name=S1")
        assert text.startswith("Client added successfully!")
        assert "Duration: 30 days" in text
        assert "Expiry: 2023-11-14" in text
        assert "- alice-1\n- alice-2" in text
        assert "Link to connect: https://sub.example.com/S1?name=S1" in text
        assert "Inbound 3: boom" in text

    def test_subscription_info_infinite(self):
        result = FanOutResult(succeeded=["alice-1"], sub_id="S1", expiry_time=0)
        text = format_subscription_info("alice", None, result, "url")
        assert "Duration: ∞ (infinite)" in text
        assert "Warning" not in text
