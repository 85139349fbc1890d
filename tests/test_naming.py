"""Tests for client identifier conventions."""
from xui_admin import naming


class TestBaseUsername:
    """Tests for numbered copies of a member name."""

    def test_extract_strips_numeric_suffix(self):
        assert naming.extract_base_username("alice-2") == "alice"
        assert naming.extract_base_username("alice-12") == "alice"

    def test_extract_keeps_non_numeric_suffix(self):
        assert naming.extract_base_username("alice-v2") == "alice-v2"
        assert naming.extract_base_username("alice") == "alice"

    def test_extract_only_strips_last_segment(self):
        assert naming.extract_base_username("bob-add1-3") == "bob-add1"

    def test_extract_ignores_trailing_separator(self):
        assert naming.extract_base_username("alice-") == "alice-"

    def test_format_inbound_email(self):
        assert naming.format_inbound_email("alice", 3) == "alice-3"

    def test_is_matching_base_username(self):
        assert naming.is_matching_base_username("alice-1", "alice") is True
        assert naming.is_matching_base_username("alice_b-1", "alice") is False

    def test_matches_identifier_accepts_exact_and_copies(self):
        """Test that an identifier matches itself and its numbered copies."""
        assert naming.matches_identifier("alice-1", "alice") is True
        assert naming.matches_identifier("alice-1", "alice-1") is True
        assert naming.matches_identifier("alice", "alice") is True
        assert naming.matches_identifier("alice-2", "alice-1") is False
        assert naming.matches_identifier("alicia-1", "alice") is False


class TestGrouping:
    """Tests for compact display labels."""

    def test_single_email_is_unchanged(self):
        assert naming.group_similar_emails(["alice-1"]) == ["alice-1"]

    def test_numbered_copies_collapse(self):
        assert naming.group_similar_emails(["alice-1", "alice-2", "alice-3"]) == ["alice"]

    def test_shared_domain_is_kept(self):
        emails = ["alice-1@example.com", "alice-2@example.com"]
        assert naming.group_similar_emails(emails) == ["alice@example.com"]

    def test_different_domains_are_not_grouped(self):
        emails = ["alice-1@example.com", "alice-2@example.org"]
        assert naming.group_similar_emails(emails) == emails

    def test_large_length_difference_is_not_grouped(self):
        emails = ["al-1", "alexander-2"]
        assert naming.should_group_emails(emails) is False
        assert naming.group_similar_emails(emails) == emails

    def test_short_common_prefix_falls_back_to_first_name(self):
        assert naming.find_common_part_without_suffix(["abc-1", "abd-2"]) == "abc"
        assert naming.find_common_part_without_suffix(["xyz-1", "xyw-2"]) == "xyz"

    def test_common_prefix_of_similar_names(self):
        assert naming.find_common_part_without_suffix(["teamA-1", "teamB-2"]) == "team"

    def test_longest_common_prefix(self):
        assert naming.longest_common_prefix("alice", "alina") == "ali"
        assert naming.longest_common_prefix("bob", "bobby") == "bob"
        assert naming.longest_common_prefix("x", "y") == ""
