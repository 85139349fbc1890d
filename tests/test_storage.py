"""Tests for the JSON trust store."""
import json
from unittest.mock import patch

import pytest

from xui_admin.storage import StorageError, TrustStore, pseudo_telegram_id


class TestPseudoTelegramId:
    """Tests for placeholder ids of users known by name only."""

    def test_is_stable(self):
        assert pseudo_telegram_id("alice_user") == pseudo_telegram_id("alice_user")

    def test_is_positive_signed_64_bit(self):
        for name in ["a", "alice_user", "x" * 32, "ünïcode"]:
            value = pseudo_telegram_id(name)
            assert 0 < value <= 0x7FFFFFFFFFFFFFFF

    def test_differs_per_username(self):
        assert pseudo_telegram_id("alice_user") != pseudo_telegram_id("bob_user")

    def test_known_fnv1a_value(self):
        # FNV-1a 64 of the empty input is the offset basis.
        assert pseudo_telegram_id("") == 0xCBF29CE484222325 & 0x7FFFFFFFFFFFFFFF


class TestTrustedUsers:
    """Tests for the trusted user list."""

    def test_missing_file_is_empty_store(self, tmp_path):
        store = TrustStore(str(tmp_path / "data.json"))
        assert store.trusted_users() == []
        assert not (tmp_path / "data.json").exists()

    def test_add_and_remove_trusted(self, tmp_path):
        store = TrustStore(str(tmp_path / "data.json"), clock=lambda: 1000)
        assert store.add_trusted(5, "alice_user") is True
        assert store.is_trusted(5) is True
        assert store.trusted_users()[0].added_at == 1000

        assert store.remove_trusted(5) is True
        assert store.is_trusted(5) is False
        assert store.remove_trusted(5) is False

    def test_duplicate_username_is_rejected(self, tmp_path):
        store = TrustStore(str(tmp_path / "data.json"))
        assert store.add_trusted(5, "alice_user") is True
        assert store.add_trusted(6, "ALICE_USER") is False

    def test_find_by_username_is_case_insensitive(self, tmp_path):
        store = TrustStore(str(tmp_path / "data.json"))
        store.add_trusted(5, "Alice_User")
        assert store.find_trusted_by_username("alice_user").telegram_id == 5
        assert store.find_trusted_by_username("nobody") is None

    def test_bind_replaces_placeholder_and_reassigns_accounts(self, tmp_path):
        store = TrustStore(str(tmp_path / "data.json"))
        placeholder = pseudo_telegram_id("alice_user")
        store.add_trusted(placeholder, "alice_user")
        store.add_account("alice_user-add1", "pw", placeholder)

        assert store.bind_telegram_id("alice_user", 777) is True
        assert store.is_trusted(777) is True
        assert store.is_trusted(placeholder) is False
        assert store.account_count(777) == 1
        assert store.bind_telegram_id("alice_user", 777) is False


class TestAccounts:
    """Tests for accounts created by trusted users."""

    def test_accounts_are_scoped_to_owner(self, tmp_path):
        store = TrustStore(str(tmp_path / "data.json"))
        first = store.add_account("alice_user-add1", "pw", 5)
        store.add_account("bob_user-add1", "pw", 6)

        assert store.account_count(5) == 1
        assert [a.username for a in store.accounts_for(5)] == ["alice_user-add1"]
        assert store.get_account(first.id, 5) == first
        assert store.get_account(first.id, 6) is None

    def test_ids_are_not_reused(self, tmp_path):
        store = TrustStore(str(tmp_path / "data.json"))
        first = store.add_account("a-add1", "pw", 5)
        assert store.remove_account(first.id, 5) is True
        second = store.add_account("a-add2", "pw", 5)
        assert second.id == first.id + 1

    def test_remove_requires_owner(self, tmp_path):
        store = TrustStore(str(tmp_path / "data.json"))
        account = store.add_account("a-add1", "pw", 5)
        assert store.remove_account(account.id, 6) is False
        assert store.account_count(5) == 1


class TestPersistence:
    """Tests for the on-disk document."""

    def test_data_survives_reload(self, tmp_path):
        path = tmp_path / "data.json"
        store = TrustStore(str(path))
        store.add_trusted(5, "alice_user")
        store.add_account("alice_user-add1", "pw", 5)

        reloaded = TrustStore(str(path))
        assert reloaded.is_trusted(5) is True
        assert reloaded.account_count(5) == 1
        assert reloaded.add_account("alice_user-add2", "pw", 5).id == 2

    def test_write_is_atomic(self, tmp_path):
        path = tmp_path / "data.json"
        store = TrustStore(str(path))
        store.add_trusted(5, "alice_user")

        assert not (tmp_path / "data.json.tmp").exists()
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["trusted_users"][0]["username"] == "alice_user"

    def test_parent_directory_is_created(self, tmp_path):
        path = tmp_path / "nested" / "data.json"
        TrustStore(str(path)).add_trusted(5, "alice_user")
        assert path.exists()

    def test_corrupt_file_raises_on_explicit_load(self, tmp_path):
        path = tmp_path / "data.json"
        path.write_text("{not json", encoding="utf-8")

        store = TrustStore(str(path))
        assert store.trusted_users() == []
        with pytest.raises(StorageError):
            store.load()

    def test_write_failure_raises_storage_error(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        store = TrustStore(str(blocker / "data.json"))
        with pytest.raises(StorageError):
            store.add_trusted(5, "alice_user")


class TestRollback:
    """A failed write leaves memory as it was on disk."""

    def make_store(self, tmp_path):
        store = TrustStore(str(tmp_path / "data.json"))
        store.add_trusted(pseudo_telegram_id("alice_user"), "alice_user")
        store.add_account("alice_user-add1", "pw", pseudo_telegram_id("alice_user"))
        return store

    def test_add_trusted(self, tmp_path):
        store = self.make_store(tmp_path)
        with patch("xui_admin.storage.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(StorageError):
                store.add_trusted(7, "bob_user")
        assert store.is_trusted(7) is False
        assert [u.username for u in store.trusted_users()] == ["alice_user"]

    def test_remove_trusted(self, tmp_path):
        store = self.make_store(tmp_path)
        with patch("xui_admin.storage.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(StorageError):
                store.remove_trusted(pseudo_telegram_id("alice_user"))
        assert store.find_trusted_by_username("alice_user") is not None

    def test_add_account_keeps_next_id(self, tmp_path):
        store = self.make_store(tmp_path)
        with patch("xui_admin.storage.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(StorageError):
                store.add_account("alice_user-add2", "pw", 5)
        assert store.account_count(5) == 0
        assert store.add_account("alice_user-add2", "pw", 5).id == 2

    def test_remove_account(self, tmp_path):
        store = self.make_store(tmp_path)
        owner = pseudo_telegram_id("alice_user")
        with patch("xui_admin.storage.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(StorageError):
                store.remove_account(1, owner)
        assert store.account_count(owner) == 1

    def test_bind_telegram_id(self, tmp_path):
        store = self.make_store(tmp_path)
        with patch("xui_admin.storage.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(StorageError):
                store.bind_telegram_id("alice_user", 50)
        assert store.is_trusted(50) is False
        assert store.account_count(pseudo_telegram_id("alice_user")) == 1
        assert store.account_count(50) == 0

    def test_memory_matches_disk_after_failure(self, tmp_path):
        store = self.make_store(tmp_path)
        with patch("xui_admin.storage.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(StorageError):
                store.add_trusted(7, "bob_user")
        reloaded = TrustStore(str(tmp_path / "data.json"))
        assert [u.username for u in reloaded.trusted_users()] == [u.username for u in store.trusted_users()]
