"""Tests for the database passphrase lifecycle."""

import base64
from concurrent.futures import ThreadPoolExecutor

import pytest

from credential_guard.security.db_passphrase import (
    KEY_DB_PASSPHRASE,
    DatabasePassphraseManager,
)
from credential_guard.security.kdf import derive_key, generate_salt
from credential_guard.vault.sqlite_vault import SQLiteVault


@pytest.fixture
def manager(vault, audit_logger):
    return DatabasePassphraseManager(vault, audit_logger=audit_logger)


class TestGetOrCreate:
    """Lazy creation, identical afterwards."""

    def test_absent_until_first_access(self, manager):
        assert manager.get() is None

    def test_idempotent(self, manager):
        first = manager.get_or_create()
        assert manager.get_or_create() == first
        assert manager.get() == first

    def test_32_random_bytes_base64(self, manager):
        passphrase = manager.get_or_create()
        assert len(base64.b64decode(passphrase, validate=True)) == 32
        assert "\n" not in passphrase

    def test_stored_in_vault(self, manager, vault):
        passphrase = manager.get_or_create()
        assert vault.get(KEY_DB_PASSPHRASE) == passphrase

    def test_concurrent_first_access_single_value(self, tmp_path, audit_logger):
        manager = DatabasePassphraseManager(
            SQLiteVault(tmp_path / "vault.db"), audit_logger=audit_logger
        )
        with ThreadPoolExecutor(max_workers=8) as pool:
            values = set(pool.map(lambda _: manager.get_or_create(), range(24)))
        assert len(values) == 1


class TestRegenerate:
    """Destructive rotation."""

    def test_differs_from_prior(self, manager):
        old = manager.get_or_create()
        new = manager.regenerate()
        assert new != old
        assert manager.get() == new

    def test_prior_value_gone(self, manager):
        old = manager.get_or_create()
        manager.regenerate()
        assert manager.get() != old
        assert manager.get_or_create() != old

    def test_regenerate_without_existing(self, manager):
        new = manager.regenerate()
        assert manager.get() == new


class TestSalt:
    """Reserved salt slot for master-password key derivation."""

    def test_save_and_get(self, manager):
        manager.save_salt(b"\x01\x02\x03")
        assert manager.get_salt() == b"\x01\x02\x03"

    def test_missing_salt(self, manager):
        assert manager.get_salt() is None

    def test_empty_salt_rejected(self, manager):
        with pytest.raises(ValueError):
            manager.save_salt(b"")

    def test_get_or_create_salt(self, manager):
        salt = manager.get_or_create_salt()
        assert len(salt) == 32
        assert manager.get_or_create_salt() == salt
        assert manager.get_salt() == salt

    def test_derive_key_with_stored_salt(self, manager):
        salt = manager.get_or_create_salt()
        key = derive_key("abc123", salt, iterations=1_000)
        assert len(key) == 32
        assert derive_key("abc123", salt, iterations=1_000) == key
        assert derive_key("abc124", salt, iterations=1_000) != key

    def test_generate_salt_random(self):
        assert generate_salt() != generate_salt()


class TestClearAll:
    """Reset flow erases only the manager's own keys."""

    def test_clears_passphrase_and_salt(self, manager, vault):
        manager.get_or_create()
        manager.save_salt(b"salt")
        vault.put("master_password_hash", "keep")

        manager.clear_all()

        assert manager.get() is None
        assert manager.get_salt() is None
        assert vault.get("master_password_hash") == "keep"

    def test_new_passphrase_after_clear(self, manager):
        old = manager.get_or_create()
        manager.clear_all()
        assert manager.get_or_create() != old
