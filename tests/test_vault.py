"""Tests for the secure vault backends.

Covers:
  - get / put / put_many / delete / contains / clear
  - Atomic get_or_create (threads, two vault instances on one file)
  - Retry-once on VaultAccessError
  - SQLite file creation and permissions
  - keyring backend index handling
"""

import os
import stat
import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from credential_guard.errors import VaultAccessError
from credential_guard.vault import (
    InMemoryVault,
    KeyringVault,
    SQLiteVault,
    decode_bytes,
    encode_bytes,
)


@pytest.fixture(params=["memory", "sqlite", "keyring"])
def any_vault(request, tmp_path, dict_keyring):
    if request.param == "memory":
        return InMemoryVault()
    if request.param == "sqlite":
        return SQLiteVault(tmp_path / "vault.db")
    return KeyringVault("credential-guard-test", backend=dict_keyring)


class TestVaultContract:
    """Operations every backend must support."""

    def test_get_missing_returns_none(self, any_vault):
        assert any_vault.get("nope") is None
        assert any_vault.contains("nope") is False

    def test_put_and_get(self, any_vault):
        any_vault.put("db_passphrase", "abc")
        assert any_vault.get("db_passphrase") == "abc"
        assert any_vault.contains("db_passphrase")

    def test_put_overwrites(self, any_vault):
        any_vault.put("k", "one")
        any_vault.put("k", "two")
        assert any_vault.get("k") == "two"

    def test_put_many(self, any_vault):
        any_vault.put_many({"a": "1", "b": "2"})
        assert any_vault.get("a") == "1"
        assert any_vault.get("b") == "2"

    def test_delete_ignores_missing(self, any_vault):
        any_vault.put("x", "val")
        any_vault.delete("x", "never-existed")
        assert any_vault.get("x") is None

    def test_clear(self, any_vault):
        any_vault.put_many({"a": "1", "b": "2"})
        any_vault.clear()
        assert any_vault.get("a") is None
        assert any_vault.get("b") is None

    def test_get_or_create_creates_once(self, any_vault):
        calls = []

        def factory():
            calls.append(1)
            return f"value-{len(calls)}"

        assert any_vault.get_or_create("k", factory) == "value-1"
        assert any_vault.get_or_create("k", factory) == "value-1"
        assert len(calls) == 1

    def test_get_or_create_keeps_existing(self, any_vault):
        any_vault.put("k", "existing")
        assert any_vault.get_or_create("k", lambda: "new") == "existing"


class TestGetOrCreateRaces:
    """Exactly one value is persisted when callers race on first access."""

    def test_threads_share_one_value(self, tmp_path):
        vault = SQLiteVault(tmp_path / "vault.db")
        counter = iter(range(10_000))
        lock = threading.Lock()

        def factory():
            with lock:
                return f"candidate-{next(counter)}"

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: vault.get_or_create("k", factory), range(32)))

        assert len(set(results)) == 1
        assert vault.get("k") == results[0]

    def test_two_instances_on_same_file(self, tmp_path):
        path = tmp_path / "vault.db"
        first = SQLiteVault(path)
        second = SQLiteVault(path)
        barrier = threading.Barrier(2)

        def create(vault, value):
            barrier.wait()
            return vault.get_or_create("k", lambda: value)

        with ThreadPoolExecutor(max_workers=2) as pool:
            a = pool.submit(create, first, "from-first")
            b = pool.submit(create, second, "from-second")
            results = {a.result(), b.result()}

        assert len(results) == 1
        assert first.get("k") in results

    def test_two_keyring_instances_on_same_service(self, dict_keyring, monkeypatch):
        original = dict_keyring.get_password

        def slow_get_password(service, username):
            time.sleep(0.02)
            return original(service, username)

        monkeypatch.setattr(dict_keyring, "get_password", slow_get_password)
        first = KeyringVault("svc-race", backend=dict_keyring)
        second = KeyringVault("svc-race", backend=dict_keyring)
        barrier = threading.Barrier(2)

        def create(vault, value):
            barrier.wait()
            return vault.get_or_create("k", lambda: value)

        with ThreadPoolExecutor(max_workers=2) as pool:
            a = pool.submit(create, first, "from-first")
            b = pool.submit(create, second, "from-second")
            results = {a.result(), b.result()}

        assert len(results) == 1
        assert second.get("k") in results

    def test_keyring_index_survives_concurrent_writes(self, dict_keyring):
        vaults = [KeyringVault("svc-index", backend=dict_keyring) for _ in range(4)]

        def write(i):
            vaults[i % 4].put(f"key-{i}", "v")

        with ThreadPoolExecutor(max_workers=4) as pool:
            list(pool.map(write, range(40)))

        assert vaults[0].keys() == sorted(f"key-{i}" for i in range(40))
        vaults[1].clear()
        assert all(k[0] != "svc-index" for k in dict_keyring.entries)


class TestRetry:
    """Vault I/O failures are retried once, then surfaced."""

    def test_single_failure_is_retried(self, flaky_vault_factory):
        vault = flaky_vault_factory(failures=1)
        vault.put("k", "v")
        assert vault.get("k") == "v"
        assert vault.read_attempts == 2

    def test_second_failure_surfaces(self, flaky_vault_factory):
        vault = flaky_vault_factory(failures=2)
        with pytest.raises(VaultAccessError):
            vault.get("k")
        assert vault.read_attempts == 2

    def test_keyring_error_becomes_vault_access_error(self, dict_keyring):
        vault = KeyringVault("svc", backend=dict_keyring)
        dict_keyring.fail_next = 2
        with pytest.raises(VaultAccessError):
            vault.get("k")

    def test_keyring_error_retried_once(self, dict_keyring):
        vault = KeyringVault("svc", backend=dict_keyring)
        vault.put("k", "v")
        dict_keyring.fail_next = 1
        assert vault.get("k") == "v"


class TestSQLiteVault:
    """SQLite-specific behaviour."""

    def test_creates_db_file(self, tmp_path):
        SQLiteVault(tmp_path / "vault.db")
        assert (tmp_path / "vault.db").exists()

    def test_creates_parent_dirs(self, tmp_path):
        SQLiteVault(tmp_path / "sub" / "dir" / "vault.db")
        assert (tmp_path / "sub" / "dir" / "vault.db").exists()

    @pytest.mark.skipif(os.name != "posix", reason="POSIX permissions only")
    def test_file_is_owner_only(self, tmp_path):
        SQLiteVault(tmp_path / "vault.db")
        mode = stat.S_IMODE(os.stat(tmp_path / "vault.db").st_mode)
        assert mode == 0o600

    def test_persists_across_instances(self, tmp_path):
        SQLiteVault(tmp_path / "vault.db").put("k", "v")
        assert SQLiteVault(tmp_path / "vault.db").get("k") == "v"

    def test_keys_lists_names(self, tmp_path):
        vault = SQLiteVault(tmp_path / "vault.db")
        vault.put_many({"b": "2", "a": "1"})
        assert vault.keys() == ["a", "b"]


class TestKeyringVault:
    """OS keyring backend with its own key index."""

    def test_values_stored_under_service(self, dict_keyring):
        vault = KeyringVault("svc", backend=dict_keyring)
        vault.put("db_passphrase", "secret")
        assert dict_keyring.entries[("svc", "db_passphrase")] == "secret"

    def test_services_are_isolated(self, dict_keyring):
        KeyringVault("one", backend=dict_keyring).put("k", "1")
        assert KeyringVault("two", backend=dict_keyring).get("k") is None

    def test_clear_removes_indexed_keys_only_for_service(self, dict_keyring):
        mine = KeyringVault("mine", backend=dict_keyring)
        other = KeyringVault("other", backend=dict_keyring)
        mine.put_many({"a": "1", "b": "2"})
        other.put("a", "keep")

        mine.clear()

        assert mine.keys() == []
        assert mine.get("a") is None
        assert other.get("a") == "keep"

    def test_delete_updates_index(self, dict_keyring):
        vault = KeyringVault("svc", backend=dict_keyring)
        vault.put_many({"a": "1", "b": "2"})
        vault.delete("a")
        assert vault.keys() == ["b"]


class TestEncoding:
    """Binary values cross the vault boundary as unwrapped base64."""

    def test_no_line_wrapping(self):
        encoded = encode_bytes(b"\x00" * 200)
        assert "\n" not in encoded
        assert decode_bytes(encoded) == b"\x00" * 200

    def test_decode_rejects_garbage(self):
        import binascii
        with pytest.raises(binascii.Error):
            decode_bytes("not base64!!")
