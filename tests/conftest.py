"""
Shared pytest fixtures for the credential-guard test suite.

Autouse fixtures below isolate tests from the real user environment:
  - Settings / CLI  -> temp data directory (never touches ~/.credential_guard)
  - Audit logger    -> temp directory
"""

import logging

import pytest
from keyring.backend import KeyringBackend
from keyring.errors import KeyringError, PasswordDeleteError

from credential_guard.core.audit_log import AUDIT_LOGGER_NAME, AuditLogger
from credential_guard.errors import VaultAccessError
from credential_guard.security.field_cipher import FieldCipher
from credential_guard.security.key_provider import VaultKeyProvider
from credential_guard.vault.memory import InMemoryVault


@pytest.fixture(autouse=True)
def _isolate_data_dir(tmp_path, monkeypatch):
    """Point every Settings.from_env() at a temp directory.

    Without this, CLI tests would create a vault, keystore and credential
    database under the real home directory.
    """
    monkeypatch.setenv("CREDENTIAL_GUARD_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("CREDENTIAL_GUARD_AUDIT_DIR", str(tmp_path / "audit_logs"))
    monkeypatch.setenv("CREDENTIAL_GUARD_VAULT_BACKEND", "sqlite")
    monkeypatch.delenv("CREDENTIAL_GUARD_KEYRING_SERVICE", raising=False)
    monkeypatch.delenv("CREDENTIAL_GUARD_LOG_LEVEL", raising=False)


@pytest.fixture(autouse=True)
def _detach_audit_handlers():
    """Close audit file handlers opened during the test."""
    yield
    audit = logging.getLogger(AUDIT_LOGGER_NAME)
    for handler in list(audit.handlers):
        audit.removeHandler(handler)
        handler.close()


@pytest.fixture
def audit_logger(tmp_path):
    return AuditLogger(log_dir=tmp_path / "audit_logs")


@pytest.fixture
def vault():
    return InMemoryVault()


@pytest.fixture
def keystore():
    return InMemoryVault()


@pytest.fixture
def key_provider(keystore, audit_logger):
    return VaultKeyProvider(keystore, audit_logger=audit_logger)


@pytest.fixture
def cipher(key_provider, audit_logger):
    return FieldCipher(key_provider, audit_logger=audit_logger)


class DictKeyring(KeyringBackend):
    """In-memory keyring backend (no OS credential store in tests)."""

    priority = 1

    def __init__(self):
        super().__init__()
        self.entries = {}
        self.fail_next = 0

    def _maybe_fail(self):
        if self.fail_next:
            self.fail_next -= 1
            raise KeyringError("backend locked")

    def get_password(self, service, username):
        self._maybe_fail()
        return self.entries.get((service, username))

    def set_password(self, service, username, password):
        self._maybe_fail()
        self.entries[(service, username)] = password

    def delete_password(self, service, username):
        self._maybe_fail()
        try:
            del self.entries[(service, username)]
        except KeyError:
            raise PasswordDeleteError("not found")


@pytest.fixture
def dict_keyring():
    return DictKeyring()


class FlakyVault(InMemoryVault):
    """Memory vault whose reads fail a configurable number of times."""

    def __init__(self, failures: int = 0):
        super().__init__()
        self.failures = failures
        self.read_attempts = 0

    def _get(self, key):
        self.read_attempts += 1
        if self.failures:
            self.failures -= 1
            raise VaultAccessError("platform storage busy")
        return super()._get(key)


@pytest.fixture
def flaky_vault_factory():
    return FlakyVault
