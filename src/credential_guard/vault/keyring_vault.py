"""Vault backed by the operating system credential store.

Uses the ``keyring`` package (Windows Credential Locker, macOS Keychain,
Secret Service on Linux), so values are protected by the platform and not
readable by other applications.

keyring cannot enumerate entries, so the vault keeps its own index of key
names under ``INDEX_KEY``; ``clear()`` walks that index.

Create-if-absent and index updates are serialized per service name across
every instance in the process. There is no lock between processes: two
processes racing on first access can each persist their own value.
"""

import json
import logging
import threading
from typing import Dict, Iterable, List, Optional

import keyring
from keyring.backend import KeyringBackend
from keyring.errors import KeyringError, PasswordDeleteError

from ..errors import VaultAccessError
from .base import SecureVault

logger = logging.getLogger(__name__)

INDEX_KEY = "__credential_guard_index__"

_SERVICE_LOCKS: Dict[str, threading.RLock] = {}
_SERVICE_LOCKS_GUARD = threading.Lock()


def _lock_for_service(service: str) -> threading.RLock:
    """Lock shared by all vault instances on ``service`` in this process."""
    with _SERVICE_LOCKS_GUARD:
        return _SERVICE_LOCKS.setdefault(service, threading.RLock())


class KeyringVault(SecureVault):
    """Vault stored in the OS keyring under one service name.

    Args:
        service: keyring service name (namespace for all keys).
        backend: keyring backend instance; defaults to ``keyring.get_keyring()``.
    """

    backend_name = "keyring-vault"

    def __init__(self, service: str, backend: Optional[KeyringBackend] = None):
        super().__init__()
        self.service = service
        self._backend = backend or keyring.get_keyring()
        self._service_lock = _lock_for_service(service)
        logger.debug("Keyring vault using backend %s", type(self._backend).__name__)

    # ── keyring access ────────────────────────────────────────────────

    def _read(self, key: str) -> Optional[str]:
        try:
            return self._backend.get_password(self.service, key)
        except KeyringError as e:
            raise VaultAccessError(f"keyring read failed: {e}") from e

    def _write(self, key: str, value: str) -> None:
        try:
            self._backend.set_password(self.service, key, value)
        except KeyringError as e:
            raise VaultAccessError(f"keyring write failed: {e}") from e

    def _remove(self, key: str) -> None:
        try:
            self._backend.delete_password(self.service, key)
        except PasswordDeleteError:
            pass  # already absent
        except KeyringError as e:
            raise VaultAccessError(f"keyring delete failed: {e}") from e

    def _index(self) -> List[str]:
        raw = self._read(INDEX_KEY)
        if not raw:
            return []
        try:
            return list(json.loads(raw))
        except (ValueError, TypeError):
            logger.warning("Keyring vault index is unreadable; rebuilding from writes")
            return []

    def _save_index(self, names: Iterable[str]) -> None:
        self._write(INDEX_KEY, json.dumps(sorted(set(names))))

    # ── SecureVault primitives ────────────────────────────────────────

    def _get(self, key: str) -> Optional[str]:
        return self._read(key)

    def _put_many(self, items: Dict[str, str]) -> None:
        # keyring has no transactions; the index is saved after the values
        with self._service_lock:
            index = set(self._index())
            for key, value in items.items():
                self._write(key, value)
                index.add(key)
            self._save_index(index)

    def _delete(self, keys: Iterable[str]) -> None:
        with self._service_lock:
            index = set(self._index())
            for key in keys:
                self._remove(key)
                index.discard(key)
            self._save_index(index)

    def _insert_if_absent(self, key: str, value: str) -> str:
        with self._service_lock:
            existing = self._read(key)
            if existing is not None:
                return existing
            self._put_many({key: value})
            return value

    def _clear(self) -> None:
        with self._service_lock:
            for key in self._index():
                self._remove(key)
            self._remove(INDEX_KEY)

    def keys(self) -> List[str]:
        with self._service_lock:
            return sorted(self._index())
