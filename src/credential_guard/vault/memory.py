"""Process-memory vault (tests and ephemeral sessions)."""

import threading
from typing import Dict, Iterable, Optional

from .base import SecureVault


class InMemoryVault(SecureVault):
    """Dict-backed vault. Contents are lost when the process exits."""

    backend_name = "memory-vault"

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        super().__init__()
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def _get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def _put_many(self, items: Dict[str, str]) -> None:
        with self._lock:
            self._data.update(items)

    def _delete(self, keys: Iterable[str]) -> None:
        with self._lock:
            for key in keys:
                self._data.pop(key, None)

    def _clear(self) -> None:
        with self._lock:
            self._data.clear()

    def _insert_if_absent(self, key: str, value: str) -> str:
        with self._lock:
            return self._data.setdefault(key, value)

    def keys(self):
        with self._lock:
            return sorted(self._data)
