"""Secure key-value vault contract.

The vault is the only shared mutable resource of the credential core. It is a
named, string-keyed store whose values are confidentiality-protected by the
backend (OS credential store, owner-only file, process memory).

Contract:
    * ``get`` / ``put`` / ``put_many`` / ``delete`` / ``contains`` / ``clear``.
    * ``get_or_create`` is atomic: when callers race on first access exactly
      one value is persisted and every caller receives it.
    * Backend I/O failures surface as ``VaultAccessError``. Every public
      operation is retried once before the error reaches the caller.

Binary values crossing this boundary are standard base64 without line
wrapping (``encode_bytes`` / ``decode_bytes``).
"""

import base64
import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Dict, Iterable, Optional, TypeVar

from ..errors import VaultAccessError

logger = logging.getLogger(__name__)

T = TypeVar("T")

VAULT_RETRY_ATTEMPTS = 2  # first try + one retry


def encode_bytes(data: bytes) -> str:
    """Standard base64, no line wrapping."""
    return base64.b64encode(data).decode("ascii")


def decode_bytes(encoded: str) -> bytes:
    """Decode standard base64.

    Raises:
        binascii.Error: If the input is not valid base64.
    """
    return base64.b64decode(encoded.encode("ascii"), validate=True)


class SecureVault(ABC):
    """Named string-keyed secure storage with retry-once semantics."""

    #: Human-readable backend name for diagnostics
    backend_name = "vault"

    def __init__(self):
        # Serializes create-if-absent within this process
        self._create_lock = threading.Lock()

    # ── Backend primitives ────────────────────────────────────────────

    @abstractmethod
    def _get(self, key: str) -> Optional[str]:
        """Return the stored value or None."""

    @abstractmethod
    def _put_many(self, items: Dict[str, str]) -> None:
        """Persist all items in one atomic write."""

    @abstractmethod
    def _delete(self, keys: Iterable[str]) -> None:
        """Remove keys; missing keys are ignored."""

    @abstractmethod
    def _clear(self) -> None:
        """Remove every key held by this vault."""

    def _insert_if_absent(self, key: str, value: str) -> str:
        """Persist ``value`` unless ``key`` exists; return the stored value.

        Backends that can do better than an in-process lock (e.g. SQLite
        transactions across processes) override this.
        """
        existing = self._get(key)
        if existing is not None:
            return existing
        self._put_many({key: value})
        return value

    # ── Retry policy ──────────────────────────────────────────────────

    def _attempt(self, operation: str, fn: Callable[..., T], *args) -> T:
        for attempt in range(1, VAULT_RETRY_ATTEMPTS + 1):
            try:
                return fn(*args)
            except VaultAccessError as e:
                if attempt == VAULT_RETRY_ATTEMPTS:
                    logger.error(
                        "%s %s failed after retry: %s",
                        self.backend_name, operation, e,
                    )
                    raise
                logger.warning(
                    "%s %s failed, retrying once: %s",
                    self.backend_name, operation, e,
                )

    # ── Public API ────────────────────────────────────────────────────

    def get(self, key: str) -> Optional[str]:
        """Read a value; None when absent."""
        return self._attempt("get", self._get, key)

    def put(self, key: str, value: str) -> None:
        """Write (overwrite) a single value."""
        self._attempt("put", self._put_many, {key: value})

    def put_many(self, items: Dict[str, str]) -> None:
        """Write several values atomically."""
        if items:
            self._attempt("put_many", self._put_many, dict(items))

    def delete(self, *keys: str) -> None:
        """Remove keys (missing keys are ignored)."""
        if keys:
            self._attempt("delete", self._delete, list(keys))

    def contains(self, key: str) -> bool:
        return self.get(key) is not None

    def clear(self) -> None:
        """Remove every key in this vault."""
        self._attempt("clear", self._clear)

    def get_or_create(self, key: str, factory: Callable[[], str]) -> str:
        """Return the value for ``key``, persisting ``factory()`` if absent.

        Exactly one created value is ever persisted, even when callers race:
        losers of the race receive the winner's value, never their own.
        """
        existing = self.get(key)
        if existing is not None:
            return existing

        with self._create_lock:
            candidate = factory()
            return self._attempt(
                "get_or_create", self._insert_if_absent, key, candidate
            )
