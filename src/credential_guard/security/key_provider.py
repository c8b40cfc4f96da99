"""Field-encryption key ownership.

A ``KeyProvider`` owns exactly one symmetric key used by ``FieldCipher``.
The key is generated inside a keystore and is only ever handed out as a
``KeyHandle``: a handle builds cipher contexts but never returns key bytes.

Key lifecycle:
    1. ``ensure_key()`` generates a 256-bit AES key on first use (idempotent,
       at most once per install even when callers race).
    2. ``get_key()`` loads the handle; a missing, denied or corrupted keystore
       entry raises ``KeyUnavailable`` (fatal, data reset required).
    3. ``delete_key()`` is used only by the application reset flow.

The key is never bound to user authentication: the master password is the
primary gate, so encryption must work without a biometric prompt.
"""

import binascii
import json
import logging
import secrets
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import FrozenSet, Optional

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .. import config
from ..core.audit_log import AuditLogger, EventSeverity, EventType
from ..errors import KeyUnavailable, VaultAccessError
from ..vault.base import SecureVault, decode_bytes, encode_bytes

logger = logging.getLogger(__name__)

PURPOSE_ENCRYPT = "encrypt"
PURPOSE_DECRYPT = "decrypt"


@dataclass(frozen=True)
class KeySpec:
    """Generation parameters bound to a key for its whole lifetime."""

    algorithm: str = "AES"
    key_size_bits: int = config.KEY_SIZE_BITS
    purposes: FrozenSet[str] = field(
        default_factory=lambda: frozenset({PURPOSE_ENCRYPT, PURPOSE_DECRYPT})
    )
    block_mode: str = "GCM"
    padding: str = "NoPadding"
    randomized_encryption_required: bool = True
    user_authentication_required: bool = False


DEFAULT_KEY_SPEC = KeySpec()


class KeyHandle:
    """Opaque reference to a keystore key.

    Only builds cipher contexts; the key bytes are not part of the public
    interface and never appear in ``repr``.
    """

    __slots__ = ("alias", "spec", "_material")

    def __init__(self, alias: str, spec: KeySpec, material: bytes):
        self.alias = alias
        self.spec = spec
        self._material = material

    def new_aead(self) -> AESGCM:
        """Fresh AES-GCM context (one per encrypt/decrypt call)."""
        return AESGCM(self._material)

    def __repr__(self) -> str:
        return f"KeyHandle(alias={self.alias!r}, algorithm={self.spec.algorithm}/{self.spec.block_mode})"


class KeyProvider(ABC):
    """Owns the single field-encryption key."""

    @abstractmethod
    def ensure_key(self) -> None:
        """Generate the key if it does not exist yet (idempotent)."""

    @abstractmethod
    def get_key(self) -> KeyHandle:
        """Return a handle to the key.

        Raises:
            KeyUnavailable: Keystore denied, missing or corrupted.
        """

    @abstractmethod
    def has_key(self) -> bool:
        """True if a key is present under the provider's alias."""

    @abstractmethod
    def delete_key(self) -> None:
        """Destroy the key (reset flow only)."""


class VaultKeyProvider(KeyProvider):
    """Key stored in a ``SecureVault`` acting as the platform keystore.

    Pair it with a platform-protected vault (``KeyringVault`` on desktop
    systems, an owner-only ``SQLiteVault`` elsewhere). The keystore entry is a
    JSON envelope carrying the key parameters with the material.

    Args:
        keystore: Vault holding the key entry.
        alias: Fixed identifier of the key.
        spec: Key parameters; only AES-256-GCM without user authentication
              is supported.
        audit_logger: Security event sink.
    """

    def __init__(
        self,
        keystore: SecureVault,
        alias: str = config.FIELD_KEY_ALIAS,
        spec: KeySpec = DEFAULT_KEY_SPEC,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._check_spec(spec)
        self.keystore = keystore
        self.alias = alias
        self.spec = spec
        self.audit = audit_logger or AuditLogger()
        self._cached: Optional[KeyHandle] = None
        self._cache_lock = threading.Lock()

    @staticmethod
    def _check_spec(spec: KeySpec) -> None:
        if spec.algorithm != "AES" or spec.key_size_bits != 256:
            raise ValueError("Only 256-bit AES keys are supported")
        if spec.block_mode != "GCM" or spec.padding != "NoPadding":
            raise ValueError("Only GCM without padding is supported")
        if spec.purposes != frozenset({PURPOSE_ENCRYPT, PURPOSE_DECRYPT}):
            raise ValueError("Key purposes must be exactly {encrypt, decrypt}")
        if not spec.randomized_encryption_required:
            raise ValueError("Randomized encryption is mandatory")
        if spec.user_authentication_required:
            raise ValueError(
                "User-authentication-bound keys are not supported: the key "
                "must be usable without a biometric prompt"
            )

    def _new_entry(self) -> str:
        material = secrets.token_bytes(self.spec.key_size_bits // 8)
        logger.info("Generating field-encryption key '%s'", self.alias)
        return json.dumps({
            "alg": self.spec.algorithm,
            "size": self.spec.key_size_bits,
            "mode": self.spec.block_mode,
            "material": encode_bytes(material),
        })

    def _parse_entry(self, raw: str) -> KeyHandle:
        try:
            entry = json.loads(raw)
            if not isinstance(entry, dict) or not isinstance(entry.get("material"), str):
                raise ValueError("malformed key entry")
            if (
                entry["alg"] != self.spec.algorithm
                or entry["size"] != self.spec.key_size_bits
                or entry["mode"] != self.spec.block_mode
            ):
                raise ValueError("key parameters do not match")
            material = decode_bytes(entry["material"])
        except (ValueError, KeyError, TypeError, binascii.Error) as e:
            raise KeyUnavailable("keystore entry corrupted") from e
        if len(material) * 8 != self.spec.key_size_bits:
            raise KeyUnavailable("keystore entry corrupted")
        return KeyHandle(self.alias, self.spec, material)

    def _key_unavailable(self, error: KeyUnavailable) -> KeyUnavailable:
        self.audit.log_event(
            event_type=EventType.KEY_UNAVAILABLE,
            severity=EventSeverity.CRITICAL,
            message="Field-encryption key unavailable",
            details={"alias": self.alias, "reason": str(error)},
        )
        return error

    def ensure_key(self) -> None:
        created = []

        def factory() -> str:
            entry = self._new_entry()
            created.append(entry)
            return entry

        try:
            stored = self.keystore.get_or_create(self.alias, factory)
        except VaultAccessError as e:
            raise self._key_unavailable(KeyUnavailable("keystore access denied")) from e

        if created and created[0] == stored:
            self.audit.log_event(
                event_type=EventType.KEY_GENERATED,
                severity=EventSeverity.INFO,
                message="Field-encryption key generated",
                details={"alias": self.alias, "algorithm": "AES-256-GCM"},
            )

    def get_key(self) -> KeyHandle:
        with self._cache_lock:
            if self._cached is not None:
                return self._cached

            try:
                raw = self.keystore.get(self.alias)
            except VaultAccessError as e:
                raise self._key_unavailable(KeyUnavailable("keystore access denied")) from e
            if raw is None:
                raise self._key_unavailable(KeyUnavailable("key missing"))
            try:
                handle = self._parse_entry(raw)
            except KeyUnavailable as e:
                raise self._key_unavailable(e)

            self._cached = handle
            return handle

    def has_key(self) -> bool:
        return self.keystore.contains(self.alias)

    def delete_key(self) -> None:
        with self._cache_lock:
            self.keystore.delete(self.alias)
            self._cached = None
        self.audit.log_event(
            event_type=EventType.KEY_DELETED,
            severity=EventSeverity.ALERT,
            message="Field-encryption key deleted",
            details={"alias": self.alias},
        )
