# Field Cipher - per-field authenticated encryption
#
# plaintext (UTF-8) → AES-256-GCM under the KeyProvider key → EncryptedBlob
# Blob wire layout: base64( nonce(12) ‖ ciphertext ‖ tag(16) ), no wrapping
#
# Every encrypt call draws a fresh random 96-bit nonce and builds its own
# cipher context, so the cipher holds no mutable state between calls.

import base64
import binascii
import os
from dataclasses import dataclass
from typing import Optional

from cryptography.exceptions import InvalidTag

from .. import config
from ..core.audit_log import AuditLogger, EventSeverity, EventType
from ..errors import AuthenticationFailure
from .key_provider import KeyProvider


@dataclass(frozen=True)
class EncryptedBlob:
    """One encrypted field: nonce + ciphertext with appended GCM tag."""

    nonce: bytes
    ciphertext_and_tag: bytes

    def __post_init__(self):
        if len(self.nonce) != config.NONCE_SIZE:
            raise ValueError(f"Nonce must be {config.NONCE_SIZE} bytes")

    def encode(self) -> str:
        """Serialize for the record store (standard base64, no wrapping)."""
        return base64.b64encode(self.nonce + self.ciphertext_and_tag).decode("ascii")

    @classmethod
    def decode(cls, encoded: str) -> "EncryptedBlob":
        """Parse a serialized blob.

        Line breaks and other whitespace are ignored so blobs written by
        wrapping base64 encoders still parse.

        Raises:
            AuthenticationFailure: Not base64 or too short to hold nonce + tag.
        """
        compact = "".join(encoded.split())
        try:
            raw = base64.b64decode(compact.encode("ascii"), validate=True)
        except (binascii.Error, UnicodeEncodeError) as e:
            raise AuthenticationFailure("blob is not valid base64") from e

        if len(raw) < config.NONCE_SIZE + config.TAG_SIZE:
            raise AuthenticationFailure("blob too short")

        return cls(
            nonce=raw[:config.NONCE_SIZE],
            ciphertext_and_tag=raw[config.NONCE_SIZE:],
        )


class FieldCipher:
    """
    Encrypts and decrypts individual secret fields.

    Security:
    - AES-256-GCM, 128-bit tag, random 96-bit nonce per call
    - Tag failures raise AuthenticationFailure; partial plaintext is never
      returned
    - Failures are audited without blob or plaintext content

    Safe to share between threads without locking.
    """

    def __init__(self, key_provider: KeyProvider, audit_logger: Optional[AuditLogger] = None):
        self.key_provider = key_provider
        self.audit = audit_logger or AuditLogger()
        self.key_provider.ensure_key()

    def encrypt_blob(self, plaintext: str) -> EncryptedBlob:
        handle = self.key_provider.get_key()
        nonce = os.urandom(config.NONCE_SIZE)
        ciphertext = handle.new_aead().encrypt(nonce, plaintext.encode("utf-8"), None)
        return EncryptedBlob(nonce=nonce, ciphertext_and_tag=ciphertext)

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a UTF-8 string.

        Args:
            plaintext: Secret to protect (may be empty)

        Returns:
            Serialized EncryptedBlob
        """
        return self.encrypt_blob(plaintext).encode()

    def decrypt_blob(self, blob: EncryptedBlob) -> str:
        handle = self.key_provider.get_key()
        try:
            plaintext = handle.new_aead().decrypt(blob.nonce, blob.ciphertext_and_tag, None)
        except InvalidTag as e:
            raise self._failed("authentication tag mismatch") from e

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise self._failed("plaintext is not UTF-8") from e

    def decrypt(self, blob: str) -> str:
        """
        Decrypt a serialized EncryptedBlob.

        Raises:
            AuthenticationFailure: Tampered, corrupted, or wrong key.
            KeyUnavailable: Key cannot be loaded.
        """
        try:
            parsed = EncryptedBlob.decode(blob)
        except AuthenticationFailure as e:
            raise self._failed(e.reason) from e
        return self.decrypt_blob(parsed)

    def _failed(self, reason: str) -> AuthenticationFailure:
        self.audit.log_event(
            event_type=EventType.DECRYPT_FAILED,
            severity=EventSeverity.ALERT,
            message="Field decryption failed: data corrupted or tampered",
            details={"reason": reason},
        )
        return AuthenticationFailure(reason)
