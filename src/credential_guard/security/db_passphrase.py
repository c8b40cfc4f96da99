"""Database passphrase lifecycle.

One high-entropy passphrase (32 random bytes, base64) protects the credential
record store at rest. It lives only in the secure vault.

    get_or_create()  → lazily created, identical on every later call
    regenerate()     → DESTRUCTIVE: replaces the passphrase; storage keyed
                       with the old value becomes unreadable
    clear_all()      → reset flow only

Also holds the reserved master-password salt slot.
"""

import logging
import secrets
from typing import Optional

from .. import config
from ..core.audit_log import AuditLogger, EventSeverity, EventType
from ..vault.base import SecureVault, decode_bytes, encode_bytes
from .kdf import generate_salt

logger = logging.getLogger(__name__)

KEY_DB_PASSPHRASE = "db_passphrase"
KEY_MASTER_PASSWORD_SALT = "master_password_salt"

OWNED_KEYS = (KEY_DB_PASSPHRASE, KEY_MASTER_PASSWORD_SALT)


def generate_passphrase() -> str:
    """32 bytes from the OS CSPRNG, standard base64 without wrapping."""
    return encode_bytes(secrets.token_bytes(config.PASSPHRASE_BYTES))


class DatabasePassphraseManager:
    """Owns the record-store passphrase and the master-password salt slot."""

    def __init__(self, vault: SecureVault, audit_logger: Optional[AuditLogger] = None):
        self.vault = vault
        self.audit = audit_logger or AuditLogger()

    def get_or_create(self) -> str:
        """Return the passphrase, creating and persisting it on first access."""
        created = []

        def factory() -> str:
            value = generate_passphrase()
            created.append(value)
            return value

        passphrase = self.vault.get_or_create(KEY_DB_PASSPHRASE, factory)

        if created and created[0] == passphrase:
            self.audit.log_event(
                event_type=EventType.DB_PASSPHRASE_CREATED,
                severity=EventSeverity.INFO,
                message="Database passphrase created",
            )
        return passphrase

    def get(self) -> Optional[str]:
        """Non-creating read."""
        return self.vault.get(KEY_DB_PASSPHRASE)

    def regenerate(self) -> str:
        """
        Replace the passphrase unconditionally.

        WARNING: data encrypted at rest under the previous passphrase becomes
        permanently inaccessible. Re-encrypt or discard prior storage first.

        Returns:
            The new passphrase (always different from the previous one)
        """
        previous = self.get()
        passphrase = generate_passphrase()
        while passphrase == previous:
            passphrase = generate_passphrase()

        self.vault.put(KEY_DB_PASSPHRASE, passphrase)

        self.audit.log_event(
            event_type=EventType.DB_PASSPHRASE_ROTATED,
            severity=EventSeverity.ALERT,
            message="Database passphrase regenerated; previous passphrase destroyed",
            details={"had_previous": previous is not None},
        )
        return passphrase

    def save_salt(self, salt: bytes) -> None:
        """Store the master-password salt (base64 in the vault)."""
        if not salt:
            raise ValueError("Salt must not be empty")
        self.vault.put(KEY_MASTER_PASSWORD_SALT, encode_bytes(salt))

    def get_salt(self) -> Optional[bytes]:
        """
        Read the master-password salt.

        Raises:
            binascii.Error: If the stored value is not valid base64.
        """
        stored = self.vault.get(KEY_MASTER_PASSWORD_SALT)
        if stored is None:
            return None
        return decode_bytes(stored)

    def get_or_create_salt(self) -> bytes:
        """Salt for master-password key derivation, created on first use."""
        stored = self.vault.get_or_create(
            KEY_MASTER_PASSWORD_SALT, lambda: encode_bytes(generate_salt())
        )
        return decode_bytes(stored)

    def clear_all(self) -> None:
        """Erase the passphrase and salt (application reset only)."""
        self.vault.delete(*OWNED_KEYS)
        self.audit.log_event(
            event_type=EventType.DB_PASSPHRASE_CLEARED,
            severity=EventSeverity.ALERT,
            message="Database passphrase and salt erased",
        )
