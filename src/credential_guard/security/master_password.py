# Master Password Authenticator
#
# Gates application access behind a user-chosen secret, independent from the
# field-encryption key.
#
#   Uninitialized ──set_master_password──▶ Set
#
# Stored in the vault: base64(SHA-256(utf-8 password)), biometric flag,
# first-launch-done flag. The raw password is never persisted or logged.
# The digest is unsalted single-round SHA-256 for stored-format
# compatibility; see DESIGN.md.

import base64
import hashlib
import hmac
import logging
from typing import Optional, Tuple

from .. import config
from ..core.audit_log import AuditLogger, EventSeverity, EventType
from ..errors import ValidationError
from ..vault.base import SecureVault

logger = logging.getLogger(__name__)

KEY_PASSWORD_HASH = "master_password_hash"
KEY_BIOMETRIC_ENABLED = "biometric_enabled"
KEY_FIRST_LAUNCH_DONE = "first_launch_done"

OWNED_KEYS = (KEY_PASSWORD_HASH, KEY_BIOMETRIC_ENABLED, KEY_FIRST_LAUNCH_DONE)

_TRUE = "true"
_FALSE = "false"


def validate_master_password(password: str) -> None:
    """
    Check a candidate against the master password policy.

    Requirements:
    - At least 6 characters
    - Letters and digits only

    Raises:
        ValidationError: With a user-facing reason
    """
    if len(password) < config.MASTER_PASSWORD_MIN_LENGTH:
        raise ValidationError(
            f"Master password must be at least {config.MASTER_PASSWORD_MIN_LENGTH} characters long"
        )

    if not all(c.isalpha() or c.isdecimal() for c in password):
        raise ValidationError("Master password may contain only letters and digits")


def hash_password(password: str) -> bytes:
    """One-way digest of the password (SHA-256 over UTF-8)."""
    return hashlib.sha256(password.encode("utf-8")).digest()


class MasterPasswordAuthenticator:
    """Sets, verifies and clears the master credential."""

    def __init__(self, vault: SecureVault, audit_logger: Optional[AuditLogger] = None):
        self.vault = vault
        self.audit = audit_logger or AuditLogger()

    def is_first_launch(self) -> bool:
        """True until a master password has been set successfully once."""
        return self.vault.get(KEY_FIRST_LAUNCH_DONE) != _TRUE

    def is_master_password_set(self) -> bool:
        return self.vault.contains(KEY_PASSWORD_HASH)

    def set_master_password(self, password: str) -> Tuple[bool, str]:
        """
        Set (or overwrite) the master password.

        Args:
            password: Candidate master password

        Returns:
            (success, message); nothing is persisted on rejection
        """
        try:
            validate_master_password(password)
        except ValidationError as e:
            self.audit.log_event(
                event_type=EventType.MASTER_PASSWORD_REJECTED,
                severity=EventSeverity.INFO,
                message="Master password rejected by policy",
            )
            return False, str(e)

        digest = base64.b64encode(hash_password(password)).decode("ascii")
        self.vault.put_many({
            KEY_PASSWORD_HASH: digest,
            KEY_FIRST_LAUNCH_DONE: _TRUE,
        })

        self.audit.log_event(
            event_type=EventType.MASTER_PASSWORD_SET,
            severity=EventSeverity.INFO,
            message="Master password set",
        )
        return True, "Master password set"

    def change_master_password(self, current: str, new: str) -> Tuple[bool, str]:
        """Replace the master password after verifying the current one."""
        if not self.verify(current):
            return False, "Current master password is incorrect"

        ok, message = self.set_master_password(new)
        if ok:
            self.audit.log_event(
                event_type=EventType.MASTER_PASSWORD_CHANGED,
                severity=EventSeverity.INFO,
                message="Master password changed",
            )
            return True, "Master password changed"
        return False, message

    def verify(self, password: str) -> bool:
        """
        Check a candidate against the stored digest.

        Returns False when no password is set or it does not match. The
        digest comparison is constant-time.
        """
        stored = self.vault.get(KEY_PASSWORD_HASH)
        if stored is None:
            return False

        try:
            expected = base64.b64decode(stored)
        except ValueError:
            logger.error("Stored master password digest is not valid base64")
            return False

        return hmac.compare_digest(expected, hash_password(password))

    def is_biometric_enabled(self) -> bool:
        return self.vault.get(KEY_BIOMETRIC_ENABLED) == _TRUE

    def set_biometric_enabled(self, enabled: bool) -> None:
        self.vault.put(KEY_BIOMETRIC_ENABLED, _TRUE if enabled else _FALSE)
        self.audit.log_event(
            event_type=EventType.BIOMETRIC_PREFERENCE_CHANGED,
            severity=EventSeverity.INFO,
            message=f"Biometric unlock {'enabled' if enabled else 'disabled'}",
        )

    def clear_all(self) -> None:
        """Erase all master-credential state (reset flow)."""
        self.vault.delete(*OWNED_KEYS)
        self.audit.log_event(
            event_type=EventType.MASTER_PASSWORD_CLEARED,
            severity=EventSeverity.ALERT,
            message="Master credential erased",
        )
