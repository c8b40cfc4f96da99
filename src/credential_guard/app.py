# Application Façade
#
# Composes the credential security components for one process and owns the
# authentication session:
#
#   FIRST_LAUNCH ──set_master_password──▶ UNLOCKED
#   LOCKED ──unlock / biometric success──▶ UNLOCKED ──lock──▶ LOCKED
#
# A new façade always starts LOCKED (or FIRST_LAUNCH); nothing about the
# session survives a process restart.
#
# Security: repeated wrong master passwords trigger an exponential lockout.
# - 1st failed attempt: no delay
# - 2nd failed attempt: 2 second delay
# - 3rd failed attempt: 4 second delay
# - 4th failed attempt: 8 second delay
# - 5th+ failed attempt: 16 second delay

import logging
import threading
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple, Union

from . import config
from .config import Settings
from .core.audit_log import AuditLogger, EventSeverity, EventType
from .errors import AuthenticationFailure, SessionLocked
from .security.biometric import (
    BiometricAvailability,
    BiometricGate,
    BiometricPrompt,
    UnavailableBiometricGate,
)
from .security.db_passphrase import DatabasePassphraseManager
from .security.field_cipher import FieldCipher
from .security.key_provider import KeyProvider, VaultKeyProvider
from .security.master_password import MasterPasswordAuthenticator
from .store.credential_store import CredentialStore
from .store.repository import CredentialRepository
from .vault.base import SecureVault
from .vault.keyring_vault import KeyringVault
from .vault.memory import InMemoryVault
from .vault.sqlite_vault import SQLiteVault

logger = logging.getLogger(__name__)


class AuthState(str, Enum):
    FIRST_LAUNCH = "first_launch"
    LOCKED = "locked"
    UNLOCKED = "unlocked"


def build_vaults(settings: Settings) -> Tuple[SecureVault, SecureVault]:
    """Create the (vault, keystore) pair for the configured backend."""
    if settings.vault_backend == "keyring":
        return (
            KeyringVault(settings.keyring_service),
            KeyringVault(f"{settings.keyring_service}.keystore"),
        )
    if settings.vault_backend == "memory":
        return InMemoryVault(), InMemoryVault()
    return SQLiteVault(settings.vault_path), SQLiteVault(settings.keystore_path)


class CredentialSecurity:
    """
    Application-level composition of the credential security core.

    Args:
        vault: Secure vault for passphrase and master credential
        keystore: Vault holding the field key (defaults to ``vault``)
        audit_logger: Shared security event sink
        biometric_gate: Platform biometric prompt (optional)
        key_provider: Custom KeyProvider (defaults to VaultKeyProvider)
    """

    def __init__(
        self,
        vault: SecureVault,
        keystore: Optional[SecureVault] = None,
        audit_logger: Optional[AuditLogger] = None,
        biometric_gate: Optional[BiometricGate] = None,
        key_provider: Optional[KeyProvider] = None,
    ):
        self.audit = audit_logger or AuditLogger()
        self.vault = vault
        self.keystore = keystore or vault
        self.biometric_gate = biometric_gate or UnavailableBiometricGate()

        self.key_provider = key_provider or VaultKeyProvider(
            self.keystore, audit_logger=self.audit
        )
        self.cipher = FieldCipher(self.key_provider, audit_logger=self.audit)
        self.passphrases = DatabasePassphraseManager(vault, audit_logger=self.audit)
        self.master = MasterPasswordAuthenticator(vault, audit_logger=self.audit)

        self._unlocked = False
        self._state_lock = threading.Lock()

        # Rate limiting for unlock attempts (prevent brute force)
        self.failed_attempts = 0
        self.lockout_until: Optional[datetime] = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        biometric_gate: Optional[BiometricGate] = None,
    ) -> "CredentialSecurity":
        settings.data_dir.mkdir(parents=True, exist_ok=True)
        vault, keystore = build_vaults(settings)
        return cls(
            vault,
            keystore=keystore,
            audit_logger=AuditLogger(log_dir=settings.audit_dir),
            biometric_gate=biometric_gate,
        )

    # ── Session state ─────────────────────────────────────────────────

    @property
    def auth_state(self) -> AuthState:
        if self._unlocked:
            return AuthState.UNLOCKED
        if self.master.is_first_launch() or not self.master.is_master_password_set():
            return AuthState.FIRST_LAUNCH
        return AuthState.LOCKED

    @property
    def is_unlocked(self) -> bool:
        return self._unlocked

    def _set_unlocked(self, method: str):
        with self._state_lock:
            self._unlocked = True
            self.failed_attempts = 0
            self.lockout_until = None
        self.audit.log_event(
            event_type=EventType.SESSION_UNLOCKED,
            severity=EventSeverity.INFO,
            message="Session unlocked",
            details={"method": method},
        )

    def lock(self) -> None:
        with self._state_lock:
            self._unlocked = False
        self.audit.log_event(
            event_type=EventType.SESSION_LOCKED,
            severity=EventSeverity.INFO,
            message="Session locked",
        )

    def require_unlocked(self) -> None:
        if not self._unlocked:
            raise SessionLocked("Session is locked. Unlock with the master password first.")

    # ── Master password ───────────────────────────────────────────────

    def set_master_password(self, password: str) -> Tuple[bool, str]:
        """First-launch setup; a successful set unlocks the session."""
        if not self.master.is_first_launch():
            self.require_unlocked()
        ok, message = self.master.set_master_password(password)
        if ok:
            self._set_unlocked("setup")
        return ok, message

    def change_master_password(self, current: str, new: str) -> Tuple[bool, str]:
        self.require_unlocked()
        return self.master.change_master_password(current, new)

    def unlock(self, password: str) -> Tuple[bool, str]:
        """
        Unlock the session with the master password.

        Returns:
            (success, message)
        """
        if self.lockout_until and datetime.now() < self.lockout_until:
            remaining = max(1, int((self.lockout_until - datetime.now()).total_seconds()))
            self.audit.log_event(
                event_type=EventType.SESSION_UNLOCK_FAILED,
                severity=EventSeverity.INVESTIGATE,
                message=f"Unlock attempt during lockout period ({remaining}s remaining)",
            )
            return False, f"Too many failed attempts. Please wait {remaining} seconds."

        if not self.master.is_master_password_set():
            return False, "No master password set. Complete first-launch setup."

        if self.master.verify(password):
            self._set_unlocked("master_password")
            return True, "Unlocked"

        return self._handle_failed_unlock()

    def _handle_failed_unlock(self) -> Tuple[bool, str]:
        """Rate-limited failure response for wrong password attempts."""
        with self._state_lock:
            self.failed_attempts += 1
            attempts = self.failed_attempts
            delay_seconds = 0
            if attempts > 1:
                delay_seconds = min(2 ** (attempts - 1), config.UNLOCK_LOCKOUT_MAX_SECONDS)
                self.lockout_until = datetime.now() + timedelta(seconds=delay_seconds)

        self.audit.log_event(
            event_type=EventType.SESSION_UNLOCK_FAILED,
            severity=EventSeverity.INVESTIGATE,
            message=f"Unlock failed: incorrect master password (attempt {attempts}, {delay_seconds}s lockout)",
        )

        if delay_seconds == 0:
            return False, "Incorrect master password"
        return False, f"Incorrect master password. Please wait {delay_seconds} seconds before trying again."

    # ── Biometric ─────────────────────────────────────────────────────

    def biometric_available(self) -> bool:
        return (
            self.master.is_biometric_enabled()
            and self.biometric_gate.availability() is BiometricAvailability.AVAILABLE
        )

    async def unlock_with_biometric(
        self, prompt: Optional[BiometricPrompt] = None
    ) -> Tuple[bool, str]:
        """
        Unlock through the biometric gate.

        Only the gate's outcome is consumed; cancelling the awaiting task
        cancels the prompt.
        """
        if not self.master.is_master_password_set():
            return False, "No master password set. Complete first-launch setup."
        if not self.master.is_biometric_enabled():
            return False, "Biometric unlock is disabled"

        availability = self.biometric_gate.availability()
        if availability is not BiometricAvailability.AVAILABLE:
            return False, f"Biometric authentication unavailable ({availability.value})"

        result = await self.biometric_gate.authenticate(prompt or BiometricPrompt())
        if result.succeeded:
            self._set_unlocked("biometric")
            return True, "Unlocked"

        self.audit.log_event(
            event_type=EventType.BIOMETRIC_UNLOCK_FAILED,
            severity=EventSeverity.INFO,
            message="Biometric unlock did not succeed",
            details={"outcome": result.outcome.value},
        )
        return False, result.message or f"Biometric authentication {result.outcome.value}"

    def set_biometric_enabled(self, enabled: bool) -> None:
        self.require_unlocked()
        self.master.set_biometric_enabled(enabled)

    # ── Credential data ───────────────────────────────────────────────

    def open_store(self, db_path: Union[str, Path]) -> CredentialRepository:
        """
        Open the credential store keyed by the database passphrase.

        Raises:
            SessionLocked: Session is not unlocked
            AuthenticationFailure: Store was created under another passphrase
        """
        self.require_unlocked()
        passphrase = self.passphrases.get_or_create()
        try:
            store = CredentialStore(db_path, passphrase)
        except AuthenticationFailure:
            self.audit.log_event(
                event_type=EventType.STORE_PASSPHRASE_MISMATCH,
                severity=EventSeverity.ALERT,
                message="Credential store could not be opened with the current passphrase",
                details={"path": str(db_path)},
            )
            raise
        self.audit.log_event(
            event_type=EventType.STORE_OPENED,
            severity=EventSeverity.INFO,
            message="Credential store opened",
            details={"path": str(db_path)},
        )
        return CredentialRepository(store, self.cipher, audit_logger=self.audit)

    def rotate_database_passphrase(self, db_path: Union[str, Path, None] = None) -> str:
        """
        DESTRUCTIVE: replace the database passphrase.

        When ``db_path`` is given the old store file is deleted first, since
        it can no longer be opened.
        """
        self.require_unlocked()
        if db_path is not None:
            _remove_store_files(Path(db_path))
        return self.passphrases.regenerate()

    # ── Reset ─────────────────────────────────────────────────────────

    def reset(self, db_path: Union[str, Path, None] = None) -> None:
        """
        DESTRUCTIVE: erase all credential security state.

        Clears the master credential, database passphrase, salt and field
        key, deletes the credential store file (if given), and generates a
        fresh field key. This is the recovery path after KeyUnavailable.
        """
        if db_path is not None:
            _remove_store_files(Path(db_path))
        self.master.clear_all()
        self.passphrases.clear_all()
        self.key_provider.delete_key()
        self.key_provider.ensure_key()

        with self._state_lock:
            self._unlocked = False
            self.failed_attempts = 0
            self.lockout_until = None

        self.audit.log_event(
            event_type=EventType.APP_RESET,
            severity=EventSeverity.CRITICAL,
            message="Application reset: all credential security state erased",
        )


def _remove_store_files(db_path: Path) -> None:
    for suffix in ("", "-wal", "-shm"):
        candidate = db_path.with_name(db_path.name + suffix)
        if candidate.exists():
            candidate.unlink()
            logger.info("Removed %s", candidate)
