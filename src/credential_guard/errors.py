# Error taxonomy for the credential security core.
#
# Messages are user-facing summaries. They never carry plaintext secrets,
# passwords, passphrases or key material.


class CredentialGuardError(Exception):
    """Base class for all credential-guard errors."""


class KeyUnavailable(CredentialGuardError):
    """The field-encryption key cannot be loaded.

    Fatal: the keystore is missing, denied or corrupted (for example after a
    device reset invalidated the stored key). Recovery requires a data reset;
    callers must not retry silently.
    """

    def __init__(self, detail: str = ""):
        message = "cannot access secure storage, reset required"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class AuthenticationFailure(CredentialGuardError):
    """Authenticated decryption failed: data corrupted or tampered."""

    def __init__(self, detail: str = ""):
        self.reason = detail
        message = "data corrupted or tampered"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class ValidationError(CredentialGuardError):
    """Master password does not satisfy the password policy."""


class VaultAccessError(CredentialGuardError):
    """Secure vault I/O failed (transient, retried once by the vault)."""


class SessionLocked(CredentialGuardError):
    """Credential data was requested while the session is locked."""
