"""
credential-guard
Local credential security core: master-password gate, database passphrase
management and per-field AES-256-GCM encryption. No network transmission.
"""

from .app import AuthState, CredentialSecurity
from .config import APP_VERSION as __version__
from .errors import (
    AuthenticationFailure,
    CredentialGuardError,
    KeyUnavailable,
    SessionLocked,
    ValidationError,
    VaultAccessError,
)

__all__ = [
    "__version__",
    "AuthState",
    "CredentialSecurity",
    "CredentialGuardError",
    "KeyUnavailable",
    "AuthenticationFailure",
    "ValidationError",
    "VaultAccessError",
    "SessionLocked",
]
