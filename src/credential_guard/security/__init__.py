# Credential Security Module
#
# Key hierarchy and authenticated encryption:
#   KeyProvider → FieldCipher              (per-field AES-256-GCM)
#   DatabasePassphraseManager               (record store at rest)
#   MasterPasswordAuthenticator             (application gate)

from .biometric import (
    BiometricAvailability,
    BiometricGate,
    BiometricOutcome,
    BiometricPrompt,
    BiometricResult,
    UnavailableBiometricGate,
)
from .db_passphrase import DatabasePassphraseManager
from .field_cipher import EncryptedBlob, FieldCipher
from .key_provider import KeyHandle, KeyProvider, KeySpec, VaultKeyProvider
from .master_password import MasterPasswordAuthenticator, validate_master_password

__all__ = [
    "KeySpec",
    "KeyHandle",
    "KeyProvider",
    "VaultKeyProvider",
    "EncryptedBlob",
    "FieldCipher",
    "DatabasePassphraseManager",
    "MasterPasswordAuthenticator",
    "validate_master_password",
    "BiometricAvailability",
    "BiometricGate",
    "BiometricOutcome",
    "BiometricPrompt",
    "BiometricResult",
    "UnavailableBiometricGate",
]
