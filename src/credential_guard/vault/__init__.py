# Secure Vault Module
#
# Named key/value storage for the database passphrase, master-password
# digest, preference flags and the field-encryption keystore entry.

from .base import SecureVault, decode_bytes, encode_bytes
from .keyring_vault import KeyringVault
from .memory import InMemoryVault
from .sqlite_vault import SQLiteVault

__all__ = [
    "SecureVault",
    "InMemoryVault",
    "SQLiteVault",
    "KeyringVault",
    "encode_bytes",
    "decode_bytes",
]
