"""
Configuration for credential-guard.

Cryptographic constants are fixed here; deployment settings come from the
environment (optionally a ``.env`` file) through ``Settings.from_env()``.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

APP_NAME = "credential-guard"
APP_VERSION = "1.0.0"

# Field encryption (AES-256-GCM)
KEY_SIZE_BITS = 256
NONCE_SIZE = 12  # 96-bit nonce, recommended size for GCM
TAG_SIZE = 16  # 128-bit authentication tag
FIELD_KEY_ALIAS = "password_encryption_key"

# Database passphrase
PASSPHRASE_BYTES = 32
SALT_SIZE = 32

# Reserved master-password key derivation (PBKDF2-SHA256)
PBKDF2_ITERATIONS = 600_000  # OWASP 2023 recommendation for PBKDF2-SHA256
DERIVED_KEY_LENGTH = 32

# Master password policy
MASTER_PASSWORD_MIN_LENGTH = 6

# Unlock throttling (seconds)
UNLOCK_LOCKOUT_MAX_SECONDS = 16

VAULT_BACKENDS = ("sqlite", "keyring", "memory")

ENV_PREFIX = "CREDENTIAL_GUARD_"


@dataclass
class Settings:
    """Runtime settings.

    Attributes:
        data_dir: Directory for the vault, keystore and credential database.
        vault_backend: ``sqlite``, ``keyring`` or ``memory``.
        keyring_service: Service name used with the OS credential store.
        audit_dir: Directory for daily audit log files (None disables files).
        log_level: Level name for the stdlib root logger.
    """

    data_dir: Path
    vault_backend: str = "sqlite"
    keyring_service: str = APP_NAME
    audit_dir: Optional[Path] = None
    log_level: str = "WARNING"

    def __post_init__(self):
        self.data_dir = Path(self.data_dir)
        if self.audit_dir is not None:
            self.audit_dir = Path(self.audit_dir)
        self.vault_backend = self.vault_backend.lower()
        if self.vault_backend not in VAULT_BACKENDS:
            raise ValueError(
                f"Unknown vault backend '{self.vault_backend}'. "
                f"Expected one of: {', '.join(VAULT_BACKENDS)}"
            )

    @property
    def vault_path(self) -> Path:
        return self.data_dir / "secure_vault.db"

    @property
    def keystore_path(self) -> Path:
        return self.data_dir / "keystore.db"

    @property
    def store_path(self) -> Path:
        return self.data_dir / "credentials.db"

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "Settings":
        """Build settings from environment variables (and ``.env`` if present)."""
        load_dotenv(env_file)

        data_dir = Path(
            os.getenv(f"{ENV_PREFIX}DATA_DIR")
            or Path.home() / ".credential_guard"
        ).expanduser()
        audit_dir = os.getenv(f"{ENV_PREFIX}AUDIT_DIR")

        return cls(
            data_dir=data_dir,
            vault_backend=os.getenv(f"{ENV_PREFIX}VAULT_BACKEND", "sqlite"),
            keyring_service=os.getenv(f"{ENV_PREFIX}KEYRING_SERVICE", APP_NAME),
            audit_dir=Path(audit_dir).expanduser() if audit_dir else data_dir / "audit_logs",
            log_level=os.getenv(f"{ENV_PREFIX}LOG_LEVEL", "WARNING").upper(),
        )
