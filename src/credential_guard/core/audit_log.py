# Security Audit Log
#
# Append-only structured log of security events (key lifecycle, decryption
# failures, unlock attempts, passphrase rotation, resets).
# Events never contain plaintext secrets, passwords, passphrases or keys.

import logging
import os
import socket
import sys
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional
from uuid import uuid4

import structlog

AUDIT_LOGGER_NAME = "credential_guard.audit"


class EventType(str, Enum):
    """Types of security events that can be logged."""

    # Field key
    KEY_GENERATED = "key.generated"
    KEY_DELETED = "key.deleted"
    KEY_UNAVAILABLE = "key.unavailable"

    # Field cipher
    DECRYPT_FAILED = "cipher.decrypt.failed"

    # Database passphrase
    DB_PASSPHRASE_CREATED = "db_passphrase.created"
    DB_PASSPHRASE_ROTATED = "db_passphrase.rotated"
    DB_PASSPHRASE_CLEARED = "db_passphrase.cleared"

    # Master password
    MASTER_PASSWORD_SET = "master_password.set"
    MASTER_PASSWORD_CHANGED = "master_password.changed"
    MASTER_PASSWORD_REJECTED = "master_password.rejected"
    MASTER_PASSWORD_CLEARED = "master_password.cleared"
    BIOMETRIC_PREFERENCE_CHANGED = "biometric.preference.changed"

    # Session
    SESSION_UNLOCKED = "session.unlocked"
    SESSION_UNLOCK_FAILED = "session.unlock.failed"
    SESSION_LOCKED = "session.locked"
    BIOMETRIC_UNLOCK_FAILED = "biometric.unlock.failed"

    # Record store
    STORE_OPENED = "store.opened"
    STORE_PASSPHRASE_MISMATCH = "store.passphrase.mismatch"
    CREDENTIAL_ADDED = "credential.added"
    CREDENTIAL_UPDATED = "credential.updated"
    CREDENTIAL_REVEALED = "credential.revealed"
    CREDENTIAL_DELETED = "credential.deleted"

    # Vault / system
    VAULT_ERROR = "vault.error"
    APP_RESET = "app.reset"


class EventSeverity(str, Enum):
    """
    Severity levels for security events.

    - INFO: normal activity, logged only
    - INVESTIGATE: unusual, worth a look (failed unlock)
    - ALERT: integrity problem (tag mismatch, wrong store passphrase)
    - CRITICAL: user decision required (key unavailable, reset)
    """
    INFO = "info"
    INVESTIGATE = "investigate"
    ALERT = "alert"
    CRITICAL = "critical"


def _configure_structlog() -> None:
    if structlog.is_configured():
        return
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


class AuditLogger:
    """
    Append-only audit logger for security events.

    Features:
    - Structured JSON logging (structlog)
    - Automatic timestamp and event ID
    - OS user / host context capture
    - Optional daily log file

    Instances are created explicitly and handed to the components that log
    through them.
    """

    def __init__(self, log_dir: Optional[Path] = None):
        """
        Initialize audit logger.

        Args:
            log_dir: Directory for daily audit log files. None logs through
                     the stdlib logging tree only.
        """
        self.log_dir = Path(log_dir) if log_dir is not None else None

        _configure_structlog()

        if self.log_dir is not None:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            self._setup_file_handler()

        self.logger = structlog.get_logger(AUDIT_LOGGER_NAME)

    def _setup_file_handler(self):
        """Attach a file handler for today's log (once per file)."""
        today = datetime.now().strftime("%Y-%m-%d")
        log_file = (self.log_dir / f"audit_{today}.log").resolve()

        audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)
        audit_logger.setLevel(logging.INFO)
        for handler in audit_logger.handlers:
            if getattr(handler, "baseFilename", None) == str(log_file):
                return

        file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter('%(message)s'))  # structlog handles formatting
        audit_logger.addHandler(file_handler)

    @property
    def log_file(self) -> Optional[Path]:
        """Path of today's audit log file, if file logging is enabled."""
        if self.log_dir is None:
            return None
        return self.log_dir / f"audit_{datetime.now().strftime('%Y-%m-%d')}.log"

    def log_event(
        self,
        event_type: EventType,
        severity: EventSeverity,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        user_context: Optional[Dict[str, Any]] = None
    ) -> str:
        """
        Log a security event.

        Args:
            event_type: Type of event (from EventType enum)
            severity: Severity level (from EventSeverity enum)
            message: Human-readable event description
            details: Additional event details (never secrets!)
            user_context: User context; defaults to OS user and hostname

        Returns:
            str: Event ID (UUID) for reference
        """
        event_id = str(uuid4())

        event_data = {
            "event_id": event_id,
            "event_type": event_type.value,
            "severity": severity.value,
            "message": message,
            "timestamp": datetime.utcnow().isoformat(),
            "details": details or {},
            "user_context": user_context or self._get_default_user_context(),
        }

        if severity in (EventSeverity.ALERT, EventSeverity.CRITICAL):
            self.logger.warning("security_event", **event_data)
        else:
            self.logger.info("security_event", **event_data)

        return event_id

    def _get_default_user_context(self) -> Dict[str, Any]:
        """Get default user context (OS user, hostname, platform)."""
        return {
            "os_user": os.getenv("USERNAME") or os.getenv("USER"),
            "hostname": socket.gethostname(),
            "platform": sys.platform,
        }
