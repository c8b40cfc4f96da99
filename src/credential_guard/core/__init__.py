# Core Module - Shared Utilities
#
# - Audit logging (structlog)
# - SQLite connection helper

from .audit_log import (
    AuditLogger,
    EventSeverity,
    EventType,
)
from .db import connect, restrict_permissions

__all__ = [
    "AuditLogger",
    "EventType",
    "EventSeverity",
    "connect",
    "restrict_permissions",
]
