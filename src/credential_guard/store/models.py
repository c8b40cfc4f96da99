"""Credential record model."""

import time
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional


class Category(str, Enum):
    """Fixed credential categories (no user-defined categories)."""
    SOCIAL = "SOCIAL"
    FINANCE = "FINANCE"
    WORK = "WORK"
    OTHER = "OTHER"

    @classmethod
    def from_name(cls, name: Optional[str]) -> "Category":
        """Look up a category by name; unknown names map to OTHER."""
        if name:
            try:
                return cls(name.upper())
            except ValueError:
                pass
        return cls.OTHER


def now_millis() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class CredentialRecord:
    """
    One stored credential.

    ``encrypted_secret`` is a serialized EncryptedBlob; the plaintext secret
    is never held on the record.
    """

    title: str
    username: str
    encrypted_secret: str
    category: Category = Category.OTHER
    url: Optional[str] = None
    note: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: int = field(default_factory=now_millis)
    updated_at: int = field(default_factory=now_millis)

    def with_changes(self, **changes) -> "CredentialRecord":
        """Copy with changed fields and a fresh ``updated_at``."""
        changes.setdefault("updated_at", max(now_millis(), self.updated_at))
        return replace(self, **changes)
