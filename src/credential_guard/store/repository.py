# Credential Repository
#
# Bridges the record store and the field cipher: secrets are encrypted
# before they reach the store and decrypted only for a single reveal call.

import logging
from typing import Dict, List, Optional

from ..core.audit_log import AuditLogger, EventSeverity, EventType
from ..security.field_cipher import FieldCipher
from .credential_store import CredentialStore
from .models import Category, CredentialRecord

logger = logging.getLogger(__name__)

_UNSET = object()


class CredentialRepository:
    """CRUD over credential records with per-field secret encryption."""

    def __init__(
        self,
        store: CredentialStore,
        cipher: FieldCipher,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self.store = store
        self.cipher = cipher
        self.audit = audit_logger or AuditLogger()

    def add(
        self,
        title: str,
        username: str,
        secret: str,
        category: Category = Category.OTHER,
        url: Optional[str] = None,
        note: Optional[str] = None,
    ) -> CredentialRecord:
        """
        Encrypt ``secret`` and store a new record.

        Returns:
            The stored record (secret field encrypted)
        """
        if not title.strip():
            raise ValueError("Title must not be empty")

        record = CredentialRecord(
            title=title,
            username=username,
            encrypted_secret=self.cipher.encrypt(secret),
            category=Category.from_name(category),
            url=url,
            note=note,
        )
        self.store.upsert(record)

        self.audit.log_event(
            event_type=EventType.CREDENTIAL_ADDED,
            severity=EventSeverity.INFO,
            message="Credential added",
            details={"record_id": record.id, "category": record.category.value},
        )
        return record

    def update(
        self,
        record_id: str,
        *,
        title: Optional[str] = None,
        username: Optional[str] = None,
        secret: Optional[str] = None,
        category: Optional[Category] = None,
        url=_UNSET,
        note=_UNSET,
    ) -> Optional[CredentialRecord]:
        """
        Update fields of an existing record.

        A new secret gets a new blob (fresh nonce); the old blob is replaced.
        ``url`` / ``note`` accept None to clear them.

        Returns:
            The updated record, or None if the id is unknown
        """
        record = self.store.get(record_id)
        if record is None:
            return None

        changes = {}
        if title is not None:
            changes["title"] = title
        if username is not None:
            changes["username"] = username
        if secret is not None:
            changes["encrypted_secret"] = self.cipher.encrypt(secret)
        if category is not None:
            changes["category"] = Category.from_name(category)
        if url is not _UNSET:
            changes["url"] = url
        if note is not _UNSET:
            changes["note"] = note

        updated = record.with_changes(**changes)
        self.store.upsert(updated)

        self.audit.log_event(
            event_type=EventType.CREDENTIAL_UPDATED,
            severity=EventSeverity.INFO,
            message="Credential updated",
            details={"record_id": record_id, "secret_changed": secret is not None},
        )
        return updated

    def reveal_secret(self, record_id: str) -> Optional[str]:
        """
        Decrypt the secret of one record for display/copy.

        Returns:
            Plaintext secret, or None if the id is unknown

        Raises:
            AuthenticationFailure: Stored blob is corrupted or tampered
        """
        record = self.store.get(record_id)
        if record is None:
            return None

        secret = self.cipher.decrypt(record.encrypted_secret)

        self.audit.log_event(
            event_type=EventType.CREDENTIAL_REVEALED,
            severity=EventSeverity.INFO,
            message="Credential secret accessed",
            details={"record_id": record_id},
        )
        return secret

    def get(self, record_id: str) -> Optional[CredentialRecord]:
        return self.store.get(record_id)

    def delete(self, record_id: str) -> bool:
        deleted = self.store.delete(record_id)
        if deleted:
            self.audit.log_event(
                event_type=EventType.CREDENTIAL_DELETED,
                severity=EventSeverity.INFO,
                message="Credential deleted",
                details={"record_id": record_id},
            )
        return deleted

    def list_all(self) -> List[CredentialRecord]:
        return self.store.list_all()

    def list_by_category(self, category: Category) -> List[CredentialRecord]:
        return self.store.list_by_category(category)

    def search(self, query: str) -> List[CredentialRecord]:
        return self.store.search(query)

    def category_counts(self) -> Dict[Category, int]:
        return self.store.category_counts()
