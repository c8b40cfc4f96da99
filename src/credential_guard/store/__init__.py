# Credential Record Store Module
#
# SQLite credential records with encrypted secret fields.

from .credential_store import CredentialStore
from .models import Category, CredentialRecord
from .repository import CredentialRepository

__all__ = ["Category", "CredentialRecord", "CredentialStore", "CredentialRepository"]
