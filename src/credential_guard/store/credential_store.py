# Credential Record Store
#
# SQLite table of credential records. Secret fields arrive already
# encrypted (FieldCipher blobs); the store never sees plaintext secrets.
#
# The database file is bound to the database passphrase by an AES-GCM
# canary in store_meta (key = HKDF-SHA256(passphrase, salt)). Opening the
# file with any other passphrase, e.g. after the passphrase was rotated,
# fails with AuthenticationFailure.

import logging
import os
import sqlite3
from contextlib import closing
from pathlib import Path
from typing import Dict, List, Optional, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from .. import config
from ..core.db import connect as db_connect, restrict_permissions
from ..errors import AuthenticationFailure
from .models import Category, CredentialRecord

logger = logging.getLogger(__name__)

CANARY_PLAINTEXT = b"CREDENTIAL_STORE_OK"
CANARY_INFO = b"credential-guard:store-canary:v1"
SCHEMA_VERSION = "1"

_COLUMNS = "id, title, username, encrypted_secret, category, url, note, created_at, updated_at"


def _canary_key(passphrase: str, salt: bytes) -> bytes:
    return HKDF(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        info=CANARY_INFO,
    ).derive(passphrase.encode("utf-8"))


def _row_to_record(row: sqlite3.Row) -> CredentialRecord:
    return CredentialRecord(
        id=row["id"],
        title=row["title"],
        username=row["username"],
        encrypted_secret=row["encrypted_secret"],
        category=Category.from_name(row["category"]),
        url=row["url"],
        note=row["note"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class CredentialStore:
    """SQLite record store bound to the database passphrase.

    Args:
        db_path: Path to the SQLite file (parent directories are created).
        passphrase: Database passphrase from DatabasePassphraseManager.

    Raises:
        AuthenticationFailure: The file was created under another passphrase.
    """

    def __init__(self, db_path: Union[str, Path], passphrase: str):
        if not passphrase:
            raise ValueError("Database passphrase must not be empty")
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_database()
        self._bind_passphrase(passphrase)

    def _connect(self) -> sqlite3.Connection:
        return db_connect(self.db_path, row_factory=True)

    def _init_database(self):
        with closing(self._connect()) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS store_meta (
                    key TEXT PRIMARY KEY,
                    value BLOB NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS credentials (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    username TEXT NOT NULL,
                    encrypted_secret TEXT NOT NULL,
                    category TEXT NOT NULL,
                    url TEXT,
                    note TEXT,
                    created_at INTEGER NOT NULL,
                    updated_at INTEGER NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_credentials_category ON credentials(category)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_credentials_title ON credentials(title)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_credentials_created_at ON credentials(created_at)")
            conn.commit()
        restrict_permissions(self.db_path)

    def _bind_passphrase(self, passphrase: str):
        with closing(self._connect()) as conn:
            meta = {
                row["key"]: row["value"]
                for row in conn.execute("SELECT key, value FROM store_meta").fetchall()
            }

            if "canary" not in meta:
                salt = os.urandom(config.SALT_SIZE)
                nonce = os.urandom(config.NONCE_SIZE)
                canary = AESGCM(_canary_key(passphrase, salt)).encrypt(nonce, CANARY_PLAINTEXT, None)
                conn.executemany(
                    "INSERT OR REPLACE INTO store_meta (key, value) VALUES (?, ?)",
                    [
                        ("salt", salt),
                        ("canary", nonce + canary),
                        ("version", SCHEMA_VERSION.encode("ascii")),
                    ],
                )
                conn.commit()
                logger.info("Credential store initialized at %s", self.db_path)
                return

        salt = meta["salt"]
        blob = meta["canary"]
        nonce, canary = blob[:config.NONCE_SIZE], blob[config.NONCE_SIZE:]
        try:
            plaintext = AESGCM(_canary_key(passphrase, salt)).decrypt(nonce, canary, None)
        except InvalidTag as e:
            raise AuthenticationFailure("credential store passphrase mismatch") from e
        if plaintext != CANARY_PLAINTEXT:
            raise AuthenticationFailure("credential store canary mismatch")

    # ── Writes ────────────────────────────────────────────────────────

    def upsert(self, record: CredentialRecord) -> None:
        """Insert or replace a record by id."""
        with closing(self._connect()) as conn:
            conn.execute(
                f"INSERT OR REPLACE INTO credentials ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    record.id,
                    record.title,
                    record.username,
                    record.encrypted_secret,
                    record.category.value,
                    record.url,
                    record.note,
                    record.created_at,
                    record.updated_at,
                ),
            )
            conn.commit()

    def delete(self, record_id: str) -> bool:
        """Delete a record. Returns True if it existed."""
        with closing(self._connect()) as conn:
            cur = conn.execute("DELETE FROM credentials WHERE id = ?", (record_id,))
            conn.commit()
            return cur.rowcount > 0

    def wipe(self) -> None:
        """Delete every record (reset flow)."""
        with closing(self._connect()) as conn:
            conn.execute("DELETE FROM credentials")
            conn.commit()

    # ── Reads ─────────────────────────────────────────────────────────

    def get(self, record_id: str) -> Optional[CredentialRecord]:
        with closing(self._connect()) as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM credentials WHERE id = ? LIMIT 1", (record_id,)
            ).fetchone()
        return _row_to_record(row) if row else None

    def list_all(self) -> List[CredentialRecord]:
        """All records, newest first."""
        with closing(self._connect()) as conn:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM credentials ORDER BY created_at DESC"
            ).fetchall()
        return [_row_to_record(row) for row in rows]

    def list_by_category(self, category: Category) -> List[CredentialRecord]:
        with closing(self._connect()) as conn:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM credentials WHERE category = ? ORDER BY created_at DESC",
                (Category(category).value,),
            ).fetchall()
        return [_row_to_record(row) for row in rows]

    def search(self, query: str) -> List[CredentialRecord]:
        """
        Substring search over title, username and url.

        Ranking: title prefix, then title contains, then other matches;
        newest first within each rank.
        """
        escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        contains = f"%{escaped}%"
        prefix = f"{escaped}%"
        with closing(self._connect()) as conn:
            rows = conn.execute(
                f"""SELECT {_COLUMNS} FROM credentials
                    WHERE title LIKE :contains ESCAPE '\\'
                       OR username LIKE :contains ESCAPE '\\'
                       OR url LIKE :contains ESCAPE '\\'
                    ORDER BY
                        CASE
                            WHEN title LIKE :prefix ESCAPE '\\' THEN 0
                            WHEN title LIKE :contains ESCAPE '\\' THEN 1
                            ELSE 2
                        END,
                        created_at DESC""",
                {"contains": contains, "prefix": prefix},
            ).fetchall()
        return [_row_to_record(row) for row in rows]

    def count(self) -> int:
        with closing(self._connect()) as conn:
            return conn.execute("SELECT COUNT(*) FROM credentials").fetchone()[0]

    def category_counts(self) -> Dict[Category, int]:
        with closing(self._connect()) as conn:
            rows = conn.execute(
                "SELECT category, COUNT(*) AS count FROM credentials GROUP BY category"
            ).fetchall()
        return {Category.from_name(row["category"]): row["count"] for row in rows}
