# SQLite Secure Vault
# Key/value vault in a single owner-only SQLite file.
# One table, upserts, fresh connection per call.
#
# Create-if-absent runs inside BEGIN IMMEDIATE so two processes racing on
# first access still persist exactly one value.

import logging
import sqlite3
from contextlib import closing
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, Optional, Union

from ..core.db import connect as db_connect, restrict_permissions
from ..errors import VaultAccessError
from .base import SecureVault

logger = logging.getLogger(__name__)


class SQLiteVault(SecureVault):
    """Vault stored in an owner-only SQLite file.

    Args:
        db_path: Path to the SQLite file (parent directories are created).
    """

    backend_name = "sqlite-vault"

    def __init__(self, db_path: Union[str, Path]):
        super().__init__()
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._attempt("init", self._init_database)

    def _connect(self) -> sqlite3.Connection:
        try:
            return db_connect(self.db_path, isolation_level=None)
        except sqlite3.Error as e:
            raise VaultAccessError(f"cannot open vault database: {e}") from e

    def _init_database(self):
        try:
            with closing(self._connect()) as conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS secure_values (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                """)
        except sqlite3.Error as e:
            raise VaultAccessError(f"cannot initialize vault: {e}") from e
        restrict_permissions(self.db_path)

    def _get(self, key: str) -> Optional[str]:
        try:
            with closing(self._connect()) as conn:
                row = conn.execute(
                    "SELECT value FROM secure_values WHERE key = ?", (key,)
                ).fetchone()
        except sqlite3.Error as e:
            raise VaultAccessError(f"vault read failed: {e}") from e
        return row[0] if row else None

    def _put_many(self, items: Dict[str, str]) -> None:
        now = datetime.utcnow().isoformat()
        try:
            with closing(self._connect()) as conn:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    conn.executemany(
                        """INSERT INTO secure_values (key, value, updated_at)
                           VALUES (?, ?, ?)
                           ON CONFLICT(key) DO UPDATE SET
                               value = excluded.value,
                               updated_at = excluded.updated_at""",
                        [(k, v, now) for k, v in items.items()],
                    )
                except sqlite3.Error:
                    conn.execute("ROLLBACK")
                    raise
                conn.execute("COMMIT")
        except sqlite3.Error as e:
            raise VaultAccessError(f"vault write failed: {e}") from e

    def _delete(self, keys: Iterable[str]) -> None:
        try:
            with closing(self._connect()) as conn:
                conn.executemany(
                    "DELETE FROM secure_values WHERE key = ?",
                    [(k,) for k in keys],
                )
        except sqlite3.Error as e:
            raise VaultAccessError(f"vault delete failed: {e}") from e

    def _clear(self) -> None:
        try:
            with closing(self._connect()) as conn:
                conn.execute("DELETE FROM secure_values")
        except sqlite3.Error as e:
            raise VaultAccessError(f"vault clear failed: {e}") from e

    def _insert_if_absent(self, key: str, value: str) -> str:
        now = datetime.utcnow().isoformat()
        try:
            with closing(self._connect()) as conn:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    conn.execute(
                        """INSERT INTO secure_values (key, value, updated_at)
                           VALUES (?, ?, ?)
                           ON CONFLICT(key) DO NOTHING""",
                        (key, value, now),
                    )
                    row = conn.execute(
                        "SELECT value FROM secure_values WHERE key = ?", (key,)
                    ).fetchone()
                except sqlite3.Error:
                    conn.execute("ROLLBACK")
                    raise
                conn.execute("COMMIT")
        except sqlite3.Error as e:
            raise VaultAccessError(f"vault create failed: {e}") from e
        return row[0]

    def keys(self):
        """Stored key names (never values)."""
        try:
            with closing(self._connect()) as conn:
                rows = conn.execute(
                    "SELECT key FROM secure_values ORDER BY key"
                ).fetchall()
        except sqlite3.Error as e:
            raise VaultAccessError(f"vault read failed: {e}") from e
        return [row[0] for row in rows]
