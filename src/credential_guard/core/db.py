# Central SQLite Connection Helper
#
# Every credential-guard SQLite database (vault, keystore, record store)
# opens connections through `connect()`:
#
#   - WAL journal mode (concurrent readers + one writer)
#   - busy_timeout to avoid SQLITE_BUSY under contention
#   - foreign_keys enforcement on every connection
#
# Files are restricted to the owning user on creation.

import os
import sqlite3
from pathlib import Path
from typing import Union


def connect(
    db_path: Union[str, Path],
    *,
    row_factory: bool = False,
    check_same_thread: bool = True,
    isolation_level: Union[str, None] = "",
) -> sqlite3.Connection:
    """Open a SQLite connection with WAL mode and safe PRAGMAs.

    Args:
        db_path: Path to the database file.
        row_factory: If True, set conn.row_factory = sqlite3.Row.
        check_same_thread: Passed to sqlite3.connect().
        isolation_level: Passed to sqlite3.connect(); None gives autocommit
            mode so callers can issue BEGIN IMMEDIATE themselves.

    Returns:
        sqlite3.Connection with WAL mode, busy_timeout, and foreign_keys.
    """
    conn = sqlite3.connect(
        str(db_path),
        check_same_thread=check_same_thread,
        isolation_level=isolation_level,
    )
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA busy_timeout=5000")
    conn.execute("PRAGMA foreign_keys=ON")
    if row_factory:
        conn.row_factory = sqlite3.Row
    return conn


def restrict_permissions(db_path: Union[str, Path]) -> None:
    """Owner read/write only (no-op where chmod is not supported)."""
    path = Path(db_path)
    if path.exists() and os.name == "posix":
        os.chmod(path, 0o600)
