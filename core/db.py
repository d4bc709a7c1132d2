from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

__all__ = [
    "DEFAULT_BUSY_TIMEOUT_MS",
    "SchemaVersionError",
    "connect",
    "ensure_schema",
    "schema_version",
    "transaction",
]

LOGGER = logging.getLogger("fub.core.db")

DEFAULT_BUSY_TIMEOUT_MS = 5000


class SchemaVersionError(sqlite3.DatabaseError):
    """The database was written by a newer release."""


def connect(
    db_path: str | Path,
    *,
    timeout: float = 5.0,
    isolation_level: Optional[str] = None,
) -> sqlite3.Connection:
    """Open a state database shared by the CLI and the API process.

    The parent directory is created on demand. WAL journaling plus a busy
    timeout let two processes record operations without "database is locked"
    failures on short write bursts.
    """

    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(
        str(path),
        timeout=timeout,
        isolation_level=isolation_level,
        check_same_thread=False,
    )
    conn.execute(f"PRAGMA busy_timeout={int(DEFAULT_BUSY_TIMEOUT_MS)}")
    mode = conn.execute("PRAGMA journal_mode=WAL").fetchone()
    if mode and str(mode[0]).lower() != "wal":
        LOGGER.warning("%s: WAL unavailable, journal_mode=%s", path, mode[0])
    conn.execute("PRAGMA synchronous=NORMAL")
    return conn


def schema_version(conn: sqlite3.Connection) -> int:
    row = conn.execute("PRAGMA user_version").fetchone()
    return int(row[0]) if row else 0


def ensure_schema(conn: sqlite3.Connection, script: str, version: int) -> int:
    """Apply ``script`` and stamp ``version`` unless the file is already there.

    Returns the version found before the call. A database stamped with a
    higher version is refused rather than silently downgraded.
    """

    found = schema_version(conn)
    if found > version:
        raise SchemaVersionError(f"database schema v{found} is newer than supported v{version}")
    conn.executescript(script)
    if found < version:
        conn.execute(f"PRAGMA user_version={int(version)}")
        LOGGER.info("database schema stamped v%s (was v%s)", version, found)
    return found


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except Exception:
        conn.rollback()
        raise
    conn.commit()
