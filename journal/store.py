"""Storage backends for the operation journal."""
from __future__ import annotations

import json
import logging
import sqlite3
from abc import ABC, abstractmethod
from pathlib import Path
from threading import Lock
from typing import Dict, Iterable, List, Optional

from core.db import connect, ensure_schema, transaction

from .errors import JournalError
from .types import Operation

LOGGER = logging.getLogger("fub.journal.store")

SCHEMA_VERSION = 1

_OPERATIONS_SCHEMA = """
CREATE TABLE IF NOT EXISTS operations (
    id TEXT PRIMARY KEY,
    type TEXT NOT NULL,
    target TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    status TEXT NOT NULL,
    backup_ref TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT,
    error TEXT,
    details TEXT NOT NULL DEFAULT '{}'
);
CREATE INDEX IF NOT EXISTS idx_operations_created ON operations(created_at);
CREATE INDEX IF NOT EXISTS idx_operations_status ON operations(status);
"""

_COLUMNS = "id, type, target, description, status, backup_ref, created_at, updated_at, error, details"


class JournalStore(ABC):
    """Keyed storage of operation records, one record per operation id."""

    @abstractmethod
    def insert(self, operation: Operation) -> None:
        """Persist a new record; raises ``JournalError`` on a duplicate id."""

    @abstractmethod
    def save(self, operation: Operation) -> None:
        """Rewrite the mutable fields of an existing record."""

    @abstractmethod
    def get(self, operation_id: str) -> Optional[Operation]: ...

    @abstractmethod
    def list(self, limit: Optional[int] = None) -> List[Operation]:
        """Return records most recent first."""

    @abstractmethod
    def delete(self, operation_ids: Iterable[str]) -> int: ...

    def close(self) -> None:
        return None


class InMemoryJournalStore(JournalStore):
    def __init__(self) -> None:
        self._records: Dict[str, tuple[int, Dict[str, object]]] = {}
        self._seq = 0
        self._lock = Lock()

    def insert(self, operation: Operation) -> None:
        with self._lock:
            if operation.id in self._records:
                raise JournalError(f"duplicate operation id {operation.id}")
            self._seq += 1
            self._records[operation.id] = (self._seq, operation.to_dict())

    def save(self, operation: Operation) -> None:
        with self._lock:
            if operation.id not in self._records:
                raise JournalError(f"operation {operation.id} is not stored")
            seq, _ = self._records[operation.id]
            self._records[operation.id] = (seq, operation.to_dict())

    def get(self, operation_id: str) -> Optional[Operation]:
        with self._lock:
            entry = self._records.get(operation_id)
        return Operation.from_dict(entry[1]) if entry else None

    def list(self, limit: Optional[int] = None) -> List[Operation]:
        with self._lock:
            entries = sorted(
                self._records.values(),
                key=lambda item: (str(item[1]["created_at"]), item[0]),
                reverse=True,
            )
        if limit is not None:
            entries = entries[: max(0, int(limit))]
        return [Operation.from_dict(payload) for _, payload in entries]

    def delete(self, operation_ids: Iterable[str]) -> int:
        removed = 0
        with self._lock:
            for operation_id in operation_ids:
                if self._records.pop(operation_id, None) is not None:
                    removed += 1
        return removed


class SqliteJournalStore(JournalStore):
    """SQLite backed journal; WAL mode lets separate processes write safely."""

    def __init__(self, db_path: Path) -> None:
        self._path = Path(db_path)
        self._conn = connect(self._path)
        self._conn.row_factory = sqlite3.Row
        self._lock = Lock()
        try:
            ensure_schema(self._conn, _OPERATIONS_SCHEMA, SCHEMA_VERSION)
        except sqlite3.DatabaseError:
            self._conn.close()
            raise

    @property
    def path(self) -> Path:
        return self._path

    @staticmethod
    def _row_to_operation(row: sqlite3.Row) -> Operation:
        payload = dict(row)
        try:
            payload["details"] = json.loads(payload.get("details") or "{}")
        except json.JSONDecodeError:
            LOGGER.warning("operation %s has unreadable details", payload.get("id"))
            payload["details"] = {}
        return Operation.from_dict(payload)

    def insert(self, operation: Operation) -> None:
        data = operation.to_dict()
        with self._lock:
            try:
                with transaction(self._conn):
                    self._conn.execute(
                        f"INSERT INTO operations({_COLUMNS}) VALUES(?,?,?,?,?,?,?,?,?,?)",
                        (
                            data["id"],
                            data["type"],
                            data["target"],
                            data["description"],
                            data["status"],
                            data["backup_ref"],
                            data["created_at"],
                            data["updated_at"],
                            data["error"],
                            json.dumps(data["details"], sort_keys=True),
                        ),
                    )
            except sqlite3.IntegrityError as exc:
                raise JournalError(f"duplicate operation id {operation.id}") from exc

    def save(self, operation: Operation) -> None:
        with self._lock:
            with transaction(self._conn):
                cursor = self._conn.execute(
                    """
                    UPDATE operations
                    SET status=?, backup_ref=?, updated_at=?, error=?, details=?
                    WHERE id=?
                    """,
                    (
                        operation.status.value,
                        operation.backup_ref,
                        operation.updated_at,
                        operation.error,
                        json.dumps(operation.details, sort_keys=True),
                        operation.id,
                    ),
                )
                if cursor.rowcount == 0:
                    raise JournalError(f"operation {operation.id} is not stored")

    def get(self, operation_id: str) -> Optional[Operation]:
        with self._lock:
            row = self._conn.execute(
                f"SELECT {_COLUMNS} FROM operations WHERE id=?", (operation_id,)
            ).fetchone()
        return self._row_to_operation(row) if row else None

    def list(self, limit: Optional[int] = None) -> List[Operation]:
        query = f"SELECT {_COLUMNS} FROM operations ORDER BY created_at DESC, rowid DESC"
        params: tuple = ()
        if limit is not None:
            query += " LIMIT ?"
            params = (max(0, int(limit)),)
        with self._lock:
            rows = self._conn.execute(query, params).fetchall()
        return [self._row_to_operation(row) for row in rows]

    def delete(self, operation_ids: Iterable[str]) -> int:
        ids = [(operation_id,) for operation_id in operation_ids]
        if not ids:
            return 0
        with self._lock:
            with transaction(self._conn):
                before = self._conn.total_changes
                self._conn.executemany("DELETE FROM operations WHERE id=?", ids)
                return self._conn.total_changes - before

    def close(self) -> None:
        with self._lock:
            self._conn.close()


__all__ = ["InMemoryJournalStore", "JournalStore", "SqliteJournalStore"]
