"""Durable journal of attempted operations."""
from __future__ import annotations

from .api import JournalRetention, OperationJournal
from .errors import InvalidTransitionError, JournalError, OperationNotFoundError
from .store import InMemoryJournalStore, JournalStore, SqliteJournalStore
from .types import Operation, OperationStatus, OperationType, new_operation_id

__all__ = [
    "InMemoryJournalStore",
    "InvalidTransitionError",
    "JournalError",
    "JournalRetention",
    "JournalStore",
    "Operation",
    "OperationJournal",
    "OperationNotFoundError",
    "OperationStatus",
    "OperationType",
    "SqliteJournalStore",
    "new_operation_id",
]
