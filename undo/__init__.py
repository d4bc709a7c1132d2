"""Reversal of journaled operations."""
from __future__ import annotations

from .engine import UndoEngine
from .errors import AdapterFailureError, MissingBackupError, OperationNotFoundError, TargetNotEmptyError, UndoError
from .types import UndoOutcome, UndoStatus, UndoStep

__all__ = [
    "AdapterFailureError",
    "MissingBackupError",
    "OperationNotFoundError",
    "TargetNotEmptyError",
    "UndoEngine",
    "UndoError",
    "UndoOutcome",
    "UndoStatus",
    "UndoStep",
]
