"""Typed undo failures, each carrying remediation text for the operator."""
from __future__ import annotations

from typing import Optional

from journal.errors import OperationNotFoundError


class UndoError(RuntimeError):
    kind = "undo_error"

    def __init__(self, message: str, *, remediation: str = "", operation_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.remediation = remediation
        self.operation_id = operation_id

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "message": str(self),
            "remediation": self.remediation,
            "operation_id": self.operation_id,
        }


class MissingBackupError(UndoError):
    kind = "missing_backup"


class TargetNotEmptyError(UndoError):
    kind = "target_not_empty"


class AdapterFailureError(UndoError):
    kind = "adapter_failure"


__all__ = [
    "AdapterFailureError",
    "MissingBackupError",
    "OperationNotFoundError",
    "TargetNotEmptyError",
    "UndoError",
]
