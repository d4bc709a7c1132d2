"""Error hierarchy for the operation journal."""
from __future__ import annotations


class JournalError(RuntimeError):
    """Base exception for journal failures."""


class OperationNotFoundError(JournalError, LookupError):
    """Raised when an operation id is not present in the journal."""

    def __init__(self, operation_id: str) -> None:
        super().__init__(f"operation {operation_id} not found")
        self.operation_id = operation_id


class InvalidTransitionError(JournalError, ValueError):
    """Raised when a status update would regress an operation."""


__all__ = ["InvalidTransitionError", "JournalError", "OperationNotFoundError"]
