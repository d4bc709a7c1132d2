"""Error taxonomy of the safety workflow."""
from __future__ import annotations

from typing import List, Optional

from backup.errors import BackupError


class WorkflowError(RuntimeError):
    """Base exception for workflow failures."""


class ValidationError(WorkflowError):
    """A target is protected; the whole batch is refused before any mutation."""

    def __init__(self, message: str, *, targets: Optional[List[str]] = None) -> None:
        super().__init__(message)
        self.targets = list(targets or [])


class NotFoundError(WorkflowError):
    """A target does not exist (or has nothing to act on); it is skipped."""


class ExecutionError(WorkflowError):
    """An adapter action failed for one target; the batch continues."""

    def __init__(self, message: str, *, target: str, operation_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.target = target
        self.operation_id = operation_id


__all__ = [
    "BackupError",
    "ExecutionError",
    "NotFoundError",
    "ValidationError",
    "WorkflowError",
]
