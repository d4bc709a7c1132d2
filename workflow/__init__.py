"""Safety workflow orchestration."""
from __future__ import annotations

from .confirm import ConfirmationRequest, Confirmer, ConsoleConfirmer, StaticConfirmer
from .engine import SafetyWorkflow
from .errors import BackupError, ExecutionError, NotFoundError, ValidationError, WorkflowError
from .executor import OperationExecutor
from .levels import AGGRESSIVE, CONSERVATIVE, SAFETY_LEVELS, STANDARD, BackupPolicy, SafetyLevel, get_safety_level
from .service import SafetyService
from .types import BatchClassification, BatchResult, TargetOutcome, TargetResult, WorkflowState

__all__ = [
    "AGGRESSIVE",
    "BackupError",
    "BackupPolicy",
    "BatchClassification",
    "BatchResult",
    "CONSERVATIVE",
    "ConfirmationRequest",
    "Confirmer",
    "ConsoleConfirmer",
    "ExecutionError",
    "NotFoundError",
    "OperationExecutor",
    "SAFETY_LEVELS",
    "STANDARD",
    "SafetyLevel",
    "SafetyService",
    "SafetyWorkflow",
    "StaticConfirmer",
    "TargetOutcome",
    "TargetResult",
    "ValidationError",
    "WorkflowError",
    "WorkflowState",
    "get_safety_level",
]
