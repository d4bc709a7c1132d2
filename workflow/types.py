"""Batch result types produced by the workflow."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from preflight.types import CheckItem
from protection.types import Verdict

from .errors import ExecutionError, ValidationError


class WorkflowState(str, Enum):
    INIT = "init"
    CHECKED = "checked"
    BACKED_UP = "backed_up"
    CONFIRMED = "confirmed"
    EXECUTING = "executing"
    DONE = "done"
    FAILED = "failed"
    BLOCKED = "blocked"


class TargetOutcome(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class BatchClassification(str, Enum):
    SUCCESS = "success"
    PARTIAL_FAILURE = "partial_failure"
    TOTAL_FAILURE = "total_failure"
    BLOCKED = "blocked"

    @property
    def exit_code(self) -> int:
        return _EXIT_CODES[self]


_EXIT_CODES = {
    BatchClassification.SUCCESS: 0,
    BatchClassification.BLOCKED: 1,
    BatchClassification.TOTAL_FAILURE: 1,
    BatchClassification.PARTIAL_FAILURE: 2,
}


@dataclass(slots=True)
class TargetResult:
    target: str
    operation_id: Optional[str]
    outcome: TargetOutcome
    reason: str = ""
    backup_ref: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target": self.target,
            "operation_id": self.operation_id,
            "outcome": self.outcome.value,
            "reason": self.reason,
            "backup_ref": self.backup_ref,
        }


def classify(results: List[TargetResult]) -> BatchClassification:
    completed = sum(1 for item in results if item.outcome is TargetOutcome.COMPLETED)
    failed = sum(1 for item in results if item.outcome is TargetOutcome.FAILED)
    if failed and completed:
        return BatchClassification.PARTIAL_FAILURE
    if failed:
        return BatchClassification.TOTAL_FAILURE
    return BatchClassification.SUCCESS


@dataclass(slots=True)
class BatchResult:
    batch_id: str
    op_type: str
    description: str
    level: str
    state: WorkflowState
    classification: BatchClassification
    results: List[TargetResult] = field(default_factory=list)
    verdicts: List[Verdict] = field(default_factory=list)
    warnings: List[CheckItem] = field(default_factory=list)
    dry_run: bool = False
    reason: str = ""

    def _count(self, outcome: TargetOutcome) -> int:
        return sum(1 for item in self.results if item.outcome is outcome)

    @property
    def succeeded(self) -> int:
        return self._count(TargetOutcome.COMPLETED)

    @property
    def failed(self) -> int:
        return self._count(TargetOutcome.FAILED)

    @property
    def skipped(self) -> int:
        return self._count(TargetOutcome.SKIPPED)

    @property
    def exit_code(self) -> int:
        return self.classification.exit_code

    @property
    def operation_ids(self) -> List[str]:
        return [item.operation_id for item in self.results if item.operation_id]

    def raise_for_status(self) -> None:
        """Raise the error matching a non-successful classification."""

        if self.classification is BatchClassification.BLOCKED:
            blocked = [verdict.target for verdict in self.verdicts if verdict.blocking]
            raise ValidationError(self.reason or "batch blocked", targets=blocked)
        for item in self.results:
            if item.outcome is TargetOutcome.FAILED:
                raise ExecutionError(item.reason, target=item.target, operation_id=item.operation_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "op_type": self.op_type,
            "description": self.description,
            "level": self.level,
            "state": self.state.value,
            "classification": self.classification.value,
            "exit_code": self.exit_code,
            "dry_run": self.dry_run,
            "reason": self.reason,
            "counts": {
                "succeeded": self.succeeded,
                "failed": self.failed,
                "skipped": self.skipped,
            },
            "results": [item.to_dict() for item in self.results],
            "verdicts": [verdict.to_dict() for verdict in self.verdicts],
            "warnings": [item.to_dict() for item in self.warnings],
        }


__all__ = [
    "BatchClassification",
    "BatchResult",
    "TargetOutcome",
    "TargetResult",
    "WorkflowState",
    "classify",
]
