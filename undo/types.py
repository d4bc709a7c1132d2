"""Outcome types reported by the undo engine."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import UndoError


class UndoStatus(str, Enum):
    UNDONE = "undone"
    ALREADY_UNDONE = "already_undone"
    FAILED = "failed"


@dataclass(slots=True)
class UndoStep:
    name: str
    ok: bool
    detail: str = ""
    error: Optional[UndoError] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "ok": self.ok,
            "detail": self.detail,
            "error": self.error.to_dict() if self.error else None,
        }


@dataclass(slots=True)
class UndoOutcome:
    operation_id: str
    status: UndoStatus
    steps: List[UndoStep] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status is not UndoStatus.FAILED

    @property
    def errors(self) -> List[UndoError]:
        return [step.error for step in self.steps if step.error is not None]

    def raise_for_status(self) -> None:
        errors = self.errors
        if self.status is UndoStatus.FAILED and errors:
            raise errors[0]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation_id": self.operation_id,
            "status": self.status.value,
            "ok": self.ok,
            "steps": [step.to_dict() for step in self.steps],
        }


__all__ = ["UndoOutcome", "UndoStatus", "UndoStep"]
