"""Structured logging helpers for workflow runs."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

from core.logging_utils import JsonlEventLogger
from core.paths import get_logs_dir


class WorkflowLogger(JsonlEventLogger):
    """State transitions and per-target outcomes in ``logs/workflow.jsonl``."""

    def __init__(self, working_dir: Path) -> None:
        super().__init__(get_logs_dir(Path(working_dir)) / "workflow.jsonl", logger_name="fub.workflow")

    def log_state(self, batch_id: str, state: str, ok: bool = True, **data: Any) -> None:
        self.event(event="state", phase=state, ok=ok, batch_id=batch_id, **data)

    def log_target(
        self,
        batch_id: str,
        phase: str,
        target: str,
        ok: bool,
        *,
        operation_id: Optional[str] = None,
        **data: Any,
    ) -> None:
        self.event(event="target", phase=phase, ok=ok, batch_id=batch_id, target=target, operation_id=operation_id, **data)

    def log_error(self, batch_id: str, phase: str, err: Exception, **data: Any) -> None:
        self.event(
            event="error",
            phase=phase,
            ok=False,
            batch_id=batch_id,
            err=type(err).__name__,
            err_msg=str(err),
            **data,
        )


__all__ = ["WorkflowLogger"]
