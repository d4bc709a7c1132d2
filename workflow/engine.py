"""State machine sequencing validation, checks, backup, confirmation and execution."""
from __future__ import annotations

import fnmatch
import logging
import os
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

import psutil

from adapters.base import AdapterError
from backup.api import BackupManager
from backup.errors import BackupError
from journal.api import OperationJournal
from journal.types import OperationStatus, OperationType, new_operation_id
from preflight.checks import ContextChecks
from preflight.types import CheckItem, CheckReport, CheckSeverity
from protection.engine import ProtectionEngine, normalize_path
from protection.types import Verdict, VerdictKind

from .confirm import ConfirmationRequest, Confirmer
from .errors import ExecutionError, NotFoundError, ValidationError
from .executor import Modifier, OperationExecutor
from .levels import BackupPolicy, SafetyLevel, WarningMode, get_safety_level
from .logs import WorkflowLogger
from .types import (
    BatchClassification,
    BatchResult,
    TargetOutcome,
    TargetResult,
    WorkflowState,
    classify,
)

LOGGER = logging.getLogger("fub.workflow")


def new_batch_id() -> str:
    return "batch_" + new_operation_id()[len("op_"):]


def prepare_targets(op_type: OperationType, targets: Iterable[str]) -> List[str]:
    """Normalise path targets and drop duplicates, keeping the first occurrence."""

    seen = set()
    prepared: List[str] = []
    for raw in targets:
        text = str(raw).strip()
        if not text:
            raise ValueError("empty target")
        target = normalize_path(text) if op_type.is_path_target else text
        if target in seen:
            continue
        seen.add(target)
        prepared.append(target)
    return prepared


@dataclass(slots=True)
class _Plan:
    verdict: Verdict
    operation_id: str
    backup_ref: Optional[str] = None
    backup_error: Optional[str] = None

    @property
    def target(self) -> str:
        return self.verdict.target


class SafetyWorkflow:
    """Run one batch of destructive operations under a safety level.

    Validation is fail-closed: a single blocking verdict refuses the whole
    batch before anything is snapshotted or touched. After that every target
    is handled on its own; a failure is recorded against its operation and
    the batch carries on.
    """

    def __init__(
        self,
        *,
        protection: ProtectionEngine,
        backups: BackupManager,
        journal: OperationJournal,
        executor: OperationExecutor,
        confirmer: Confirmer,
        logger: WorkflowLogger,
        checks: Optional[ContextChecks] = None,
        important_patterns: Sequence[str] = (),
    ) -> None:
        self._protection = protection
        self._backups = backups
        self._journal = journal
        self._executor = executor
        self._confirmer = confirmer
        self._logger = logger
        self._checks = checks
        self._important = [str(pattern) for pattern in important_patterns]

    # ------------------------------------------------------------------
    def run(
        self,
        op_type: "OperationType | str",
        targets: Sequence[str],
        description: str,
        safety_level: "SafetyLevel | str",
        *,
        skip_confirmations: bool = False,
        dry_run: bool = False,
        modifier: Optional[Modifier] = None,
        confirmer: Optional[Confirmer] = None,
    ) -> BatchResult:
        confirmer = confirmer or self._confirmer
        op = OperationType.parse(op_type)
        level = get_safety_level(safety_level)
        prepared = prepare_targets(op, targets)
        batch_id = new_batch_id()
        result = BatchResult(
            batch_id=batch_id,
            op_type=op.value,
            description=description,
            level=level.name,
            state=WorkflowState.INIT,
            classification=BatchClassification.SUCCESS,
            dry_run=dry_run,
        )
        self._logger.log_state(batch_id, WorkflowState.INIT.value, op_type=op.value, level=level.name,
                               targets=len(prepared), dry_run=dry_run)

        verdicts = self._protection.validate(prepared, op, level)
        result.verdicts = verdicts
        blocking = [verdict for verdict in verdicts if verdict.blocking]
        if blocking:
            error = ValidationError(
                "; ".join(f"{verdict.target}: {verdict.reason}" for verdict in blocking),
                targets=[verdict.target for verdict in blocking],
            )
            self._logger.log_error(batch_id, WorkflowState.CHECKED.value, error)
            reasons = {verdict.target: verdict.reason for verdict in blocking}
            return self._blocked(result, prepared, f"protected target(s): {error}", reasons)

        eligible: List[Verdict] = []
        for verdict in verdicts:
            if verdict.kind is VerdictKind.NOT_FOUND:
                skip = NotFoundError(verdict.reason or f"{verdict.target} not found")
                result.results.append(TargetResult(verdict.target, None, TargetOutcome.SKIPPED, str(skip)))
                self._logger.log_target(batch_id, "skip", verdict.target, True, reason=str(skip))
                continue
            if verdict.overridden:
                self._logger.log_target(batch_id, "override", verdict.target, True, reason=verdict.reason)
            eligible.append(verdict)
        self._logger.log_state(batch_id, WorkflowState.CHECKED.value, eligible=len(eligible))

        eligible_targets = [verdict.target for verdict in eligible]
        report = self._run_checks(batch_id, eligible_targets, level)
        result.warnings = report.warnings
        if eligible and result.warnings and not dry_run:
            accepted = self._handle_warnings(
                confirmer, batch_id, op, description, eligible_targets, level, result.warnings
            )
            if not accepted:
                return self._blocked(result, eligible_targets, "warnings not acknowledged", {})

        if dry_run:
            for target in eligible_targets:
                result.results.append(TargetResult(target, None, TargetOutcome.SKIPPED, "dry run"))
            return self._finish(result, WorkflowState.DONE)

        plans = [self._backup(batch_id, op, verdict, level) for verdict in eligible]
        self._logger.log_state(
            batch_id,
            WorkflowState.BACKED_UP.value,
            snapshots=sum(1 for plan in plans if plan.backup_ref),
            backup_failures=sum(1 for plan in plans if plan.backup_error),
        )

        runnable = [plan for plan in plans if not plan.backup_error]
        if runnable and level.require_confirmation and not skip_confirmations:
            request = ConfirmationRequest(
                kind="execute",
                op_type=op.value,
                description=description,
                targets=[plan.target for plan in runnable],
                level=level.name,
                warnings=list(result.warnings) if level.warning_mode is WarningMode.SHOW else [],
                unbacked=[plan.target for plan in runnable if not plan.backup_ref],
            )
            if not confirmer.confirm(request):
                for plan in plans:
                    if plan.backup_ref:
                        self._backups.discard(plan.backup_ref)
                    elif plan.backup_error:
                        result.results.append(self._record_backup_failure(batch_id, op, description, level, plan))
                return self._blocked(result, eligible_targets, "confirmation declined", {})
        self._logger.log_state(batch_id, WorkflowState.CONFIRMED.value, skipped_prompt=skip_confirmations)

        self._logger.log_state(batch_id, WorkflowState.EXECUTING.value)
        for plan in plans:
            result.results.append(self._execute(batch_id, op, description, level, plan, modifier))

        result.classification = classify(result.results)
        final = WorkflowState.FAILED if result.classification is BatchClassification.TOTAL_FAILURE else WorkflowState.DONE
        return self._finish(result, final)

    # ------------------------------------------------------------------
    def _run_checks(self, batch_id: str, targets: List[str], level: SafetyLevel) -> CheckReport:
        if self._checks is None or not targets or not (level.run_basic_checks or level.run_advanced_checks):
            return CheckReport()
        try:
            report = self._checks.run(targets, basic=level.run_basic_checks, advanced=level.run_advanced_checks)
        except (AdapterError, OSError, psutil.Error) as exc:
            self._logger.log_error(batch_id, "checks", exc)
            return CheckReport(
                items=[
                    CheckItem(
                        code="checks_failed",
                        severity=CheckSeverity.INFO,
                        message=f"context checks could not run: {exc}",
                        where="preflight",
                    )
                ],
                ran_basic=level.run_basic_checks,
                ran_advanced=level.run_advanced_checks,
            )
        for item in report.items:
            self._logger.event(
                event="check",
                phase=item.code,
                ok=item.severity is not CheckSeverity.WARNING,
                batch_id=batch_id,
                message=item.message,
                where=item.where,
            )
        return report

    def _handle_warnings(
        self,
        confirmer: Confirmer,
        batch_id: str,
        op: OperationType,
        description: str,
        targets: List[str],
        level: SafetyLevel,
        warnings: List[CheckItem],
    ) -> bool:
        if level.warning_mode is WarningMode.LOG:
            for item in warnings:
                LOGGER.warning("%s: %s", item.code, item.message)
            return True
        if level.warning_mode is WarningMode.SHOW:
            return True
        request = ConfirmationRequest(
            kind="warnings",
            op_type=op.value,
            description=description,
            targets=list(targets),
            level=level.name,
            warnings=list(warnings),
        )
        accepted = confirmer.confirm(request)
        self._logger.event(event="warnings", phase="acknowledge", ok=accepted, batch_id=batch_id, count=len(warnings))
        return accepted

    def needs_backup(self, op: OperationType, verdict: Verdict, level: SafetyLevel) -> bool:
        policy = level.require_backup
        if policy is BackupPolicy.NEVER or op is OperationType.DIRECTORY_CREATE:
            return False
        if policy is BackupPolicy.ALWAYS or op is OperationType.FILE_MODIFY:
            return True
        if op.is_path_target and self._is_important(verdict.target):
            return True
        return not verdict.allow_matched

    def _is_important(self, target: str) -> bool:
        name = os.path.basename(target)
        return any(fnmatch.fnmatchcase(name, pattern) for pattern in self._important)

    def _backup(self, batch_id: str, op: OperationType, verdict: Verdict, level: SafetyLevel) -> _Plan:
        plan = _Plan(verdict=verdict, operation_id=new_operation_id())
        if not self.needs_backup(op, verdict, level):
            return plan
        try:
            snapshot = self._backups.snapshot(plan.operation_id, op, verdict.target)
        except (BackupError, AdapterError, OSError) as exc:
            self._logger.log_error(batch_id, WorkflowState.BACKED_UP.value, exc, target=verdict.target)
            if level.backup_failure_fatal:
                plan.backup_error = f"backup failed: {exc}"
            else:
                LOGGER.warning("continuing without a snapshot of %s: %s", verdict.target, exc)
            return plan
        plan.backup_ref = snapshot.snapshot_id
        return plan

    def _execute(
        self,
        batch_id: str,
        op: OperationType,
        description: str,
        level: SafetyLevel,
        plan: _Plan,
        modifier: Optional[Modifier],
    ) -> TargetResult:
        if plan.backup_error:
            return self._record_backup_failure(batch_id, op, description, level, plan)
        operation_id = self._record(batch_id, op, description, level, plan)
        try:
            self._executor.execute(op, plan.target, operation_id=operation_id, modifier=modifier)
        except ExecutionError as exc:
            self._journal.update_status(operation_id, OperationStatus.FAILED, error=str(exc))
            self._logger.log_target(batch_id, "execute", plan.target, False, operation_id=operation_id, error=str(exc))
            return TargetResult(plan.target, operation_id, TargetOutcome.FAILED, str(exc), plan.backup_ref)
        self._journal.update_status(operation_id, OperationStatus.COMPLETED)
        self._logger.log_target(batch_id, "execute", plan.target, True, operation_id=operation_id,
                                backup_ref=plan.backup_ref)
        return TargetResult(plan.target, operation_id, TargetOutcome.COMPLETED, "", plan.backup_ref)

    def _record(self, batch_id: str, op: OperationType, description: str, level: SafetyLevel, plan: _Plan) -> str:
        details = {
            "batch_id": batch_id,
            "safety_level": level.name,
            "verdict": plan.verdict.kind.value,
            "overridden": plan.verdict.overridden,
        }
        return self._journal.record(
            op,
            plan.target,
            description,
            operation_id=plan.operation_id,
            backup_ref=plan.backup_ref,
            details=details,
        )

    def _record_backup_failure(
        self, batch_id: str, op: OperationType, description: str, level: SafetyLevel, plan: _Plan
    ) -> TargetResult:
        operation_id = self._record(batch_id, op, description, level, plan)
        self._journal.update_status(operation_id, OperationStatus.FAILED, error=plan.backup_error)
        self._logger.log_target(batch_id, "backup", plan.target, False, operation_id=operation_id,
                                error=plan.backup_error)
        return TargetResult(plan.target, operation_id, TargetOutcome.FAILED, plan.backup_error)

    def _blocked(self, result: BatchResult, targets: List[str], reason: str, per_target: dict) -> BatchResult:
        result.classification = BatchClassification.BLOCKED
        result.reason = reason
        handled = {item.target for item in result.results}
        for target in targets:
            if target in handled:
                continue
            result.results.append(
                TargetResult(target, None, TargetOutcome.SKIPPED, per_target.get(target) or f"batch blocked: {reason}")
            )
        return self._finish(result, WorkflowState.BLOCKED)

    def _finish(self, result: BatchResult, state: WorkflowState) -> BatchResult:
        result.state = state
        self._logger.log_state(
            result.batch_id,
            state.value,
            ok=state is not WorkflowState.FAILED and result.classification is not BatchClassification.BLOCKED,
            classification=result.classification.value,
            succeeded=result.succeeded,
            failed=result.failed,
            skipped=result.skipped,
            reason=result.reason or None,
        )
        LOGGER.info(
            "batch %s %s: %s (%d ok, %d failed, %d skipped)",
            result.batch_id,
            result.op_type,
            result.classification.value,
            result.succeeded,
            result.failed,
            result.skipped,
        )
        return result


__all__ = ["SafetyWorkflow", "new_batch_id", "prepare_targets"]
