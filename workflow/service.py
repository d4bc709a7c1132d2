"""Facade wiring settings, stores, adapters and engines together."""
from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from adapters.apt import AptPackageManager
from adapters.base import AdapterError, FileSystem, PackageManager, ServiceManager, resolve_use_sudo
from adapters.local import LocalFileSystem
from adapters.systemd import SystemdServiceManager
from backup.api import BackupManager, retention_policy_from_settings
from backup.errors import BackupError
from core.paths import (
    ensure_working_dir_structure,
    get_journal_db_path,
    get_rules_dir,
    resolve_working_dir,
)
from core.settings import load_settings, merge_defaults
from journal.api import JournalRetention, OperationJournal
from journal.store import JournalStore, SqliteJournalStore
from journal.types import Operation, OperationStatus, OperationType, new_operation_id
from preflight.checks import ContextChecks, SystemContextChecks
from preflight.types import CheckReport
from protection.engine import ProtectionEngine, normalize_path
from protection.store import JsonRuleStore, RuleStore, install_default_rules
from protection.types import ProtectionRule, Tier, Verdict
from undo.engine import UndoEngine
from undo.types import UndoOutcome

from .confirm import Confirmer, ConsoleConfirmer
from .executor import Modifier, OperationExecutor
from .engine import SafetyWorkflow, prepare_targets
from .levels import SafetyLevel, level_from_settings
from .logs import WorkflowLogger
from .types import BatchResult

LOGGER = logging.getLogger("fub.workflow")


def _fixed_content(content: Union[str, bytes]) -> Modifier:
    def _modifier(_target: str) -> Union[str, bytes]:
        return content

    return _modifier


class SafetyService:
    """Single entry point used by the CLI and the HTTP API."""

    def __init__(
        self,
        *,
        working_dir: Path,
        settings: Dict[str, Any],
        rules: RuleStore,
        journal: OperationJournal,
        backups: BackupManager,
        protection: ProtectionEngine,
        undo_engine: UndoEngine,
        workflow: SafetyWorkflow,
        checks: Optional[ContextChecks],
    ) -> None:
        self.working_dir = Path(working_dir)
        self.settings = settings
        self.rules = rules
        self.journal = journal
        self.backups = backups
        self.protection = protection
        self.undo_engine = undo_engine
        self.workflow = workflow
        self.checks = checks

    @classmethod
    def from_settings(
        cls,
        working_dir: Optional[Path] = None,
        settings: Optional[Mapping[str, Any]] = None,
        *,
        filesystem: Optional[FileSystem] = None,
        services: Optional[ServiceManager] = None,
        packages: Optional[PackageManager] = None,
        confirmer: Optional[Confirmer] = None,
        checks: Optional[ContextChecks] = None,
        rules: Optional[RuleStore] = None,
        journal_store: Optional[JournalStore] = None,
    ) -> "SafetyService":
        working = Path(working_dir) if working_dir else resolve_working_dir()
        ensure_working_dir_structure(working)
        cfg = merge_defaults(dict(settings)) if settings is not None else load_settings(working)

        use_sudo = resolve_use_sudo(cfg["adapters"].get("use_sudo", "auto"))
        fs = filesystem or LocalFileSystem()
        svc = services or SystemdServiceManager(use_sudo=use_sudo)
        pkg = packages or AptPackageManager(use_sudo=use_sudo)

        protection_cfg = cfg["protection"]
        if rules is None:
            system_path = protection_cfg.get("system_rules_path")
            user_path = protection_cfg.get("user_rules_path") or get_rules_dir(working) / "protection-rules.json"
            rules = JsonRuleStore(
                system_path=Path(system_path).expanduser() if system_path else None,
                user_path=Path(user_path).expanduser(),
            )

        journal_cfg = cfg["journal"]
        journal = OperationJournal(
            journal_store or SqliteJournalStore(get_journal_db_path(working)),
            retention=JournalRetention(
                max_entries=int(journal_cfg.get("max_entries", 100)),
                retention_days=int(journal_cfg.get("retention_days", 30)),
            ),
        )
        backups = BackupManager(
            working,
            filesystem=fs,
            services=svc,
            packages=pkg,
            policy=retention_policy_from_settings(cfg),
        )
        protection = ProtectionEngine(rules, filesystem=fs, services=svc, packages=pkg)
        undo_engine = UndoEngine(journal, backups, filesystem=fs, services=svc, packages=pkg)
        if checks is None:
            checks = SystemContextChecks(cfg["preflight"], services=svc)
        workflow = SafetyWorkflow(
            protection=protection,
            backups=backups,
            journal=journal,
            executor=OperationExecutor(filesystem=fs, services=svc, packages=pkg),
            confirmer=confirmer or ConsoleConfirmer(),
            logger=WorkflowLogger(working),
            checks=checks,
            important_patterns=cfg["preflight"].get("important_patterns") or [],
        )
        return cls(
            working_dir=working,
            settings=cfg,
            rules=rules,
            journal=journal,
            backups=backups,
            protection=protection,
            undo_engine=undo_engine,
            workflow=workflow,
            checks=checks,
        )

    # ------------------------------------------------------------------
    def safety_level(
        self, name: Optional[str] = None, overrides: Optional[Mapping[str, Any]] = None
    ) -> SafetyLevel:
        return level_from_settings(name, self.settings).with_overrides(overrides)

    def run_workflow(
        self,
        op_type: "OperationType | str",
        targets: Sequence[str],
        description: str = "",
        safety_level: Optional[str] = None,
        *,
        skip_confirmations: Optional[bool] = None,
        dry_run: bool = False,
        content: Optional[Union[str, bytes]] = None,
        modifier: Optional[Modifier] = None,
        level_overrides: Optional[Mapping[str, Any]] = None,
        confirmer: Optional[Confirmer] = None,
    ) -> BatchResult:
        level = self.safety_level(safety_level, level_overrides)
        if skip_confirmations is None:
            skip_confirmations = bool(self.settings["safety"].get("skip_confirmations", False))
        if modifier is None and content is not None:
            modifier = _fixed_content(content)
        op = OperationType.parse(op_type)
        return self.workflow.run(
            op,
            targets,
            description or f"{op.label} via fub-safety",
            level,
            skip_confirmations=skip_confirmations,
            dry_run=dry_run,
            modifier=modifier,
            confirmer=confirmer,
        )

    def validate(
        self, op_type: "OperationType | str", targets: Sequence[str], safety_level: Optional[str] = None
    ) -> List[Verdict]:
        op = OperationType.parse(op_type)
        return self.protection.validate(prepare_targets(op, targets), op, self.safety_level(safety_level))

    def run_checks(self, targets: Sequence[str], *, basic: bool = True, advanced: bool = True) -> CheckReport:
        if self.checks is None:
            return CheckReport()
        return self.checks.run(list(targets), basic=basic, advanced=advanced)

    # ------------------------------------------------------------------
    def list_operations(self, limit: int = 20) -> List[Operation]:
        return self.journal.list(limit)

    def get_operation(self, operation_id: str) -> Operation:
        return self.journal.get(operation_id)

    def pending_operations(self) -> List[Operation]:
        return self.journal.pending()

    def undo(self, operation_id: str) -> UndoOutcome:
        return self.undo_engine.undo(operation_id)

    def cleanup(self, *, now: Optional[datetime] = None) -> Dict[str, Any]:
        removed = self.journal.apply_retention(now=now)
        summary = self.backups.apply_retention(now=now)
        LOGGER.info(
            "cleanup removed %d journal record(s) and %d snapshot(s)", len(removed), len(summary.removed)
        )
        return {"journal_removed": removed, "backups": summary.to_dict()}

    # ------------------------------------------------------------------
    def _record_with_snapshot(self, op: OperationType, target: str, description: Optional[str]) -> str:
        path = normalize_path(target) if op.is_path_target else target.strip()
        operation_id = self.journal.record(
            op,
            path,
            description or op.label,
            operation_id=new_operation_id(),
            details={"recorded_by": "caller"},
        )
        if op is OperationType.DIRECTORY_CREATE:
            return operation_id
        try:
            snapshot = self.backups.snapshot(operation_id, op, path)
        except (BackupError, AdapterError, OSError) as exc:
            self.journal.update_status(operation_id, OperationStatus.FAILED, error=f"backup failed: {exc}")
            raise
        self.journal.set_backup_ref(operation_id, snapshot.snapshot_id)
        return operation_id

    def record_file_deletion(self, path: str, description: Optional[str] = None) -> str:
        return self._record_with_snapshot(OperationType.FILE_DELETE, path, description)

    def record_file_modification(self, path: str, description: Optional[str] = None) -> str:
        return self._record_with_snapshot(OperationType.FILE_MODIFY, path, description)

    def record_package_removal(self, name: str, description: Optional[str] = None) -> str:
        return self._record_with_snapshot(OperationType.PACKAGE_REMOVE, name, description)

    def record_service_stop(self, name: str, description: Optional[str] = None) -> str:
        return self._record_with_snapshot(OperationType.SERVICE_STOP, name, description)

    def record_directory_creation(self, path: str, description: Optional[str] = None) -> str:
        return self._record_with_snapshot(OperationType.DIRECTORY_CREATE, path, description)

    def complete_operation(self, operation_id: str, error: Optional[str] = None) -> Operation:
        status = OperationStatus.FAILED if error else OperationStatus.COMPLETED
        return self.journal.update_status(operation_id, status, error=error)

    # ------------------------------------------------------------------
    def list_rules(self, tier: Optional[Tier] = None) -> List[ProtectionRule]:
        return self.rules.rules(tier)

    def add_rule(self, rule: ProtectionRule) -> bool:
        return self.rules.add(rule)

    def remove_rule(self, rule: ProtectionRule) -> bool:
        return self.rules.remove(rule)

    def install_default_rules(self) -> int:
        return install_default_rules(self.rules)

    def rule_problems(self) -> List[str]:
        return self.rules.problems()

    def export_rules(self, tier: Tier) -> Dict[str, Any]:
        return self.rules.export(tier)

    def import_rules(self, payload: Mapping[str, Any], tier: Tier) -> Tuple[int, List[str]]:
        added, problems = self.rules.import_rules(dict(payload), tier=tier)
        LOGGER.info("imported %d %s rule(s), %d problem(s)", added, tier.value, len(problems))
        return added, problems

    def close(self) -> None:
        self.journal.store.close()


__all__ = ["SafetyService"]
