"""Reverse journaled operations using their snapshots."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional

from adapters.base import AdapterError, FileSystem, PackageManager, ServiceManager
from backup.api import BackupManager
from backup.errors import BackupError, BackupVerificationError, SnapshotMissingError
from backup.types import Snapshot, SnapshotKind
from journal.api import OperationJournal
from journal.types import Operation, OperationStatus, OperationType

from .errors import AdapterFailureError, MissingBackupError, TargetNotEmptyError, UndoError
from .types import UndoOutcome, UndoStatus, UndoStep

LOGGER = logging.getLogger("fub.undo")


class UndoEngine:
    """Dispatch an operation to the reversal strategy for its type.

    A successful reversal marks the journal record Undone. A failed one
    attaches the error text to the record and leaves its status alone so
    the operator can fix the cause and retry.
    """

    def __init__(
        self,
        journal: OperationJournal,
        backups: BackupManager,
        *,
        filesystem: FileSystem,
        services: ServiceManager,
        packages: PackageManager,
    ) -> None:
        self._journal = journal
        self._backups = backups
        self._fs = filesystem
        self._services = services
        self._packages = packages
        self._strategies: Dict[OperationType, Callable[[Operation], List[UndoStep]]] = {
            OperationType.FILE_DELETE: self._undo_path,
            OperationType.FILE_MODIFY: self._undo_path,
            OperationType.PACKAGE_REMOVE: self._undo_package_remove,
            OperationType.SERVICE_STOP: self._undo_service_stop,
            OperationType.DIRECTORY_CREATE: self._undo_directory_create,
        }
        missing = set(OperationType) - set(self._strategies)
        if missing:
            raise RuntimeError(f"no undo strategy for: {sorted(item.value for item in missing)}")

    # ------------------------------------------------------------------
    def undo(self, operation_id: str) -> UndoOutcome:
        operation = self._journal.get(operation_id)
        if operation.status is OperationStatus.UNDONE:
            LOGGER.info("operation %s already undone", operation_id)
            return UndoOutcome(
                operation_id=operation_id,
                status=UndoStatus.ALREADY_UNDONE,
                steps=[UndoStep(name="check_status", ok=True, detail="operation was already undone")],
            )

        steps = self._strategies[operation.type](operation)
        failures = [step for step in steps if not step.ok]
        if failures:
            first = failures[0]
            message = f"undo failed at {first.name}: {first.error or first.detail}"
            self._journal.annotate(operation_id, message)
            LOGGER.error("undo of %s failed: %s", operation_id, message)
            return UndoOutcome(operation_id=operation_id, status=UndoStatus.FAILED, steps=steps)

        self._journal.update_status(operation_id, OperationStatus.UNDONE)
        LOGGER.info("undo of %s (%s %s) succeeded", operation_id, operation.type.value, operation.target)
        return UndoOutcome(operation_id=operation_id, status=UndoStatus.UNDONE, steps=steps)

    # ------------------------------------------------------------------
    def _load_snapshot(self, operation: Operation) -> Snapshot:
        if not operation.backup_ref:
            raise MissingBackupError(
                f"operation {operation.id} was executed without a snapshot",
                remediation=f"No backup exists for {operation.target}; restore it from another source.",
                operation_id=operation.id,
            )
        try:
            return self._backups.load(operation.backup_ref)
        except SnapshotMissingError as exc:
            raise MissingBackupError(
                f"snapshot {operation.backup_ref} no longer exists",
                remediation=(
                    f"The snapshot was removed by retention; restore {operation.target} from another source."
                ),
                operation_id=operation.id,
            ) from exc
        except BackupError as exc:
            raise MissingBackupError(
                f"snapshot {operation.backup_ref} is unreadable: {exc}",
                remediation=f"Inspect {self._backups.base_dir / operation.backup_ref} and restore manually.",
                operation_id=operation.id,
            ) from exc

    @staticmethod
    def _failed(name: str, error: UndoError) -> UndoStep:
        return UndoStep(name=name, ok=False, detail=str(error), error=error)

    def _undo_path(self, operation: Operation) -> List[UndoStep]:
        steps: List[UndoStep] = []
        try:
            snapshot = self._load_snapshot(operation)
            if not snapshot.kind.has_content:
                raise MissingBackupError(
                    f"snapshot {snapshot.snapshot_id} holds no content for {operation.target}",
                    remediation="The target did not exist when the snapshot was taken; nothing can be restored.",
                    operation_id=operation.id,
                )
            self._backups.verify(snapshot.snapshot_id)
        except MissingBackupError as exc:
            return [self._failed("verify_snapshot", exc)]
        except BackupVerificationError as exc:
            error = MissingBackupError(
                f"snapshot {operation.backup_ref} is corrupt: {exc}",
                remediation="The snapshot no longer matches its checksums; restore from another source.",
                operation_id=operation.id,
            )
            return [self._failed("verify_snapshot", error)]
        steps.append(UndoStep(name="verify_snapshot", ok=True, detail=f"snapshot {snapshot.snapshot_id} intact"))

        try:
            self._backups.restore_content(snapshot.snapshot_id, verify=False)
        except (BackupError, AdapterError) as exc:
            error = AdapterFailureError(
                f"restoring content of {operation.target} failed: {exc}",
                remediation=f"Copy {snapshot.content_path} back to {operation.target} manually.",
                operation_id=operation.id,
            )
            steps.append(self._failed("restore_content", error))
            return steps
        steps.append(UndoStep(name="restore_content", ok=True, detail=f"restored {operation.target}"))

        try:
            self._backups.restore_metadata(snapshot.snapshot_id)
        except (BackupError, AdapterError) as exc:
            meta = snapshot.metadata
            hint = f"chmod {meta.mode:o} {operation.target}" if meta else "reapply permissions manually"
            error = AdapterFailureError(
                f"restoring metadata of {operation.target} failed: {exc}",
                remediation=f"Content is back; fix ownership and permissions manually ({hint}).",
                operation_id=operation.id,
            )
            steps.append(self._failed("restore_metadata", error))
            return steps
        steps.append(UndoStep(name="restore_metadata", ok=True, detail="permissions, ownership and mtime restored"))
        return steps

    def _undo_package_remove(self, operation: Operation) -> List[UndoStep]:
        name = operation.target
        version: Optional[str] = None
        if operation.backup_ref:
            try:
                snapshot = self._load_snapshot(operation)
            except MissingBackupError as exc:
                return [self._failed("reinstall_package", exc)]
            if snapshot.kind is SnapshotKind.PACKAGE:
                if not snapshot.prior_state.get("installed", True):
                    return [UndoStep(name="reinstall_package", ok=True, detail=f"{name} was not installed before")]
                version = snapshot.prior_state.get("version") or None
        try:
            if self._packages.is_installed(name) and (
                version is None or self._packages.installed_version(name) == version
            ):
                return [UndoStep(name="reinstall_package", ok=True, detail=f"{name} is already installed")]
            self._packages.install(name, version)
        except AdapterError as exc:
            spec = f"{name}={version}" if version else name
            error = AdapterFailureError(
                f"reinstalling {spec} failed: {exc}",
                remediation=f"Run 'sudo apt-get install {spec}' manually.",
                operation_id=operation.id,
            )
            return [self._failed("reinstall_package", error)]
        detail = f"reinstalled {name} {version}" if version else f"reinstalled {name} (no recorded version)"
        return [UndoStep(name="reinstall_package", ok=True, detail=detail)]

    def _undo_service_stop(self, operation: Operation) -> List[UndoStep]:
        name = operation.target
        was_active = True
        if operation.backup_ref:
            try:
                snapshot = self._load_snapshot(operation)
            except MissingBackupError as exc:
                return [self._failed("start_service", exc)]
            if snapshot.kind is SnapshotKind.SERVICE:
                was_active = bool(snapshot.prior_state.get("active"))
        if not was_active:
            return [UndoStep(name="start_service", ok=True, detail=f"{name} was not active before; left stopped")]
        try:
            if self._services.is_active(name):
                return [UndoStep(name="start_service", ok=True, detail=f"{name} is already running")]
            self._services.start(name)
        except AdapterError as exc:
            error = AdapterFailureError(
                f"starting {name} failed: {exc}",
                remediation=f"Run 'sudo systemctl start {name}' and check 'journalctl -u {name}'.",
                operation_id=operation.id,
            )
            return [self._failed("start_service", error)]
        return [UndoStep(name="start_service", ok=True, detail=f"started {name}")]

    def _undo_directory_create(self, operation: Operation) -> List[UndoStep]:
        path = Path(operation.target)
        if not self._fs.exists(path):
            return [UndoStep(name="remove_directory", ok=True, detail=f"{path} no longer exists")]
        if not self._fs.is_dir(path):
            error = TargetNotEmptyError(
                f"{path} is no longer a directory",
                remediation=f"Manual intervention required: inspect {path} and remove it yourself if appropriate.",
                operation_id=operation.id,
            )
            return [self._failed("remove_directory", error)]
        try:
            entries = self._fs.list_dir(path)
            if entries:
                raise TargetNotEmptyError(
                    f"{path} is not empty ({len(entries)} entries)",
                    remediation=f"Manual intervention required: move or delete the contents of {path}, then retry.",
                    operation_id=operation.id,
                )
            self._fs.remove_empty_dir(path)
        except TargetNotEmptyError as exc:
            return [self._failed("remove_directory", exc)]
        except AdapterError as exc:
            error = AdapterFailureError(
                f"removing {path} failed: {exc}",
                remediation=f"Remove {path} manually with 'rmdir {path}'.",
                operation_id=operation.id,
            )
            return [self._failed("remove_directory", error)]
        return [UndoStep(name="remove_directory", ok=True, detail=f"removed {path}")]


__all__ = ["UndoEngine"]
