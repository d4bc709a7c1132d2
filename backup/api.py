"""Public API for snapshot operations."""
from __future__ import annotations

import shutil
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

from adapters.base import FileSystem, PackageManager, ServiceManager
from core.paths import get_backups_dir
from journal.types import OperationType

from .create import create_package_snapshot, create_path_snapshot, create_service_snapshot
from .errors import BackupError
from .logs import BackupLogger
from .restore import restore_content, restore_metadata
from .retention import RetentionPolicy, apply_retention, load_snapshot_index
from .types import RetentionSummary, Snapshot, SnapshotSummary
from .verify import load_snapshot, verify_snapshot


def retention_policy_from_settings(settings: Optional[Mapping[str, Any]]) -> RetentionPolicy:
    raw = (settings or {}).get("backup")
    retention: Mapping[str, Any] = {}
    if isinstance(raw, Mapping) and isinstance(raw.get("retention"), Mapping):
        retention = raw["retention"]
    return RetentionPolicy(
        max_age_days=int(retention.get("max_age_days", 7) or 0),
        max_count=int(retention.get("max_count", 100) or 0),
    )


class BackupManager:
    """Create, verify, restore, discard and expire per-operation snapshots.

    Snapshots live in ``<working>/backups/<operation_id>/`` with a
    ``snapshot.json`` sidecar and a ``content/`` copy for path targets.
    """

    def __init__(
        self,
        working_dir: Path,
        *,
        filesystem: FileSystem,
        services: ServiceManager,
        packages: PackageManager,
        policy: Optional[RetentionPolicy] = None,
    ) -> None:
        self._working_dir = Path(working_dir)
        self._base = get_backups_dir(self._working_dir)
        self._base.mkdir(parents=True, exist_ok=True)
        self._fs = filesystem
        self._services = services
        self._packages = packages
        self._policy = policy or RetentionPolicy()
        self._logger = BackupLogger(self._working_dir)
        self._creators: Dict[OperationType, Callable[[str, str], Snapshot]] = {
            OperationType.FILE_DELETE: self._snapshot_path,
            OperationType.FILE_MODIFY: self._snapshot_path,
            OperationType.DIRECTORY_CREATE: self._snapshot_path,
            OperationType.SERVICE_STOP: self._snapshot_service,
            OperationType.PACKAGE_REMOVE: self._snapshot_package,
        }

    # ------------------------------------------------------------------
    @property
    def base_dir(self) -> Path:
        return self._base

    @property
    def policy(self) -> RetentionPolicy:
        return self._policy

    @property
    def logger(self) -> BackupLogger:
        return self._logger

    # ------------------------------------------------------------------
    def _snapshot_path(self, operation_id: str, target: str) -> Snapshot:
        return create_path_snapshot(self._base, operation_id, target, filesystem=self._fs, logger=self._logger)

    def _snapshot_service(self, operation_id: str, target: str) -> Snapshot:
        return create_service_snapshot(self._base, operation_id, target, services=self._services, logger=self._logger)

    def _snapshot_package(self, operation_id: str, target: str) -> Snapshot:
        return create_package_snapshot(self._base, operation_id, target, packages=self._packages, logger=self._logger)

    def snapshot(self, operation_id: str, op_type: OperationType, target: str) -> Snapshot:
        """Capture the pre-mutation state of *target*; the snapshot id is the operation id."""

        try:
            creator = self._creators[OperationType.parse(op_type)]
        except KeyError as exc:
            raise BackupError(f"no snapshot strategy for {op_type!r}") from exc
        return creator(operation_id, target)

    # ------------------------------------------------------------------
    def exists(self, snapshot_id: str) -> bool:
        return (self._base / snapshot_id).is_dir()

    def load(self, snapshot_id: str) -> Snapshot:
        return load_snapshot(self._base, snapshot_id)

    def verify(self, snapshot_id: str) -> Dict[str, object]:
        return verify_snapshot(self._base, snapshot_id, logger=self._logger)

    def restore_content(self, snapshot_id: str, *, verify: bool = True) -> Dict[str, object]:
        if verify:
            self.verify(snapshot_id)
        return restore_content(self.load(snapshot_id), filesystem=self._fs, logger=self._logger)

    def restore_metadata(self, snapshot_id: str) -> Dict[str, object]:
        return restore_metadata(self.load(snapshot_id), filesystem=self._fs, logger=self._logger)

    def restore(self, snapshot_id: str) -> Dict[str, object]:
        content = self.restore_content(snapshot_id)
        metadata = self.restore_metadata(snapshot_id)
        self._logger.event(event="snapshot_restored", phase="restore", ok=True, id=snapshot_id)
        return {"id": snapshot_id, "content": content, "metadata": metadata}

    def discard(self, snapshot_id: str) -> bool:
        directory = self._base / snapshot_id
        if not directory.is_dir():
            return False
        shutil.rmtree(directory, ignore_errors=True)
        self._logger.info("snapshot_discarded", id=snapshot_id)
        return True

    # ------------------------------------------------------------------
    def list_snapshots(self) -> List[SnapshotSummary]:
        summaries: List[SnapshotSummary] = []
        for meta in load_snapshot_index(self._base):
            try:
                snapshot = self.load(meta.snapshot_id)
                target, kind = snapshot.target, snapshot.kind.value
            except BackupError:
                target, kind = "", "unknown"
            summaries.append(
                SnapshotSummary(
                    id=meta.snapshot_id,
                    target=target,
                    kind=kind,
                    created_utc=meta.created.isoformat(),
                    size_bytes=meta.size_bytes,
                    path=meta.path,
                )
            )
        return summaries

    def apply_retention(self, *, now: Optional[datetime] = None) -> RetentionSummary:
        return apply_retention(self._base, self._policy, logger=self._logger, now=now)


__all__ = [
    "BackupManager",
    "retention_policy_from_settings",
]
