"""Write captured snapshot content and metadata back to the original path."""
from __future__ import annotations

import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List

from adapters.base import AdapterError, FileSystem

from .errors import BackupRestoreError
from .logs import BackupLogger
from .types import Snapshot, SnapshotEntry


def _require_content(snapshot: Snapshot) -> None:
    if not snapshot.kind.has_content:
        raise BackupRestoreError(
            f"snapshot {snapshot.snapshot_id} of kind {snapshot.kind.value} holds no content to restore"
        )


def _depth(entry: SnapshotEntry) -> int:
    if not entry.relative_path:
        return 0
    return entry.relative_path.count("/") + 1


def restore_content(snapshot: Snapshot, *, filesystem: FileSystem, logger: BackupLogger) -> Dict[str, object]:
    """Replace the target with the captured copy.

    Whatever currently sits at the target is first copied to a ``_displaced``
    directory inside the snapshot and put back if the restore fails.
    """

    _require_content(snapshot)
    target = Path(snapshot.target)
    displaced = None
    if filesystem.exists(target):
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S-%f")
        displaced = snapshot.directory / "_displaced" / stamp / (target.name or "root")
        try:
            filesystem.copy(target, displaced)
            filesystem.remove(target)
        except AdapterError as exc:
            logger.error("restore_failed", id=snapshot.snapshot_id, target=str(target), error=str(exc))
            raise BackupRestoreError(f"cannot move existing {target} aside: {exc}") from exc

    try:
        logger.info("restore_copy", id=snapshot.snapshot_id, target=str(target))
        filesystem.copy(snapshot.content_path, target)
    except AdapterError as exc:
        logger.error("restore_failed", id=snapshot.snapshot_id, target=str(target), error=str(exc))
        if displaced is not None:
            try:
                if filesystem.exists(target):
                    filesystem.remove(target)
                filesystem.copy(displaced, target)
            except AdapterError as rollback_exc:
                logger.error("restore_rollback_failed", id=snapshot.snapshot_id, error=str(rollback_exc))
        raise BackupRestoreError(f"restoring {target} failed: {exc}") from exc

    if displaced is not None:
        shutil.rmtree(displaced.parent, ignore_errors=True)
    logger.event(event="content_restored", phase="restore", ok=True, id=snapshot.snapshot_id, target=str(target))
    return {"id": snapshot.snapshot_id, "target": str(target), "replaced_existing": displaced is not None}


def restore_metadata(snapshot: Snapshot, *, filesystem: FileSystem, logger: BackupLogger) -> Dict[str, object]:
    """Re-apply permission bits, timestamps and ownership, deepest paths first."""

    _require_content(snapshot)
    target = Path(snapshot.target)
    applied: List[str] = []
    for entry in sorted(snapshot.entries, key=_depth, reverse=True):
        path = target / entry.relative_path if entry.relative_path else target
        try:
            filesystem.apply_metadata(path, entry.to_stat())
        except AdapterError as exc:
            logger.error("restore_failed", id=snapshot.snapshot_id, target=str(path), error=str(exc))
            raise BackupRestoreError(f"restoring metadata of {path} failed: {exc}") from exc
        applied.append(entry.relative_path or ".")
    logger.event(event="metadata_restored", phase="restore", ok=True, id=snapshot.snapshot_id, count=len(applied))
    return {"id": snapshot.snapshot_id, "target": str(target), "applied": applied}


__all__ = ["restore_content", "restore_metadata"]
