"""Capture pre-mutation snapshots of targets."""
from __future__ import annotations

import hashlib
import json
import os
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List

from adapters.base import AdapterError, FileSystem, PackageManager, ServiceManager

from .errors import BackupError
from .logs import BackupLogger
from .types import Snapshot, SnapshotEntry, SnapshotKind

SNAPSHOT_FILE = "snapshot.json"


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def sha256_for_path(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()


def write_snapshot_file(snapshot: Snapshot) -> Path:
    path = snapshot.directory / SNAPSHOT_FILE
    tmp = path.with_suffix(".json.tmp")
    with tmp.open("w", encoding="utf-8") as handle:
        json.dump(snapshot.to_dict(), handle, indent=2, sort_keys=True)
    os.replace(tmp, path)
    return path


def _collect_entries(fs: FileSystem, target: Path, copy_root: Path) -> List[SnapshotEntry]:
    """Stat every node under *target* and checksum its copy under *copy_root*."""

    entries: List[SnapshotEntry] = []
    stack = [""]
    while stack:
        relative = stack.pop()
        source = target / relative if relative else target
        meta = fs.stat(source)
        checksum = None
        if not meta.is_dir:
            copied = copy_root / relative if relative else copy_root
            if copied.is_file() and not copied.is_symlink():
                checksum = sha256_for_path(copied)
        entries.append(
            SnapshotEntry(
                relative_path=relative,
                is_dir=meta.is_dir,
                size_bytes=0 if meta.is_dir else meta.size,
                mode=meta.mode,
                mtime=meta.mtime,
                uid=meta.uid,
                gid=meta.gid,
                owner=meta.owner,
                sha256=checksum,
            )
        )
        if meta.is_dir:
            for name in fs.list_dir(source):
                stack.append(f"{relative}/{name}" if relative else name)
    entries.sort(key=lambda entry: entry.relative_path)
    return entries


def _prepare_directory(base: Path, snapshot_id: str) -> Path:
    directory = base / snapshot_id
    try:
        directory.mkdir(parents=True, exist_ok=False)
    except FileExistsError as exc:
        raise BackupError(f"snapshot {snapshot_id} already exists at {directory}") from exc
    except OSError as exc:
        raise BackupError(f"cannot create snapshot directory {directory}: {exc.strerror or exc}") from exc
    return directory


def _finalise(snapshot: Snapshot, logger: BackupLogger) -> Snapshot:
    write_snapshot_file(snapshot)
    logger.event(
        event="snapshot_complete",
        phase="create",
        ok=True,
        id=snapshot.snapshot_id,
        kind=snapshot.kind.value,
        target=snapshot.target,
        size=snapshot.size_bytes,
    )
    return snapshot


def create_path_snapshot(
    base: Path,
    operation_id: str,
    target: str,
    *,
    filesystem: FileSystem,
    logger: BackupLogger,
) -> Snapshot:
    """Copy a file or directory tree plus its metadata into ``base/<operation_id>``.

    A path that does not exist yet produces an ``absent`` snapshot, which
    records only that fact.
    """

    path = Path(target)
    directory = _prepare_directory(base, operation_id)
    logger.event(event="snapshot_start", phase="create", ok=True, id=operation_id, target=target)
    try:
        if not filesystem.exists(path):
            snapshot = Snapshot(
                snapshot_id=operation_id,
                operation_id=operation_id,
                target=target,
                kind=SnapshotKind.ABSENT,
                created_utc=_utcnow(),
                directory=directory,
                prior_state={"exists": False},
            )
            return _finalise(snapshot, logger)

        kind = SnapshotKind.DIRECTORY if filesystem.is_dir(path) else SnapshotKind.FILE
        snapshot = Snapshot(
            snapshot_id=operation_id,
            operation_id=operation_id,
            target=target,
            kind=kind,
            created_utc=_utcnow(),
            directory=directory,
            prior_state={"exists": True},
        )
        snapshot.content_dir.mkdir(parents=True, exist_ok=True)
        filesystem.copy(path, snapshot.content_path)
        snapshot.entries = _collect_entries(filesystem, path, snapshot.content_path)
        return _finalise(snapshot, logger)
    except (AdapterError, OSError) as exc:
        shutil.rmtree(directory, ignore_errors=True)
        logger.error("snapshot_failed", id=operation_id, target=target, error=str(exc))
        raise BackupError(f"snapshot of {target} failed: {exc}") from exc


def _state_snapshot(
    base: Path,
    operation_id: str,
    target: str,
    kind: SnapshotKind,
    prior_state: Dict[str, Any],
    *,
    logger: BackupLogger,
) -> Snapshot:
    directory = _prepare_directory(base, operation_id)
    snapshot = Snapshot(
        snapshot_id=operation_id,
        operation_id=operation_id,
        target=target,
        kind=kind,
        created_utc=_utcnow(),
        directory=directory,
        prior_state=prior_state,
    )
    try:
        return _finalise(snapshot, logger)
    except OSError as exc:
        shutil.rmtree(directory, ignore_errors=True)
        raise BackupError(f"cannot write snapshot for {target}: {exc.strerror or exc}") from exc


def create_service_snapshot(
    base: Path,
    operation_id: str,
    name: str,
    *,
    services: ServiceManager,
    logger: BackupLogger,
) -> Snapshot:
    try:
        state = {"active": services.is_active(name)}
    except AdapterError as exc:
        logger.error("snapshot_failed", id=operation_id, target=name, error=str(exc))
        raise BackupError(f"cannot query service {name}: {exc}") from exc
    return _state_snapshot(base, operation_id, name, SnapshotKind.SERVICE, state, logger=logger)


def create_package_snapshot(
    base: Path,
    operation_id: str,
    name: str,
    *,
    packages: PackageManager,
    logger: BackupLogger,
) -> Snapshot:
    try:
        installed = packages.is_installed(name)
        version = packages.installed_version(name) if installed else None
    except AdapterError as exc:
        logger.error("snapshot_failed", id=operation_id, target=name, error=str(exc))
        raise BackupError(f"cannot query package {name}: {exc}") from exc
    state = {"installed": installed, "version": version}
    return _state_snapshot(base, operation_id, name, SnapshotKind.PACKAGE, state, logger=logger)


__all__ = [
    "SNAPSHOT_FILE",
    "create_package_snapshot",
    "create_path_snapshot",
    "create_service_snapshot",
    "sha256_for_path",
    "write_snapshot_file",
]
