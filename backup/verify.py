"""Verify snapshots against their recorded checksums."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Dict

from .create import SNAPSHOT_FILE, sha256_for_path
from .errors import BackupError, BackupVerificationError, SnapshotMissingError
from .logs import BackupLogger
from .types import Snapshot


def load_snapshot(base: Path, snapshot_id: str) -> Snapshot:
    directory = base / snapshot_id
    if not directory.is_dir():
        raise SnapshotMissingError(snapshot_id)
    sidecar = directory / SNAPSHOT_FILE
    if not sidecar.exists():
        raise BackupVerificationError(f"snapshot {snapshot_id} has no {SNAPSHOT_FILE}")
    try:
        with sidecar.open("r", encoding="utf-8") as handle:
            payload = json.load(handle)
        return Snapshot.from_dict(payload, directory=directory)
    except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
        raise BackupVerificationError(f"snapshot {snapshot_id} metadata is corrupt: {exc}") from exc


def verify_snapshot(base: Path, snapshot_id: str, *, logger: BackupLogger) -> Dict[str, object]:
    snapshot = load_snapshot(base, snapshot_id)
    checked = 0
    if snapshot.kind.has_content:
        root = snapshot.content_path
        if not root.exists() and not root.is_symlink():
            logger.error("snapshot_corrupt", id=snapshot_id, reason="content missing")
            raise BackupVerificationError(f"snapshot {snapshot_id} content is missing")
        for entry in snapshot.entries:
            source = root / entry.relative_path if entry.relative_path else root
            if entry.is_dir:
                if not source.is_dir():
                    raise BackupVerificationError(f"missing directory in snapshot: {entry.relative_path or '.'}")
                continue
            if not source.exists() and not source.is_symlink():
                logger.error("snapshot_corrupt", id=snapshot_id, path=entry.relative_path, reason="missing")
                raise BackupVerificationError(f"missing snapshot file: {entry.relative_path or source.name}")
            if entry.sha256 is None:
                continue
            actual_size = source.stat().st_size
            if actual_size != entry.size_bytes:
                logger.error("snapshot_corrupt", id=snapshot_id, path=entry.relative_path, reason="size")
                raise BackupVerificationError(f"size mismatch for {entry.relative_path or source.name}")
            if sha256_for_path(source) != entry.sha256:
                logger.error("snapshot_corrupt", id=snapshot_id, path=entry.relative_path, reason="checksum")
                raise BackupVerificationError(f"checksum mismatch for {entry.relative_path or source.name}")
            checked += 1
    elif snapshot.entries:
        raise BackupError(f"snapshot {snapshot_id} of kind {snapshot.kind.value} must not hold files")

    logger.event(event="snapshot_verified", phase="verify", ok=True, id=snapshot_id, files=checked)
    return {
        "id": snapshot_id,
        "kind": snapshot.kind.value,
        "file_count": checked,
    }


__all__ = ["load_snapshot", "verify_snapshot"]
