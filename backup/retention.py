"""Retention policy enforcement for snapshots."""
from __future__ import annotations

import json
import shutil
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional, Set

from .create import SNAPSHOT_FILE
from .logs import BackupLogger
from .types import RetentionSummary


@dataclass(slots=True)
class RetentionPolicy:
    max_age_days: int = 7
    max_count: int = 100


@dataclass(slots=True)
class _SnapshotMeta:
    snapshot_id: str
    created: datetime
    size_bytes: int
    path: Path


def _directory_size(path: Path) -> int:
    total = 0
    for item in path.rglob("*"):
        try:
            if item.is_file() and not item.is_symlink():
                total += item.stat().st_size
        except OSError:
            continue
    return total


def _created(child: Path) -> datetime:
    sidecar = child / SNAPSHOT_FILE
    try:
        with sidecar.open("r", encoding="utf-8") as handle:
            created_text = json.load(handle).get("created_utc")
        created = datetime.fromisoformat(str(created_text))
        if created.tzinfo is None:
            created = created.replace(tzinfo=timezone.utc)
        return created
    except (OSError, ValueError, AttributeError):
        # Sidecar missing or unreadable: fall back to the directory mtime.
        return datetime.fromtimestamp(child.stat().st_mtime, tz=timezone.utc)


def load_snapshot_index(base: Path) -> List[_SnapshotMeta]:
    items: List[_SnapshotMeta] = []
    if not base.exists():
        return items
    for child in base.iterdir():
        if not child.is_dir() or child.name.startswith(("_", ".")):
            continue
        items.append(
            _SnapshotMeta(
                snapshot_id=child.name,
                created=_created(child),
                size_bytes=_directory_size(child),
                path=child,
            )
        )
    items.sort(key=lambda meta: (meta.created, meta.snapshot_id), reverse=True)
    return items


def select_expired(
    items: List[_SnapshotMeta],
    policy: RetentionPolicy,
    *,
    now: Optional[datetime] = None,
) -> Set[str]:
    expired: Set[str] = set()
    if policy.max_age_days > 0:
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=policy.max_age_days)
        expired.update(meta.snapshot_id for meta in items if meta.created < cutoff)
    if policy.max_count > 0:
        survivors = [meta for meta in items if meta.snapshot_id not in expired]
        expired.update(meta.snapshot_id for meta in survivors[policy.max_count :])
    return expired


def apply_retention(
    base: Path,
    policy: RetentionPolicy,
    *,
    logger: BackupLogger,
    now: Optional[datetime] = None,
) -> RetentionSummary:
    items = load_snapshot_index(base)
    expired = select_expired(items, policy, now=now)

    removed: List[str] = []
    for meta in items:
        if meta.snapshot_id not in expired:
            continue
        shutil.rmtree(meta.path, ignore_errors=True)
        removed.append(meta.snapshot_id)
        logger.warning("snapshot_removed", id=meta.snapshot_id, reason="retention")

    kept = [meta.snapshot_id for meta in items if meta.snapshot_id not in expired]
    freed = sum(meta.size_bytes for meta in items if meta.snapshot_id in expired)
    logger.event(event="retention_applied", phase="retention", ok=True, removed=len(removed), kept=len(kept))
    return RetentionSummary(removed=removed, kept=kept, freed_bytes=freed)


__all__ = ["RetentionPolicy", "apply_retention", "load_snapshot_index", "select_expired"]
