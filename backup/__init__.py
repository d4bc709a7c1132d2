"""Per-operation snapshots used to reverse destructive actions."""
from __future__ import annotations

from .api import BackupManager, retention_policy_from_settings
from .errors import BackupError, BackupRestoreError, BackupVerificationError, SnapshotMissingError
from .retention import RetentionPolicy
from .types import RetentionSummary, Snapshot, SnapshotKind, SnapshotSummary

__all__ = [
    "BackupError",
    "BackupManager",
    "BackupRestoreError",
    "BackupVerificationError",
    "RetentionPolicy",
    "RetentionSummary",
    "Snapshot",
    "SnapshotKind",
    "SnapshotMissingError",
    "SnapshotSummary",
    "retention_policy_from_settings",
]
