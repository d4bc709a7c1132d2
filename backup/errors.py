"""Error hierarchy for backup operations."""
from __future__ import annotations


class BackupError(RuntimeError):
    """Base exception for backup related failures."""


class BackupVerificationError(BackupError):
    """Raised when a snapshot no longer matches its recorded checksums."""


class BackupRestoreError(BackupError):
    """Raised when restoring a snapshot fails."""


class SnapshotMissingError(BackupError, LookupError):
    """Raised when no snapshot exists for the requested id."""

    def __init__(self, snapshot_id: str) -> None:
        super().__init__(f"snapshot {snapshot_id} not found")
        self.snapshot_id = snapshot_id


__all__ = ["BackupError", "BackupRestoreError", "BackupVerificationError", "SnapshotMissingError"]
