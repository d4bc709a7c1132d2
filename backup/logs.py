"""Structured logging helpers for backup operations."""
from __future__ import annotations

from pathlib import Path

from core.logging_utils import JsonlEventLogger
from core.paths import get_logs_dir


class BackupLogger(JsonlEventLogger):
    """Snapshot lifecycle events in ``logs/backup.jsonl``."""

    def __init__(self, working_dir: Path) -> None:
        super().__init__(get_logs_dir(Path(working_dir)) / "backup.jsonl", logger_name="fub.backup")


__all__ = ["BackupLogger"]
