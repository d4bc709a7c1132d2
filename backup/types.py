"""Common dataclasses shared across backup modules."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from adapters.base import FileStat

SNAPSHOT_VERSION = 1


class SnapshotKind(str, Enum):
    FILE = "file"
    DIRECTORY = "directory"
    SERVICE = "service"
    PACKAGE = "package"
    ABSENT = "absent"

    @property
    def has_content(self) -> bool:
        return self in (SnapshotKind.FILE, SnapshotKind.DIRECTORY)


@dataclass(slots=True)
class SnapshotEntry:
    """One filesystem node captured in a snapshot.

    ``relative_path`` is relative to the target; the empty string is the
    target itself. ``sha256`` is set for regular files only.
    """

    relative_path: str
    is_dir: bool
    size_bytes: int
    mode: int
    mtime: float
    uid: int
    gid: int
    owner: Optional[str] = None
    sha256: Optional[str] = None

    def to_stat(self) -> FileStat:
        return FileStat(
            size=self.size_bytes,
            mode=self.mode,
            mtime=self.mtime,
            uid=self.uid,
            gid=self.gid,
            is_dir=self.is_dir,
            owner=self.owner,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.relative_path,
            "is_dir": self.is_dir,
            "bytes": self.size_bytes,
            "mode": self.mode,
            "mtime": self.mtime,
            "uid": self.uid,
            "gid": self.gid,
            "owner": self.owner,
            "sha256": self.sha256,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SnapshotEntry":
        return cls(
            relative_path=str(data.get("path") or ""),
            is_dir=bool(data.get("is_dir")),
            size_bytes=int(data.get("bytes") or 0),
            mode=int(data.get("mode") or 0),
            mtime=float(data.get("mtime") or 0.0),
            uid=int(data.get("uid") or 0),
            gid=int(data.get("gid") or 0),
            owner=data.get("owner"),
            sha256=data.get("sha256"),
        )


@dataclass(slots=True)
class Snapshot:
    snapshot_id: str
    operation_id: str
    target: str
    kind: SnapshotKind
    created_utc: str
    directory: Path
    entries: List[SnapshotEntry] = field(default_factory=list)
    prior_state: Dict[str, Any] = field(default_factory=dict)
    version: int = SNAPSHOT_VERSION

    @property
    def content_dir(self) -> Path:
        return self.directory / "content"

    @property
    def content_path(self) -> Path:
        return self.content_dir / (Path(self.target).name or "root")

    @property
    def size_bytes(self) -> int:
        return sum(entry.size_bytes for entry in self.entries if not entry.is_dir)

    @property
    def metadata(self) -> Optional[SnapshotEntry]:
        for entry in self.entries:
            if entry.relative_path == "":
                return entry
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "snapshot_id": self.snapshot_id,
            "operation_id": self.operation_id,
            "target": self.target,
            "kind": self.kind.value,
            "created_utc": self.created_utc,
            "prior_state": dict(self.prior_state),
            "files": [entry.to_dict() for entry in self.entries],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], *, directory: Path) -> "Snapshot":
        files = data.get("files") or []
        if not isinstance(files, list):
            raise ValueError("snapshot 'files' must be a list")
        return cls(
            snapshot_id=str(data["snapshot_id"]),
            operation_id=str(data.get("operation_id") or data["snapshot_id"]),
            target=str(data["target"]),
            kind=SnapshotKind(str(data["kind"])),
            created_utc=str(data.get("created_utc") or ""),
            directory=directory,
            entries=[SnapshotEntry.from_dict(entry) for entry in files if isinstance(entry, dict)],
            prior_state=dict(data.get("prior_state") or {}),
            version=int(data.get("version") or SNAPSHOT_VERSION),
        )


@dataclass(slots=True)
class SnapshotSummary:
    id: str
    target: str
    kind: str
    created_utc: str
    size_bytes: int
    path: Path

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "target": self.target,
            "kind": self.kind,
            "created_utc": self.created_utc,
            "size_bytes": self.size_bytes,
            "path": str(self.path),
        }


@dataclass(slots=True)
class RetentionSummary:
    removed: List[str]
    kept: List[str]
    freed_bytes: int

    def to_dict(self) -> Dict[str, Any]:
        return {"removed": list(self.removed), "kept": list(self.kept), "freed_bytes": self.freed_bytes}


__all__ = [
    "RetentionSummary",
    "SNAPSHOT_VERSION",
    "Snapshot",
    "SnapshotEntry",
    "SnapshotKind",
    "SnapshotSummary",
]
