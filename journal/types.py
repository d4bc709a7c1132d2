"""Operation records kept by the journal."""
from __future__ import annotations

import json
import os
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, Mapping, Optional


class OperationType(str, Enum):
    FILE_DELETE = "file_delete"
    FILE_MODIFY = "file_modify"
    PACKAGE_REMOVE = "package_remove"
    SERVICE_STOP = "service_stop"
    DIRECTORY_CREATE = "directory_create"

    @property
    def is_path_target(self) -> bool:
        return self in (
            OperationType.FILE_DELETE,
            OperationType.FILE_MODIFY,
            OperationType.DIRECTORY_CREATE,
        )

    @property
    def label(self) -> str:
        return self.value.replace("_", " ")

    @classmethod
    def parse(cls, value: "str | OperationType") -> "OperationType":
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower().replace("-", "_")
        aliases = {
            "delete": cls.FILE_DELETE,
            "modify": cls.FILE_MODIFY,
            "remove_package": cls.PACKAGE_REMOVE,
            "stop_service": cls.SERVICE_STOP,
            "mkdir": cls.DIRECTORY_CREATE,
        }
        if text in aliases:
            return aliases[text]
        return cls(text)


class OperationStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    UNDONE = "undone"


_TRANSITIONS: Mapping[OperationStatus, FrozenSet[OperationStatus]] = {
    OperationStatus.PENDING: frozenset(
        {OperationStatus.COMPLETED, OperationStatus.FAILED, OperationStatus.UNDONE}
    ),
    OperationStatus.COMPLETED: frozenset({OperationStatus.UNDONE}),
    OperationStatus.FAILED: frozenset({OperationStatus.UNDONE}),
    OperationStatus.UNDONE: frozenset(),
}


def can_transition(current: OperationStatus, new: OperationStatus) -> bool:
    return new in _TRANSITIONS[current]


def utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_operation_id(now: Optional[datetime] = None) -> str:
    """Return ``op_<UTC timestamp>_<pid>_<random>``; unique across processes."""

    stamp = (now or datetime.now(timezone.utc)).strftime("%Y%m%d_%H%M%S")
    return f"op_{stamp}_{os.getpid()}_{secrets.token_hex(4)}"


@dataclass(slots=True)
class Operation:
    id: str
    type: OperationType
    target: str
    description: str
    status: OperationStatus = OperationStatus.PENDING
    backup_ref: Optional[str] = None
    created_at: str = field(default_factory=utcnow)
    updated_at: Optional[str] = None
    error: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "target": self.target,
            "description": self.description,
            "status": self.status.value,
            "backup_ref": self.backup_ref,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "error": self.error,
            "details": dict(self.details),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Operation":
        details = data.get("details") or {}
        if isinstance(details, str):
            details = json.loads(details) if details else {}
        return cls(
            id=str(data["id"]),
            type=OperationType(str(data["type"])),
            target=str(data["target"]),
            description=str(data.get("description") or ""),
            status=OperationStatus(str(data.get("status") or OperationStatus.PENDING.value)),
            backup_ref=data.get("backup_ref") or None,
            created_at=str(data.get("created_at") or utcnow()),
            updated_at=data.get("updated_at") or None,
            error=data.get("error") or None,
            details=dict(details),
        )


__all__ = [
    "Operation",
    "OperationStatus",
    "OperationType",
    "can_transition",
    "new_operation_id",
    "utcnow",
]
