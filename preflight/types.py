from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class CheckSeverity(str, Enum):
    WARNING = "WARNING"
    INFO = "INFO"


@dataclass(slots=True)
class CheckItem:
    code: str
    severity: CheckSeverity
    message: str
    where: str
    hint: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "severity": self.severity.value,
            "message": self.message,
            "where": self.where,
            "hint": self.hint,
            "data": dict(self.data),
        }


@dataclass(slots=True)
class CheckReport:
    items: List[CheckItem] = field(default_factory=list)
    ran_basic: bool = False
    ran_advanced: bool = False
    ts: float = field(default_factory=time.time)

    @property
    def warnings(self) -> List[CheckItem]:
        return [item for item in self.items if item.severity is CheckSeverity.WARNING]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ts": self.ts,
            "ran_basic": self.ran_basic,
            "ran_advanced": self.ran_advanced,
            "warnings": len(self.warnings),
            "items": [item.to_dict() for item in self.items],
        }


__all__ = ["CheckItem", "CheckReport", "CheckSeverity"]
