"""Rule and verdict types for the protection engine."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class Scope(str, Enum):
    FILES = "files"
    DIRECTORIES = "directories"
    SERVICES = "services"
    PACKAGES = "packages"


class Tier(str, Enum):
    SYSTEM = "system"
    USER = "user"


class Effect(str, Enum):
    PROTECT = "protect"
    ALLOW = "allow"


@dataclass(frozen=True, slots=True)
class ProtectionRule:
    scope: Scope
    pattern: str
    tier: Tier = Tier.USER
    effect: Effect = Effect.PROTECT
    description: str = ""

    @property
    def key(self) -> tuple:
        return (self.scope, self.pattern, self.tier, self.effect)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "scope": self.scope.value,
            "pattern": self.pattern,
            "effect": self.effect.value,
        }
        if self.description:
            payload["description"] = self.description
        return payload

    @classmethod
    def from_dict(cls, data: Dict[str, Any], *, tier: Tier) -> "ProtectionRule":
        pattern = str(data.get("pattern") or "").strip()
        if not pattern:
            raise ValueError("rule pattern must not be empty")
        return cls(
            scope=Scope(str(data.get("scope", "")).lower()),
            pattern=pattern,
            tier=tier,
            effect=Effect(str(data.get("effect", Effect.PROTECT.value)).lower()),
            description=str(data.get("description") or ""),
        )


class VerdictKind(str, Enum):
    ALLOWED = "allowed"
    PROTECTED = "protected"
    NOT_FOUND = "not_found"


@dataclass(frozen=True, slots=True)
class Verdict:
    """Outcome of validating one target.

    ``critical`` marks a match against the compiled-in critical list; such a
    verdict can never be overridden. ``allow_matched`` records whether an
    explicit Allow rule applied, which backup policies consult.
    """

    target: str
    kind: VerdictKind
    reason: str = ""
    rule: Optional[ProtectionRule] = None
    critical: bool = False
    overridden: bool = False
    allow_matched: bool = False

    @property
    def blocking(self) -> bool:
        return self.kind is VerdictKind.PROTECTED and not self.overridden

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target": self.target,
            "kind": self.kind.value,
            "reason": self.reason,
            "critical": self.critical,
            "overridden": self.overridden,
            "allow_matched": self.allow_matched,
            "rule": self.rule.to_dict() if self.rule else None,
        }


__all__ = [
    "Effect",
    "ProtectionRule",
    "Scope",
    "Tier",
    "Verdict",
    "VerdictKind",
]
