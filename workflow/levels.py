"""Safety level policy bundles."""
from __future__ import annotations

from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Any, Dict, Mapping, Optional


class BackupPolicy(str, Enum):
    ALWAYS = "always"
    IMPORTANT_ONLY = "important_only"
    NEVER = "never"

    @classmethod
    def parse(cls, value: "str | BackupPolicy") -> "BackupPolicy":
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower().replace("-", "_")
        if text == "importantonly":
            text = "important_only"
        return cls(text)


class WarningMode(str, Enum):
    CONFIRM = "confirm"  # any warning needs an explicit yes
    SHOW = "show"  # warnings are listed in the final confirmation
    LOG = "log"  # warnings are only logged

    @classmethod
    def parse(cls, value: "str | WarningMode") -> "WarningMode":
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().lower())


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    text = str(value).strip().lower()
    if text in {"1", "true", "yes", "on"}:
        return True
    if text in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"expected a boolean, got {value!r}")


@dataclass(frozen=True, slots=True)
class SafetyLevel:
    name: str
    require_confirmation: bool
    require_backup: BackupPolicy
    run_basic_checks: bool
    run_advanced_checks: bool
    allow_protection_override: bool
    warning_mode: WarningMode = WarningMode.SHOW
    backup_failure_fatal: bool = True

    def with_overrides(self, overrides: Optional[Mapping[str, Any]]) -> "SafetyLevel":
        """Return a new level with *overrides* applied; unknown keys are rejected."""

        if not overrides:
            return self
        known = {item.name for item in fields(self)} - {"name"}
        changes: Dict[str, Any] = {}
        for key, value in overrides.items():
            if key not in known:
                raise ValueError(f"unknown safety level field: {key}")
            if key == "require_backup":
                changes[key] = BackupPolicy.parse(value)
            elif key == "warning_mode":
                changes[key] = WarningMode.parse(value)
            else:
                changes[key] = _as_bool(value)
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "require_confirmation": self.require_confirmation,
            "require_backup": self.require_backup.value,
            "run_basic_checks": self.run_basic_checks,
            "run_advanced_checks": self.run_advanced_checks,
            "allow_protection_override": self.allow_protection_override,
            "warning_mode": self.warning_mode.value,
            "backup_failure_fatal": self.backup_failure_fatal,
        }


CONSERVATIVE = SafetyLevel(
    name="conservative",
    require_confirmation=True,
    require_backup=BackupPolicy.ALWAYS,
    run_basic_checks=True,
    run_advanced_checks=True,
    allow_protection_override=False,
    warning_mode=WarningMode.CONFIRM,
)

STANDARD = SafetyLevel(
    name="standard",
    require_confirmation=True,
    require_backup=BackupPolicy.IMPORTANT_ONLY,
    run_basic_checks=True,
    run_advanced_checks=True,
    allow_protection_override=False,
    warning_mode=WarningMode.SHOW,
)

AGGRESSIVE = SafetyLevel(
    name="aggressive",
    require_confirmation=False,
    require_backup=BackupPolicy.NEVER,
    run_basic_checks=True,
    run_advanced_checks=False,
    allow_protection_override=True,
    warning_mode=WarningMode.LOG,
    backup_failure_fatal=False,
)

SAFETY_LEVELS: Dict[str, SafetyLevel] = {
    level.name: level for level in (CONSERVATIVE, STANDARD, AGGRESSIVE)
}


def get_safety_level(name: "str | SafetyLevel", overrides: Optional[Mapping[str, Any]] = None) -> SafetyLevel:
    if isinstance(name, SafetyLevel):
        return name.with_overrides(overrides)
    key = str(name).strip().lower()
    try:
        level = SAFETY_LEVELS[key]
    except KeyError as exc:
        raise ValueError(f"unknown safety level {name!r}; expected one of {sorted(SAFETY_LEVELS)}") from exc
    return level.with_overrides(overrides)


def level_from_settings(name: Optional[str], settings: Optional[Mapping[str, Any]]) -> SafetyLevel:
    """Resolve *name* (or the configured default) with ``safety.levels`` overrides."""

    safety = (settings or {}).get("safety") or {}
    chosen = name or safety.get("level") or STANDARD.name
    per_level = (safety.get("levels") or {}).get(str(chosen).strip().lower()) or {}
    return get_safety_level(chosen, per_level)


__all__ = [
    "AGGRESSIVE",
    "BackupPolicy",
    "CONSERVATIVE",
    "SAFETY_LEVELS",
    "STANDARD",
    "SafetyLevel",
    "WarningMode",
    "get_safety_level",
    "level_from_settings",
]
