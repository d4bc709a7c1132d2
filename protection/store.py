"""Rule stores holding System-tier and User-tier protection rules."""
from __future__ import annotations

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .types import Effect, ProtectionRule, Scope, Tier

LOGGER = logging.getLogger("fub.protection")

RULES_FORMAT_VERSION = 1


def _rule(scope: Scope, pattern: str, effect: Effect, description: str = "") -> ProtectionRule:
    return ProtectionRule(scope=scope, pattern=pattern, tier=Tier.USER, effect=effect, description=description)


DEFAULT_USER_RULES: Tuple[ProtectionRule, ...] = (
    _rule(Scope.FILES, "~/.bashrc", Effect.PROTECT, "shell configuration"),
    _rule(Scope.FILES, "~/.profile", Effect.PROTECT, "shell configuration"),
    _rule(Scope.FILES, "~/.zshrc", Effect.PROTECT, "shell configuration"),
    _rule(Scope.FILES, "~/.env*", Effect.PROTECT, "environment secrets"),
    _rule(Scope.FILES, "~/.ssh", Effect.PROTECT, "ssh keys"),
    _rule(Scope.FILES, "~/.gnupg", Effect.PROTECT, "gpg keyring"),
    _rule(Scope.DIRECTORIES, "~/.ssh", Effect.PROTECT, "ssh keys"),
    _rule(Scope.DIRECTORIES, "~/.gnupg", Effect.PROTECT, "gpg keyring"),
    _rule(Scope.DIRECTORIES, "~/projects", Effect.PROTECT, "development workspace"),
    _rule(Scope.DIRECTORIES, "~/dev", Effect.PROTECT, "development workspace"),
    _rule(Scope.DIRECTORIES, "~/src", Effect.PROTECT, "development workspace"),
    _rule(Scope.DIRECTORIES, "~/workspace", Effect.PROTECT, "development workspace"),
    _rule(Scope.SERVICES, "ssh", Effect.PROTECT, "remote access"),
    _rule(Scope.SERVICES, "networking", Effect.PROTECT, "network connectivity"),
    _rule(Scope.SERVICES, "mysql*", Effect.PROTECT, "database server"),
    _rule(Scope.SERVICES, "postgresql*", Effect.PROTECT, "database server"),
    _rule(Scope.PACKAGES, "ubuntu-minimal", Effect.PROTECT, "base system"),
    _rule(Scope.PACKAGES, "ubuntu-standard", Effect.PROTECT, "base system"),
    _rule(Scope.PACKAGES, "systemd", Effect.PROTECT, "init system"),
    _rule(Scope.FILES, "*.tmp", Effect.ALLOW, "temporary file"),
    _rule(Scope.FILES, "*.log", Effect.ALLOW, "log file"),
    _rule(Scope.FILES, "*.cache", Effect.ALLOW, "cache file"),
    _rule(Scope.FILES, "*~", Effect.ALLOW, "editor backup"),
    _rule(Scope.FILES, ".#*", Effect.ALLOW, "editor lock"),
    _rule(Scope.FILES, "#*#", Effect.ALLOW, "editor autosave"),
    _rule(Scope.FILES, "*.swp", Effect.ALLOW, "vim swap"),
    _rule(Scope.FILES, "*.swo", Effect.ALLOW, "vim swap"),
    _rule(Scope.DIRECTORIES, "/tmp", Effect.ALLOW, "temporary directory"),
    _rule(Scope.DIRECTORIES, "/var/tmp", Effect.ALLOW, "temporary directory"),
    _rule(Scope.DIRECTORIES, "node_modules", Effect.ALLOW, "dependency cache"),
    _rule(Scope.DIRECTORIES, "__pycache__", Effect.ALLOW, "bytecode cache"),
)


def parse_rules(entries: Iterable[Any], *, tier: Tier) -> Tuple[List[ProtectionRule], List[str]]:
    """Parse raw rule entries, returning the valid rules and a problem list."""

    rules: List[ProtectionRule] = []
    problems: List[str] = []
    for index, entry in enumerate(entries):
        label = f"{tier.value}[{index}]"
        if not isinstance(entry, dict):
            problems.append(f"{label}: expected an object")
            continue
        try:
            rules.append(ProtectionRule.from_dict(entry, tier=tier))
        except ValueError as exc:
            problems.append(f"{label}: {exc}")
    return rules, problems


class RuleStore(ABC):
    """Source of declared protection rules, partitioned by tier."""

    @abstractmethod
    def rules(self, tier: Optional[Tier] = None) -> List[ProtectionRule]: ...

    @abstractmethod
    def add(self, rule: ProtectionRule) -> bool:
        """Add *rule*; returns False when an identical rule already exists."""

    @abstractmethod
    def remove(self, rule: ProtectionRule) -> bool: ...

    def problems(self) -> List[str]:
        return []

    def export(self, tier: Tier) -> Dict[str, Any]:
        return {
            "version": RULES_FORMAT_VERSION,
            "tier": tier.value,
            "rules": [rule.to_dict() for rule in self.rules(tier)],
        }

    def import_rules(self, payload: Dict[str, Any], *, tier: Tier) -> Tuple[int, List[str]]:
        parsed, problems = parse_rules(payload.get("rules") or [], tier=tier)
        added = sum(1 for rule in parsed if self.add(rule))
        return added, problems


class InMemoryRuleStore(RuleStore):
    def __init__(self, rules: Optional[Iterable[ProtectionRule]] = None) -> None:
        self._rules: List[ProtectionRule] = []
        for rule in rules or ():
            self.add(rule)

    def rules(self, tier: Optional[Tier] = None) -> List[ProtectionRule]:
        return [rule for rule in self._rules if tier is None or rule.tier is tier]

    def add(self, rule: ProtectionRule) -> bool:
        if any(item.key == rule.key for item in self._rules):
            return False
        self._rules.append(rule)
        return True

    def remove(self, rule: ProtectionRule) -> bool:
        remaining = [item for item in self._rules if item.key != rule.key]
        removed = len(remaining) != len(self._rules)
        self._rules = remaining
        return removed


class JsonRuleStore(RuleStore):
    """One JSON document per tier: ``{"version": 1, "rules": [...]}``."""

    def __init__(self, *, system_path: Optional[Path], user_path: Path) -> None:
        self._paths: Dict[Tier, Optional[Path]] = {
            Tier.SYSTEM: Path(system_path) if system_path else None,
            Tier.USER: Path(user_path),
        }
        self._lock = Lock()

    def path_for(self, tier: Tier) -> Optional[Path]:
        return self._paths[tier]

    def _load(self, tier: Tier) -> Tuple[List[ProtectionRule], List[str]]:
        path = self._paths[tier]
        if path is None or not path.exists():
            return [], []
        try:
            with open(path, "r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except json.JSONDecodeError as exc:
            return [], [f"{path}: invalid JSON ({exc.msg} at line {exc.lineno})"]
        except OSError as exc:
            LOGGER.warning("cannot read rules file %s: %s", path, exc)
            return [], [f"{path}: unreadable ({exc.strerror or exc})"]
        if isinstance(payload, list):
            entries = payload
        elif isinstance(payload, dict):
            entries = payload.get("rules") or []
        else:
            return [], [f"{path}: expected an object with a 'rules' list"]
        return parse_rules(entries, tier=tier)

    def _save(self, tier: Tier, rules: List[ProtectionRule]) -> None:
        path = self._paths[tier]
        if path is None:
            raise ValueError(f"no rules file configured for tier {tier.value}")
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "version": RULES_FORMAT_VERSION,
            "tier": tier.value,
            "rules": [rule.to_dict() for rule in rules],
        }
        fd, tmp_name = tempfile.mkstemp(prefix=".rules-", suffix=".json", dir=str(path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2)
            os.replace(tmp_name, path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def rules(self, tier: Optional[Tier] = None) -> List[ProtectionRule]:
        tiers = [tier] if tier is not None else [Tier.SYSTEM, Tier.USER]
        collected: List[ProtectionRule] = []
        problems: List[str] = []
        for current in tiers:
            loaded, issues = self._load(current)
            collected.extend(loaded)
            problems.extend(issues)
        for issue in problems:
            LOGGER.warning("ignoring malformed rule: %s", issue)
        return collected

    def problems(self) -> List[str]:
        problems: List[str] = []
        for tier in (Tier.SYSTEM, Tier.USER):
            problems.extend(self._load(tier)[1])
        return problems

    def add(self, rule: ProtectionRule) -> bool:
        with self._lock:
            current, _ = self._load(rule.tier)
            if any(item.key == rule.key for item in current):
                return False
            current.append(rule)
            self._save(rule.tier, current)
        LOGGER.info("added %s rule %s:%s (%s)", rule.tier.value, rule.scope.value, rule.pattern, rule.effect.value)
        return True

    def remove(self, rule: ProtectionRule) -> bool:
        with self._lock:
            current, _ = self._load(rule.tier)
            remaining = [item for item in current if item.key != rule.key]
            if len(remaining) == len(current):
                return False
            self._save(rule.tier, remaining)
        LOGGER.info("removed %s rule %s:%s", rule.tier.value, rule.scope.value, rule.pattern)
        return True


def install_default_rules(store: RuleStore) -> int:
    """Add the default User-tier rules that are not present yet."""

    return sum(1 for rule in DEFAULT_USER_RULES if store.add(rule))


__all__ = [
    "DEFAULT_USER_RULES",
    "InMemoryRuleStore",
    "JsonRuleStore",
    "RuleStore",
    "install_default_rules",
    "parse_rules",
]
