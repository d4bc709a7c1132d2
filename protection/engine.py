"""Classify targets as protected or allowed before anything is mutated."""
from __future__ import annotations

import fnmatch
import logging
import os
from typing import TYPE_CHECKING, Iterable, List, Optional, Sequence, Tuple

from adapters.base import FileSystem, PackageManager, ServiceManager
from journal.types import OperationType

from .critical import is_critical_package, is_critical_path, is_critical_service
from .store import RuleStore
from .types import Effect, ProtectionRule, Scope, Tier, Verdict, VerdictKind

if TYPE_CHECKING:  # pragma: no cover - typing guard
    from workflow.levels import SafetyLevel

LOGGER = logging.getLogger("fub.protection")

_GLOB_CHARS = set("*?[")


def normalize_path(target: str) -> str:
    return os.path.normpath(os.path.abspath(os.path.expanduser(target)))


def _strip_service(name: str) -> str:
    name = name.strip()
    return name[: -len(".service")] if name.endswith(".service") else name


def match_path(pattern: str, path: str) -> bool:
    """Match a path rule pattern against a normalised absolute path.

    Absolute patterns cover the path itself and everything beneath it. Glob
    patterns are matched against the full path when they contain a slash and
    against the basename otherwise. Plain relative patterns name a basename.
    """

    expanded = os.path.expanduser(pattern.strip())
    if _GLOB_CHARS.intersection(expanded):
        if "/" in expanded:
            return fnmatch.fnmatchcase(path, expanded)
        return fnmatch.fnmatchcase(os.path.basename(path), expanded)
    if expanded.startswith("/"):
        root = os.path.normpath(expanded)
        if root == "/":
            return True
        return path == root or path.startswith(root + "/")
    if expanded.startswith("./"):
        expanded = expanded[2:]
    return os.path.basename(path) == expanded


def pattern_below(pattern: str, root: str) -> bool:
    """True when an absolute path pattern can only match strictly beneath *root*.

    Glob patterns are compared one component at a time, so
    ``/srv/*/cache`` lies below ``/srv/app`` but not below ``/srv/app/cache``.
    """

    expanded = os.path.expanduser(pattern.strip())
    if not expanded.startswith("/"):
        return False
    parts = [part for part in os.path.normpath(expanded).split("/") if part]
    root_parts = [part for part in root.split("/") if part]
    if len(parts) <= len(root_parts):
        return False
    return all(fnmatch.fnmatchcase(name, part) for name, part in zip(root_parts, parts))


def match_name(pattern: str, name: str, *, scope: Scope) -> bool:
    if scope is Scope.SERVICES:
        return fnmatch.fnmatchcase(_strip_service(name), _strip_service(pattern))
    return fnmatch.fnmatchcase(name.strip(), pattern.strip())


def scope_for(op_type: OperationType, *, is_dir: bool = False) -> Scope:
    if op_type is OperationType.FILE_DELETE:
        return Scope.DIRECTORIES if is_dir else Scope.FILES
    if op_type is OperationType.FILE_MODIFY:
        return Scope.FILES
    if op_type is OperationType.DIRECTORY_CREATE:
        return Scope.DIRECTORIES
    if op_type is OperationType.SERVICE_STOP:
        return Scope.SERVICES
    if op_type is OperationType.PACKAGE_REMOVE:
        return Scope.PACKAGES
    raise ValueError(f"unsupported operation type: {op_type!r}")


class ProtectionEngine:
    """Pure classification over rules, the critical list and read-only state."""

    def __init__(
        self,
        store: RuleStore,
        *,
        filesystem: FileSystem,
        services: ServiceManager,
        packages: PackageManager,
    ) -> None:
        self._store = store
        self._fs = filesystem
        self._services = services
        self._packages = packages

    @property
    def store(self) -> RuleStore:
        return self._store

    def validate(
        self,
        targets: Sequence[str],
        op_type: OperationType,
        safety_level: "SafetyLevel",
    ) -> List[Verdict]:
        rules = self._store.rules()
        verdicts = [self._classify(target, op_type, safety_level, rules) for target in targets]
        for verdict in verdicts:
            LOGGER.debug("verdict %s -> %s (%s)", verdict.target, verdict.kind.value, verdict.reason)
        return verdicts

    # ------------------------------------------------------------------
    def _classify(
        self,
        target: str,
        op_type: OperationType,
        safety_level: "SafetyLevel",
        rules: Sequence[ProtectionRule],
    ) -> Verdict:
        if op_type.is_path_target:
            return self._classify_path(target, op_type, safety_level, rules)
        scope = scope_for(op_type)
        name = _strip_service(target) if scope is Scope.SERVICES else target.strip()
        if scope is Scope.SERVICES and is_critical_service(name):
            return self._critical(target, f"{name} is a critical system service")
        if scope is Scope.PACKAGES and is_critical_package(name):
            return self._critical(target, f"{name} is a critical system package")

        missing = self._missing_reason(name, op_type)
        if missing:
            return Verdict(target=target, kind=VerdictKind.NOT_FOUND, reason=missing)

        matched = [rule for rule in rules if rule.scope is scope and match_name(rule.pattern, name, scope=scope)]
        return self._resolve(target, matched, safety_level)

    def _classify_path(
        self,
        target: str,
        op_type: OperationType,
        safety_level: "SafetyLevel",
        rules: Sequence[ProtectionRule],
    ) -> Verdict:
        literal = normalize_path(target)
        resolved = os.path.realpath(literal)
        candidates = [literal] if resolved == literal else [literal, resolved]
        for path in candidates:
            if is_critical_path(path):
                return self._critical(target, f"{path} is a critical system path")

        exists = self._fs.exists(literal)
        if op_type is OperationType.DIRECTORY_CREATE:
            if exists:
                return Verdict(
                    target=target,
                    kind=VerdictKind.NOT_FOUND,
                    reason=f"{literal} already exists; nothing to create",
                )
        elif not exists:
            return Verdict(target=target, kind=VerdictKind.NOT_FOUND, reason=f"{literal} does not exist")

        is_dir = exists and self._fs.is_dir(literal)
        scope = scope_for(op_type, is_dir=is_dir)
        # Directory rules also cover the files beneath them.
        scopes = {scope, Scope.DIRECTORIES}
        matched = [
            rule
            for rule in rules
            if rule.scope in scopes and any(match_path(rule.pattern, path) for path in candidates)
        ]
        contained: List[ProtectionRule] = []
        if op_type is OperationType.FILE_DELETE and is_dir:
            contained = [
                rule
                for rule in rules
                if rule.effect is Effect.PROTECT
                and rule.scope in (Scope.FILES, Scope.DIRECTORIES)
                and rule not in matched
                and any(pattern_below(rule.pattern, path) for path in candidates)
            ]
        return self._resolve(target, matched + contained, safety_level, contained=contained)

    def _missing_reason(self, name: str, op_type: OperationType) -> Optional[str]:
        if op_type is OperationType.SERVICE_STOP:
            if not self._services.exists(name):
                return f"service {name} does not exist"
            if not self._services.is_active(name):
                return f"service {name} is not running; nothing to stop"
        elif op_type is OperationType.PACKAGE_REMOVE:
            if not self._packages.is_installed(name):
                return f"package {name} is not installed"
        return None

    @staticmethod
    def _critical(target: str, reason: str) -> Verdict:
        return Verdict(target=target, kind=VerdictKind.PROTECTED, reason=reason, critical=True)

    @staticmethod
    def _resolve(
        target: str,
        matched: Iterable[ProtectionRule],
        safety_level: "SafetyLevel",
        *,
        contained: Sequence[ProtectionRule] = (),
    ) -> Verdict:
        ordered: List[Tuple[int, ProtectionRule]] = []
        for rule in matched:
            if rule.effect is Effect.PROTECT:
                rank = 0 if rule.tier is Tier.SYSTEM else 1
            else:
                rank = 2
            ordered.append((rank, rule))
        if not ordered:
            return Verdict(target=target, kind=VerdictKind.ALLOWED, reason="no rule matched")
        ordered.sort(key=lambda item: item[0])
        rank, rule = ordered[0]
        if rule.effect is Effect.ALLOW:
            return Verdict(
                target=target,
                kind=VerdictKind.ALLOWED,
                reason=f"allowed by {rule.tier.value} rule {rule.pattern}",
                rule=rule,
                allow_matched=True,
            )
        overridden = bool(safety_level.allow_protection_override)
        if rule in contained:
            reason = f"contains protected {rule.pattern} ({rule.tier.value} rule)"
        else:
            reason = f"protected by {rule.tier.value} rule {rule.scope.value}:{rule.pattern}"
        if overridden:
            reason += " (overridden by safety level)"
        return Verdict(
            target=target,
            kind=VerdictKind.PROTECTED,
            reason=reason,
            rule=rule,
            overridden=overridden,
        )


__all__ = ["ProtectionEngine", "match_name", "match_path", "normalize_path", "pattern_below", "scope_for"]
