"""Advisory context checks run before a destructive batch.

Checks only observe the system. They return items; the workflow decides
what a warning means under the selected safety level.
"""
from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Iterable, Iterator, List, Mapping, Optional, Sequence

import psutil

from adapters.base import AdapterError, ServiceManager

from .types import CheckItem, CheckReport, CheckSeverity

LOGGER = logging.getLogger("fub.preflight")


class ContextChecks(ABC):
    @abstractmethod
    def basic(self, targets: Sequence[str]) -> List[CheckItem]:
        """System load, memory and disk space."""

    @abstractmethod
    def advanced(self, targets: Sequence[str]) -> List[CheckItem]:
        """Running services, development directories and editor sessions."""

    def run(self, targets: Sequence[str], *, basic: bool, advanced: bool) -> CheckReport:
        report = CheckReport(ran_basic=basic, ran_advanced=advanced)
        if basic:
            report.items.extend(self.basic(targets))
        if advanced:
            report.items.extend(self.advanced(targets))
        return report


def _warning(code: str, message: str, where: str, hint: Optional[str] = None, **data: Any) -> CheckItem:
    return CheckItem(code=code, severity=CheckSeverity.WARNING, message=message, where=where, hint=hint, data=data)


def _info(code: str, message: str, where: str, **data: Any) -> CheckItem:
    return CheckItem(code=code, severity=CheckSeverity.INFO, message=message, where=where, data=data)


class SystemContextChecks(ContextChecks):
    """Checks backed by psutil and the service manager adapter."""

    def __init__(self, settings: Optional[Mapping[str, Any]] = None, *, services: ServiceManager) -> None:
        cfg = dict(settings or {})
        self._max_load = float(cfg.get("max_load", 2.0))
        self._max_memory_pct = float(cfg.get("max_memory_pct", 90))
        self._min_disk_mb = int(cfg.get("min_disk_mb", 1024))
        self._disk_paths = [str(path) for path in cfg.get("disk_paths") or ["/"]]
        self._watched_services = [str(name) for name in cfg.get("watched_services") or []]
        self._editor_processes = {str(name).lower() for name in cfg.get("editor_processes") or []}
        self._project_indicators = [str(name) for name in cfg.get("project_indicators") or []]
        self._services = services

    # ------------------------------------------------------------------
    def basic(self, targets: Sequence[str]) -> List[CheckItem]:
        items: List[CheckItem] = []
        items.extend(self._check_load())
        items.extend(self._check_memory())
        for path in self._disk_paths:
            items.extend(self._check_disk(path))
        return items

    def _check_load(self) -> Iterator[CheckItem]:
        try:
            load1, _, _ = psutil.getloadavg()
        except (AttributeError, OSError) as exc:
            yield _info("LOAD_UNKNOWN", f"Load average unavailable: {exc}", "system")
            return
        if load1 > self._max_load:
            yield _warning(
                "HIGH_LOAD",
                f"System load {load1:.2f} exceeds {self._max_load:.2f}",
                "system",
                hint="Wait for running jobs to finish before cleaning up.",
                load=load1,
            )

    def _check_memory(self) -> Iterator[CheckItem]:
        memory = psutil.virtual_memory()
        if memory.percent > self._max_memory_pct:
            yield _warning(
                "HIGH_MEMORY",
                f"Memory usage {memory.percent:.0f}% exceeds {self._max_memory_pct:.0f}%",
                "system",
                hint="Close memory hungry applications first.",
                percent=memory.percent,
            )

    def _check_disk(self, path: str) -> Iterator[CheckItem]:
        try:
            usage = psutil.disk_usage(path)
        except OSError as exc:
            yield _info("DISK_UNKNOWN", f"Cannot read disk usage of {path}: {exc}", path)
            return
        free_mb = usage.free // (1024 * 1024)
        if free_mb < self._min_disk_mb:
            yield _warning(
                "LOW_DISK",
                f"Only {free_mb} MB free on {path} (minimum {self._min_disk_mb} MB)",
                path,
                hint="Snapshots need free space; consider Aggressive mode or freeing space first.",
                free_mb=int(free_mb),
            )

    # ------------------------------------------------------------------
    def advanced(self, targets: Sequence[str]) -> List[CheckItem]:
        items: List[CheckItem] = []
        items.extend(self._check_services())
        items.extend(self._check_projects(targets))
        items.extend(self._check_editors())
        return items

    def _check_services(self) -> Iterator[CheckItem]:
        if not self._watched_services:
            return
        try:
            active = set(self._services.list_active())
        except AdapterError as exc:
            LOGGER.warning("cannot enumerate services: %s", exc)
            yield _info("SERVICES_UNKNOWN", f"Cannot enumerate running services: {exc}", "services")
            return
        for name in self._watched_services:
            if name in active:
                yield _warning(
                    "SERVICE_RUNNING",
                    f"Service {name} is running",
                    f"service:{name}",
                    hint=f"Cleanup may affect {name}; stop it first if unsure.",
                    service=name,
                )

    def find_project_root(self, target: str) -> Optional[Path]:
        path = Path(os.path.abspath(os.path.expanduser(target)))
        for candidate in [path, *path.parents]:
            if candidate == candidate.parent:
                break
            for indicator in self._project_indicators:
                try:
                    if (candidate / indicator).exists():
                        return candidate
                except OSError:
                    continue
        return None

    def _check_projects(self, targets: Iterable[str]) -> Iterator[CheckItem]:
        seen = set()
        for target in targets:
            if not target.startswith(("/", "~", ".")):
                continue
            root = self.find_project_root(target)
            if root is None or root in seen:
                continue
            seen.add(root)
            yield _warning(
                "DEV_PROJECT",
                f"{target} is inside the development project {root}",
                str(root),
                hint="Commit or stash your work before cleaning inside a project.",
                project=str(root),
            )

    def _check_editors(self) -> Iterator[CheckItem]:
        if not self._editor_processes:
            return
        running = set()
        for proc in psutil.process_iter(["name"]):
            name = (proc.info.get("name") or "").lower()
            if name in self._editor_processes:
                running.add(name)
        for name in sorted(running):
            yield _warning(
                "EDITOR_ACTIVE",
                f"Editor {name} is running",
                f"process:{name}",
                hint="Save open files; editors may recreate or hold deleted files.",
                process=name,
            )


class StaticContextChecks(ContextChecks):
    """Canned check results, used by tests and non-interactive callers."""

    def __init__(self, basic: Optional[Iterable[CheckItem]] = None, advanced: Optional[Iterable[CheckItem]] = None) -> None:
        self._basic = list(basic or [])
        self._advanced = list(advanced or [])
        self.calls: List[str] = []

    def basic(self, targets: Sequence[str]) -> List[CheckItem]:
        self.calls.append("basic")
        return list(self._basic)

    def advanced(self, targets: Sequence[str]) -> List[CheckItem]:
        self.calls.append("advanced")
        return list(self._advanced)


__all__ = ["ContextChecks", "StaticContextChecks", "SystemContextChecks"]
