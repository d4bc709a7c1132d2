from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable, List, Optional

import pytest

from adapters.base import AdapterError, PackageManager, ServiceManager
from adapters.local import LocalFileSystem
from journal.store import InMemoryJournalStore
from preflight.checks import StaticContextChecks
from protection.store import InMemoryRuleStore
from workflow.confirm import StaticConfirmer
from workflow.service import SafetyService


class FakeServiceManager(ServiceManager):
    def __init__(self, active: Iterable[str] = (), inactive: Iterable[str] = (), fail_on: Iterable[str] = ()) -> None:
        self.active = set(active)
        self.known = set(active) | set(inactive)
        self.fail_on = set(fail_on)
        self.calls: List[tuple] = []

    def exists(self, name: str) -> bool:
        return name in self.known

    def is_active(self, name: str) -> bool:
        return name in self.active

    def list_active(self) -> List[str]:
        return sorted(self.active)

    def stop(self, name: str) -> None:
        self.calls.append(("stop", name))
        if name in self.fail_on:
            raise AdapterError(f"systemctl stop {name} failed", returncode=1, stderr="Access denied")
        self.active.discard(name)

    def start(self, name: str) -> None:
        self.calls.append(("start", name))
        if name in self.fail_on:
            raise AdapterError(f"systemctl start {name} failed", returncode=1, stderr="Access denied")
        self.active.add(name)


class FakePackageManager(PackageManager):
    def __init__(self, installed: Optional[Dict[str, str]] = None, fail_on: Iterable[str] = ()) -> None:
        self.installed: Dict[str, str] = dict(installed or {})
        self.fail_on = set(fail_on)
        self.calls: List[tuple] = []

    def is_installed(self, name: str) -> bool:
        return name in self.installed

    def installed_version(self, name: str) -> Optional[str]:
        return self.installed.get(name)

    def remove(self, name: str) -> None:
        self.calls.append(("remove", name))
        if name in self.fail_on:
            raise AdapterError(f"apt-get remove {name} failed", returncode=100, stderr="dpkg lock held")
        self.installed.pop(name, None)

    def install(self, name: str, version: Optional[str] = None) -> None:
        self.calls.append(("install", name, version))
        if name in self.fail_on:
            raise AdapterError(f"apt-get install {name} failed", returncode=100)
        self.installed[name] = version or "latest"


class FlakyFileSystem(LocalFileSystem):
    """Local filesystem whose remove fails for chosen basenames."""

    def __init__(self, fail_names: Iterable[str] = ()) -> None:
        self.fail_names = set(fail_names)

    def remove(self, path: Path) -> None:
        if Path(path).name in self.fail_names:
            raise AdapterError(f"remove {path} failed: Permission denied")
        super().remove(path)


@pytest.fixture
def services() -> FakeServiceManager:
    return FakeServiceManager(active={"nginx", "cups"}, inactive={"bluetooth"})


@pytest.fixture
def packages() -> FakePackageManager:
    return FakePackageManager({"htop": "3.0.5-7", "nginx": "1.18.0-6ubuntu14"})


@pytest.fixture
def filesystem() -> FlakyFileSystem:
    return FlakyFileSystem()


@pytest.fixture
def confirmer() -> StaticConfirmer:
    return StaticConfirmer(True)


@pytest.fixture
def checks() -> StaticContextChecks:
    return StaticContextChecks()


@pytest.fixture
def rules() -> InMemoryRuleStore:
    return InMemoryRuleStore()


@pytest.fixture
def work_dir(tmp_path: Path) -> Path:
    path = tmp_path / "state"
    path.mkdir()
    return path


@pytest.fixture
def sandbox(tmp_path: Path) -> Path:
    path = tmp_path / "sandbox"
    path.mkdir()
    return path


@pytest.fixture
def service(work_dir, filesystem, services, packages, confirmer, checks, rules) -> SafetyService:
    svc = SafetyService.from_settings(
        work_dir,
        settings={},
        filesystem=filesystem,
        services=services,
        packages=packages,
        confirmer=confirmer,
        checks=checks,
        rules=rules,
    )
    yield svc
    svc.close()


@pytest.fixture
def memory_service(work_dir, filesystem, services, packages, confirmer, checks, rules) -> SafetyService:
    return SafetyService.from_settings(
        work_dir,
        settings={},
        filesystem=filesystem,
        services=services,
        packages=packages,
        confirmer=confirmer,
        checks=checks,
        rules=rules,
        journal_store=InMemoryJournalStore(),
    )
