from types import SimpleNamespace

import pytest

from adapters.base import AdapterError
from preflight import checks as checks_mod
from preflight.checks import SystemContextChecks
from preflight.types import CheckSeverity


class _Proc:
    def __init__(self, name):
        self.info = {"name": name}


@pytest.fixture
def calm_system(monkeypatch):
    monkeypatch.setattr(checks_mod.psutil, "getloadavg", lambda: (0.3, 0.2, 0.1))
    monkeypatch.setattr(checks_mod.psutil, "virtual_memory", lambda: SimpleNamespace(percent=40.0))
    monkeypatch.setattr(checks_mod.psutil, "disk_usage", lambda path: SimpleNamespace(free=50 * 1024 ** 3))
    monkeypatch.setattr(checks_mod.psutil, "process_iter", lambda attrs=None: iter([_Proc("bash"), _Proc("sshd")]))


def _checks(services, **overrides):
    settings = {
        "max_load": 2.0,
        "max_memory_pct": 90,
        "min_disk_mb": 1024,
        "disk_paths": ["/"],
        "watched_services": ["nginx", "docker"],
        "editor_processes": ["vim", "code"],
        "project_indicators": [".git"],
    }
    settings.update(overrides)
    return SystemContextChecks(settings, services=services)


def test_quiet_system_has_no_basic_warnings(calm_system, services):
    report = _checks(services).run([], basic=True, advanced=False)
    assert report.ran_basic and not report.ran_advanced
    assert report.items == []


def test_basic_thresholds(monkeypatch, calm_system, services):
    monkeypatch.setattr(checks_mod.psutil, "getloadavg", lambda: (7.5, 5.0, 3.0))
    monkeypatch.setattr(checks_mod.psutil, "virtual_memory", lambda: SimpleNamespace(percent=97.0))
    monkeypatch.setattr(checks_mod.psutil, "disk_usage", lambda path: SimpleNamespace(free=100 * 1024 ** 2))

    report = _checks(services).run([], basic=True, advanced=False)
    assert [item.code for item in report.warnings] == ["HIGH_LOAD", "HIGH_MEMORY", "LOW_DISK"]
    assert report.warnings[2].data["free_mb"] == 100


def test_unreadable_sources_become_info(monkeypatch, calm_system, services):
    def no_load():
        raise OSError("unsupported")

    def no_disk(path):
        raise FileNotFoundError(2, "No such file or directory")

    monkeypatch.setattr(checks_mod.psutil, "getloadavg", no_load)
    monkeypatch.setattr(checks_mod.psutil, "disk_usage", no_disk)
    report = _checks(services, disk_paths=["/mnt/gone"]).run([], basic=True, advanced=False)
    assert {item.code for item in report.items} == {"LOAD_UNKNOWN", "DISK_UNKNOWN"}
    assert report.warnings == []


def test_advanced_checks(monkeypatch, calm_system, services, tmp_path):
    project = tmp_path / "proj"
    (project / ".git").mkdir(parents=True)
    (project / "src").mkdir()
    target = project / "src" / "build"
    monkeypatch.setattr(checks_mod.psutil, "process_iter", lambda attrs=None: iter([_Proc("vim"), _Proc("VIM")]))

    report = _checks(services).run([str(target), "nginx"], basic=False, advanced=True)
    codes = [item.code for item in report.items]
    assert codes == ["SERVICE_RUNNING", "DEV_PROJECT", "EDITOR_ACTIVE"]
    assert report.items[0].data["service"] == "nginx"
    assert report.items[1].data["project"] == str(project)
    assert all(item.severity is CheckSeverity.WARNING for item in report.items)


def test_find_project_root_without_indicator(services, tmp_path):
    assert _checks(services).find_project_root(str(tmp_path / "a" / "b")) is None


def test_service_enumeration_failure(monkeypatch, calm_system, services):
    def broken():
        raise AdapterError("systemctl not available")

    monkeypatch.setattr(services, "list_active", broken)
    report = _checks(services, editor_processes=[]).run([], basic=False, advanced=True)
    assert [item.code for item in report.items] == ["SERVICES_UNKNOWN"]
    assert report.items[0].severity is CheckSeverity.INFO
