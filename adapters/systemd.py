"""Service manager adapter driving ``systemctl``."""
from __future__ import annotations

import logging
from typing import List

from .base import ServiceManager, run_command

LOGGER = logging.getLogger("fub.adapters.systemd")


def _unit(name: str) -> str:
    name = name.strip()
    if "." in name:
        return name
    return f"{name}.service"


class SystemdServiceManager(ServiceManager):
    def __init__(self, *, use_sudo: bool = False) -> None:
        self._use_sudo = use_sudo

    def exists(self, name: str) -> bool:
        result = run_command(
            ["systemctl", "list-unit-files", "--no-legend", "--no-pager", _unit(name)],
            check=False,
        )
        if result.returncode == 0 and result.stdout.strip():
            return True
        # Units generated at runtime are not listed as unit files.
        probe = run_command(
            ["systemctl", "show", "--property=LoadState", "--value", _unit(name)],
            check=False,
        )
        return probe.stdout.strip() == "loaded"

    def is_active(self, name: str) -> bool:
        result = run_command(["systemctl", "is-active", "--quiet", _unit(name)], check=False)
        return result.returncode == 0

    def list_active(self) -> List[str]:
        result = run_command(
            [
                "systemctl",
                "list-units",
                "--type=service",
                "--state=active",
                "--no-legend",
                "--no-pager",
                "--plain",
            ]
        )
        names: List[str] = []
        for line in result.stdout.splitlines():
            parts = line.split()
            if not parts:
                continue
            unit = parts[0]
            if unit.endswith(".service"):
                unit = unit[: -len(".service")]
            names.append(unit)
        return names

    def stop(self, name: str) -> None:
        LOGGER.info("stopping %s", _unit(name))
        run_command(["systemctl", "stop", _unit(name)], use_sudo=self._use_sudo)

    def start(self, name: str) -> None:
        LOGGER.info("starting %s", _unit(name))
        run_command(["systemctl", "start", _unit(name)], use_sudo=self._use_sudo)


__all__ = ["SystemdServiceManager"]
