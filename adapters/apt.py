"""Package manager adapter for dpkg/apt based systems."""
from __future__ import annotations

import logging
from typing import Optional

from .base import PackageManager, run_command

LOGGER = logging.getLogger("fub.adapters.apt")

_APT_PREFIX = ["env", "DEBIAN_FRONTEND=noninteractive", "apt-get", "-y"]


class AptPackageManager(PackageManager):
    def __init__(self, *, use_sudo: bool = False) -> None:
        self._use_sudo = use_sudo

    def _query(self, name: str) -> Optional[tuple[str, str]]:
        result = run_command(
            ["dpkg-query", "-W", "-f=${Status}\t${Version}", name],
            check=False,
        )
        if result.returncode != 0 or not result.stdout.strip():
            return None
        status, _, version = result.stdout.strip().partition("\t")
        return status, version

    def is_installed(self, name: str) -> bool:
        record = self._query(name)
        if record is None:
            return False
        status, _ = record
        return status.split()[-1:] == ["installed"]

    def installed_version(self, name: str) -> Optional[str]:
        record = self._query(name)
        if record is None or record[0].split()[-1:] != ["installed"]:
            return None
        return record[1] or None

    def _apt(self, *args: str) -> None:
        run_command([*_APT_PREFIX, *args], use_sudo=self._use_sudo)

    def remove(self, name: str) -> None:
        LOGGER.info("removing package %s", name)
        self._apt("remove", name)

    def install(self, name: str, version: Optional[str] = None) -> None:
        spec = f"{name}={version}" if version else name
        LOGGER.info("installing package %s", spec)
        self._apt("install", "--allow-downgrades", spec)


__all__ = ["AptPackageManager"]
