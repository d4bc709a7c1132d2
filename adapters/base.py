"""Collaborator interfaces the safety engine uses to touch the real system."""
from __future__ import annotations

import logging
import os
import shlex
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

LOGGER = logging.getLogger("fub.adapters")


class AdapterError(RuntimeError):
    """Raised when an adapter action fails."""

    def __init__(
        self,
        message: str,
        *,
        command: Optional[Sequence[str]] = None,
        returncode: Optional[int] = None,
        stderr: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.command = list(command) if command else None
        self.returncode = returncode
        self.stderr = (stderr or "").strip() or None

    def __str__(self) -> str:
        text = super().__str__()
        if self.stderr:
            return f"{text}: {self.stderr}"
        return text


@dataclass(slots=True)
class FileStat:
    size: int
    mode: int
    mtime: float
    uid: int
    gid: int
    is_dir: bool = False
    owner: Optional[str] = None
    group: Optional[str] = None


def run_command(
    cmd: Sequence[str], *, use_sudo: bool = False, check: bool = True
) -> subprocess.CompletedProcess:
    """Run *cmd* synchronously.

    With ``check`` set a non-zero exit raises ``AdapterError`` carrying stderr;
    otherwise the completed process is returned for the caller to inspect.
    """

    argv = list(cmd)
    if use_sudo:
        argv = ["sudo", "-n", *argv]
    printable = " ".join(shlex.quote(part) for part in argv)
    LOGGER.debug("exec %s", printable)
    try:
        result = subprocess.run(argv, capture_output=True, text=True, check=False)
    except FileNotFoundError as exc:
        raise AdapterError(f"command not available: {argv[0]}", command=argv) from exc
    if check and result.returncode != 0:
        raise AdapterError(
            f"command failed ({result.returncode}): {printable}",
            command=argv,
            returncode=result.returncode,
            stderr=result.stderr,
        )
    return result


def resolve_use_sudo(value: object) -> bool:
    """Interpret the ``adapters.use_sudo`` setting ("auto", true, false)."""

    if isinstance(value, bool):
        return value
    if str(value).strip().lower() == "auto":
        return hasattr(os, "geteuid") and os.geteuid() != 0
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


class FileSystem(ABC):
    @abstractmethod
    def exists(self, path: Path) -> bool: ...

    @abstractmethod
    def is_dir(self, path: Path) -> bool: ...

    @abstractmethod
    def stat(self, path: Path) -> FileStat: ...

    @abstractmethod
    def list_dir(self, path: Path) -> List[str]: ...

    @abstractmethod
    def copy(self, source: Path, dest: Path) -> None:
        """Copy a file or a whole tree, preserving mode and timestamps."""

    @abstractmethod
    def remove(self, path: Path) -> None:
        """Remove a file, symlink or directory tree."""

    @abstractmethod
    def write_bytes(self, path: Path, data: bytes) -> None:
        """Replace the content of an existing file, keeping its mode."""

    @abstractmethod
    def make_dir(self, path: Path) -> None: ...

    @abstractmethod
    def remove_empty_dir(self, path: Path) -> None: ...

    @abstractmethod
    def apply_metadata(self, path: Path, meta: FileStat) -> None:
        """Restore permission bits, timestamps and ownership on *path*."""


class ServiceManager(ABC):
    @abstractmethod
    def exists(self, name: str) -> bool: ...

    @abstractmethod
    def is_active(self, name: str) -> bool: ...

    @abstractmethod
    def list_active(self) -> List[str]: ...

    @abstractmethod
    def stop(self, name: str) -> None: ...

    @abstractmethod
    def start(self, name: str) -> None: ...


class PackageManager(ABC):
    @abstractmethod
    def is_installed(self, name: str) -> bool: ...

    @abstractmethod
    def installed_version(self, name: str) -> Optional[str]: ...

    @abstractmethod
    def remove(self, name: str) -> None: ...

    @abstractmethod
    def install(self, name: str, version: Optional[str] = None) -> None: ...


__all__ = [
    "AdapterError",
    "FileStat",
    "FileSystem",
    "PackageManager",
    "ServiceManager",
    "resolve_use_sudo",
    "run_command",
]
