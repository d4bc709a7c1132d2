"""Adapters between the safety engine and the host system."""
from __future__ import annotations

from .apt import AptPackageManager
from .base import AdapterError, FileStat, FileSystem, PackageManager, ServiceManager
from .local import LocalFileSystem
from .systemd import SystemdServiceManager

__all__ = [
    "AdapterError",
    "AptPackageManager",
    "FileStat",
    "FileSystem",
    "LocalFileSystem",
    "PackageManager",
    "ServiceManager",
    "SystemdServiceManager",
]
