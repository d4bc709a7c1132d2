"""Compiled-in critical targets. These always resolve to Protect."""
from __future__ import annotations

from typing import FrozenSet

# Protected together with everything beneath them.
CRITICAL_TREES: FrozenSet[str] = frozenset(
    {
        "/bin",
        "/boot",
        "/dev",
        "/etc",
        "/lib",
        "/lib32",
        "/lib64",
        "/libx32",
        "/proc",
        "/sbin",
        "/sys",
        "/usr",
        "/var/lib/dpkg",
        "/var/lib/apt",
    }
)

# Protected as exact paths only; their contents are ordinary targets.
CRITICAL_ROOTS: FrozenSet[str] = frozenset(
    {
        "/",
        "/home",
        "/root",
        "/var",
        "/var/lib",
        "/var/log",
        "/tmp",
        "/opt",
        "/srv",
        "/run",
        "/mnt",
        "/media",
    }
)

CRITICAL_SERVICES: FrozenSet[str] = frozenset(
    {
        "systemd",
        "cron",
        "sshd",
        "ssh",
        "networking",
        "NetworkManager",
        "dbus",
        "udev",
        "systemd-journald",
        "systemd-logind",
        "systemd-udevd",
        "systemd-resolved",
        "resolved",
        "getty",
        "init",
    }
)

CRITICAL_PACKAGES: FrozenSet[str] = frozenset(
    {
        "ubuntu-minimal",
        "ubuntu-standard",
        "coreutils",
        "bash",
        "systemd",
        "libc6",
        "sudo",
        "apt",
        "dpkg",
        "gnupg",
        "ca-certificates",
        "linux-image-generic",
    }
)


def is_critical_path(path: str) -> bool:
    if path in CRITICAL_ROOTS or path in CRITICAL_TREES:
        return True
    for tree in CRITICAL_TREES:
        if path.startswith(tree + "/"):
            return True
    return False


def is_critical_service(name: str) -> bool:
    base = name[: -len(".service")] if name.endswith(".service") else name
    if base in CRITICAL_SERVICES:
        return True
    # Templated units such as getty@tty1.
    return base.split("@", 1)[0] in CRITICAL_SERVICES


def is_critical_package(name: str) -> bool:
    return name.split(":", 1)[0] in CRITICAL_PACKAGES


__all__ = [
    "CRITICAL_PACKAGES",
    "CRITICAL_ROOTS",
    "CRITICAL_SERVICES",
    "CRITICAL_TREES",
    "is_critical_package",
    "is_critical_path",
    "is_critical_service",
]
