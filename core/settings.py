from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Any, Dict

from .settings_schema import SETTINGS_VALIDATOR

from .paths import get_default_settings_paths

__all__ = [
    "DEFAULT_SETTINGS",
    "SETTINGS_VERSION",
    "load_settings",
    "merge_defaults",
    "save_settings",
    "update_settings",
]

SETTINGS_VERSION = 2


DEFAULT_SETTINGS: Dict[str, Any] = {
    "version": SETTINGS_VERSION,
    "safety": {
        "level": "standard",
        "skip_confirmations": False,
        "levels": {
            "conservative": {},
            "standard": {},
            "aggressive": {},
        },
    },
    "journal": {
        "max_entries": 100,
        "retention_days": 30,
    },
    "backup": {
        "retention": {
            "max_age_days": 7,
            "max_count": 100,
        },
    },
    "protection": {
        "system_rules_path": "/etc/fub/protection-rules.json",
        "user_rules_path": None,
    },
    "preflight": {
        "max_load": 2.0,
        "max_memory_pct": 90,
        "min_disk_mb": 1024,
        "disk_paths": ["/"],
        "watched_services": [
            "docker",
            "containerd",
            "podman",
            "kubelet",
            "mysql",
            "mariadb",
            "postgresql",
            "redis-server",
            "mongod",
            "nginx",
            "apache2",
            "caddy",
        ],
        "editor_processes": [
            "code",
            "code-insiders",
            "vim",
            "nvim",
            "emacs",
            "sublime_text",
            "idea",
            "pycharm",
            "webstorm",
            "goland",
            "clion",
            "rider",
        ],
        "project_indicators": [
            ".git",
            ".hg",
            ".svn",
            "package.json",
            "pyproject.toml",
            "setup.py",
            "requirements.txt",
            "Cargo.toml",
            "go.mod",
            "pom.xml",
            "build.gradle",
            "Makefile",
            "CMakeLists.txt",
        ],
        "important_patterns": [
            ".env",
            ".env.*",
            "*.conf",
            "*.config",
            "id_rsa*",
            "id_ed25519*",
            "known_hosts",
            "*.pem",
            "*.key",
            "*.crt",
            "*.p12",
            "*.db",
            "*.sqlite",
            "*.sqlite3",
        ],
    },
    "adapters": {
        "use_sudo": "auto",
    },
    "api": {
        "host": "127.0.0.1",
        "port": 8757,
        "api_key": None,
    },
}


def merge_defaults(data: Dict[str, Any]) -> Dict[str, Any]:
    def _merge(default: Dict[str, Any], payload: Dict[str, Any]) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        for key, value in default.items():
            if isinstance(value, dict):
                current = payload.get(key)
                if isinstance(current, dict):
                    result[key] = _merge(value, current)
                else:
                    result[key] = _merge(value, {})
            elif isinstance(value, list):
                current = payload.get(key)
                result[key] = list(current) if isinstance(current, list) else list(value)
            else:
                result[key] = payload.get(key, value)
        for key, value in payload.items():
            if key not in result:
                result[key] = value
        return result

    return _merge(DEFAULT_SETTINGS, data or {})


def _apply_migrations(settings: Dict[str, Any], working_dir: Path, version: Any) -> Dict[str, Any]:
    try:
        version_int = int(version)
    except (TypeError, ValueError):
        version_int = 0
    if version_int < 2:
        # v1 stored the safety level and backup switch at the top level.
        legacy_level = settings.pop("safety_level", None)
        if isinstance(legacy_level, str) and legacy_level.strip():
            settings["safety"]["level"] = legacy_level.strip().lower()
        if settings.pop("skip_backup", False):
            for name in ("conservative", "standard", "aggressive"):
                settings["safety"]["levels"].setdefault(name, {})["require_backup"] = "never"
    if version_int < SETTINGS_VERSION:
        settings["version"] = SETTINGS_VERSION
    return settings


def _log_unknown_keys(settings: Dict[str, Any], working_dir: Path) -> None:
    unknown = list(SETTINGS_VALIDATOR.unknown_keys(settings))
    if not unknown:
        return
    logs_dir = working_dir / "logs"
    payload = {
        "ts": time.time(),
        "unknown": unknown,
    }
    target = logs_dir / "settings_unknown.json"
    try:
        logs_dir.mkdir(parents=True, exist_ok=True)
        with open(target, "w", encoding="utf-8") as handle:
            json.dump(payload, handle, ensure_ascii=False, indent=2)
    except OSError:
        return


def load_settings(working_dir: Path) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    for candidate in get_default_settings_paths(working_dir):
        try:
            with open(candidate, "r", encoding="utf-8") as handle:
                loaded = json.load(handle)
        except FileNotFoundError:
            continue
        except json.JSONDecodeError:
            continue
        except OSError:
            continue
        if isinstance(loaded, dict):
            data = loaded
            break
    merged = merge_defaults(data)
    merged = _apply_migrations(merged, working_dir, data.get("version"))
    merged.setdefault("working_dir", str(working_dir))
    _log_unknown_keys(merged, working_dir)
    return merged


def save_settings(settings: Dict[str, Any], working_dir: Path) -> None:
    merged = merge_defaults(dict(settings))
    merged = _apply_migrations(merged, working_dir, settings.get("version"))
    merged.setdefault("working_dir", str(working_dir))
    path = working_dir / "settings.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as handle:
        json.dump(merged, handle, ensure_ascii=False, indent=2)


def update_settings(working_dir: Path, **values: Any) -> None:
    current = load_settings(working_dir)
    current.update(values)
    save_settings(current, working_dir)
