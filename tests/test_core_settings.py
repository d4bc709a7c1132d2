"""Tests for core.settings helpers."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from core import paths as core_paths
from core.settings import SETTINGS_VERSION, load_settings, merge_defaults, save_settings, update_settings


@pytest.fixture(autouse=True)
def _no_system_settings(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setattr(core_paths, "_SYSTEM_CONFIG_DIR", tmp_path / "no-etc")


def test_merge_defaults_fills_every_section() -> None:
    merged = merge_defaults({"safety": {"level": "aggressive"}})

    assert merged["safety"]["level"] == "aggressive"
    assert merged["safety"]["skip_confirmations"] is False
    assert merged["journal"] == {"max_entries": 100, "retention_days": 30}
    assert merged["backup"]["retention"] == {"max_age_days": 7, "max_count": 100}
    assert ".env" in merged["preflight"]["important_patterns"]
    assert merged["adapters"]["use_sudo"] == "auto"


def test_v1_settings_are_migrated(tmp_path: Path) -> None:
    working_dir = tmp_path
    path = working_dir / "settings.json"
    path.write_text(json.dumps({"safety_level": "Conservative", "skip_backup": True}), encoding="utf-8")

    loaded = load_settings(working_dir)
    assert loaded["version"] == SETTINGS_VERSION
    assert loaded["safety"]["level"] == "conservative"
    assert "safety_level" not in loaded
    assert loaded["safety"]["levels"]["standard"]["require_backup"] == "never"

    save_settings(loaded, working_dir)
    upgraded = json.loads(path.read_text(encoding="utf-8"))
    assert upgraded["version"] == SETTINGS_VERSION
    assert upgraded["working_dir"] == str(working_dir)


def test_unknown_keys_are_logged(tmp_path: Path) -> None:
    (tmp_path / "settings.json").write_text(
        json.dumps({"version": 2, "journal": {"max_entries": 5, "colour": "blue"}, "mystery": 1}),
        encoding="utf-8",
    )
    loaded = load_settings(tmp_path)
    assert loaded["journal"]["max_entries"] == 5

    report = json.loads((tmp_path / "logs" / "settings_unknown.json").read_text(encoding="utf-8"))
    assert report["unknown"] == ["journal.colour", "mystery"]


def test_corrupt_settings_fall_back_to_defaults(tmp_path: Path) -> None:
    (tmp_path / "settings.json").write_text("{broken", encoding="utf-8")
    assert load_settings(tmp_path)["safety"]["level"] == "standard"


def test_update_settings_round_trips(tmp_path: Path) -> None:
    update_settings(tmp_path, api={"host": "127.0.0.1", "port": 9000, "api_key": "k"})
    assert load_settings(tmp_path)["api"]["port"] == 9000
