import json
import os
import sys
import tempfile
import unittest
from pathlib import Path
from unittest import mock

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from core import paths as core_paths


class CorePathsTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.addCleanup(self._tmp.cleanup)
        patcher = mock.patch.object(core_paths, "_SYSTEM_CONFIG_DIR", self.root / "etc-fub")
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_fub_home_wins(self) -> None:
        home = self.root / "custom"
        with mock.patch.dict(os.environ, {"FUB_HOME": str(home)}):
            resolved = core_paths.resolve_working_dir()
        self.assertEqual(resolved, home.resolve())
        self.assertTrue((home / "data").is_dir())

    def test_system_settings_working_dir(self) -> None:
        etc = self.root / "etc-fub"
        etc.mkdir()
        target = self.root / "from-etc"
        (etc / "settings.json").write_text(json.dumps({"working_dir": str(target)}), encoding="utf-8")
        env = {key: value for key, value in os.environ.items() if key != "FUB_HOME"}
        with mock.patch.dict(os.environ, env, clear=True):
            resolved = core_paths.resolve_working_dir()
        self.assertEqual(resolved, target.resolve())

    def test_xdg_state_home_fallback(self) -> None:
        env = {key: value for key, value in os.environ.items() if key != "FUB_HOME"}
        env["XDG_STATE_HOME"] = str(self.root / "state")
        with mock.patch.dict(os.environ, env, clear=True):
            resolved = core_paths.resolve_working_dir()
        self.assertEqual(resolved, (self.root / "state").resolve() / "fub")

    def test_structure_layout(self) -> None:
        working = self.root / "work"
        core_paths.ensure_working_dir_structure(working)
        for name in ("data", "backups", "logs", "rules"):
            self.assertTrue((working / name).is_dir())
        self.assertEqual(core_paths.get_journal_db_path(working), working / "data" / "journal.db")
        self.assertEqual(
            core_paths.get_default_settings_paths(working)[0],
            working / "settings.json",
        )


if __name__ == "__main__":
    unittest.main()
