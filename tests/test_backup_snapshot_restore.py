import os
import shutil
import stat
from pathlib import Path

import pytest

from adapters.base import AdapterError
from adapters.local import LocalFileSystem
from backup.api import BackupManager
from backup.errors import BackupError, BackupRestoreError, BackupVerificationError, SnapshotMissingError
from backup.types import SnapshotKind
from journal.types import OperationType


def _manager(work_dir, services, packages, filesystem=None):
    return BackupManager(work_dir, filesystem=filesystem or LocalFileSystem(), services=services, packages=packages)


def _mode(path: Path) -> int:
    return stat.S_IMODE(os.lstat(path).st_mode)


def test_file_snapshot_restores_bytes_and_mode(work_dir, sandbox, services, packages):
    target = sandbox / "app.conf"
    target.write_bytes(b"listen 8080\n")
    os.chmod(target, 0o640)
    manager = _manager(work_dir, services, packages)

    snapshot = manager.snapshot("op_file", OperationType.FILE_DELETE, str(target))
    assert snapshot.kind is SnapshotKind.FILE
    assert (work_dir / "backups" / "op_file" / "snapshot.json").is_file()
    assert manager.verify("op_file")["file_count"] == 1

    target.unlink()
    manager.restore("op_file")
    assert target.read_bytes() == b"listen 8080\n"
    assert _mode(target) == 0o640


def test_directory_snapshot_restores_tree(work_dir, sandbox, services, packages):
    tree = sandbox / "project"
    (tree / "src" / "pkg").mkdir(parents=True)
    (tree / "README").write_text("hello", encoding="utf-8")
    (tree / "src" / "pkg" / "mod.py").write_text("x = 1\n", encoding="utf-8")
    os.chmod(tree / "src" / "pkg" / "mod.py", 0o600)
    os.chmod(tree / "src", 0o750)
    manager = _manager(work_dir, services, packages)

    snapshot = manager.snapshot("op_tree", OperationType.FILE_DELETE, str(tree))
    assert snapshot.kind is SnapshotKind.DIRECTORY
    assert {entry.relative_path for entry in snapshot.entries} == {
        "", "README", "src", "src/pkg", "src/pkg/mod.py"
    }

    shutil.rmtree(tree)
    manager.restore("op_tree")
    assert (tree / "README").read_text(encoding="utf-8") == "hello"
    assert (tree / "src" / "pkg" / "mod.py").read_text(encoding="utf-8") == "x = 1\n"
    assert _mode(tree / "src" / "pkg" / "mod.py") == 0o600
    assert _mode(tree / "src") == 0o750


def test_restore_replaces_modified_content(work_dir, sandbox, services, packages):
    target = sandbox / "hosts.local"
    target.write_text("original", encoding="utf-8")
    manager = _manager(work_dir, services, packages)
    manager.snapshot("op_mod", OperationType.FILE_MODIFY, str(target))

    target.write_text("changed", encoding="utf-8")
    result = manager.restore_content("op_mod")
    assert result["replaced_existing"] is True
    assert target.read_text(encoding="utf-8") == "original"


def test_verify_detects_corruption(work_dir, sandbox, services, packages):
    target = sandbox / "data.bin"
    target.write_bytes(b"\x00" * 64)
    manager = _manager(work_dir, services, packages)
    snapshot = manager.snapshot("op_bad", OperationType.FILE_DELETE, str(target))

    snapshot.content_path.write_bytes(b"\x01" * 64)
    with pytest.raises(BackupVerificationError):
        manager.verify("op_bad")

    target.unlink()
    with pytest.raises(BackupVerificationError):
        manager.restore_content("op_bad")
    assert not target.exists()


class _FailingRestoreFileSystem(LocalFileSystem):
    """Copies out of a snapshot's content directory fail."""

    def copy(self, source: Path, dest: Path) -> None:
        if "content" in Path(source).parts:
            raise AdapterError(f"copy {source} -> {dest} failed: No space left on device")
        super().copy(source, dest)


def test_restore_rolls_back_on_failure(work_dir, sandbox, services, packages):
    target = sandbox / "settings.ini"
    target.write_text("before", encoding="utf-8")
    manager = _manager(work_dir, services, packages, filesystem=_FailingRestoreFileSystem())
    manager.snapshot("op_roll", OperationType.FILE_MODIFY, str(target))
    target.write_text("current", encoding="utf-8")

    with pytest.raises(BackupRestoreError):
        manager.restore_content("op_roll")
    assert target.read_text(encoding="utf-8") == "current"


def test_failed_snapshot_leaves_no_directory(work_dir, sandbox, services, packages):
    class _NoCopy(LocalFileSystem):
        def copy(self, source, dest):
            raise AdapterError("copy failed: Permission denied")

    target = sandbox / "secret.key"
    target.write_text("k", encoding="utf-8")
    manager = _manager(work_dir, services, packages, filesystem=_NoCopy())
    with pytest.raises(BackupError):
        manager.snapshot("op_nocopy", OperationType.FILE_DELETE, str(target))
    assert not manager.exists("op_nocopy")


def test_state_and_absent_snapshots(work_dir, sandbox, services, packages):
    manager = _manager(work_dir, services, packages)

    service = manager.snapshot("op_svc", OperationType.SERVICE_STOP, "nginx")
    assert service.kind is SnapshotKind.SERVICE
    assert service.prior_state == {"active": True}

    package = manager.snapshot("op_pkg", OperationType.PACKAGE_REMOVE, "htop")
    assert package.prior_state == {"installed": True, "version": "3.0.5-7"}

    absent = manager.snapshot("op_new", OperationType.DIRECTORY_CREATE, str(sandbox / "new"))
    assert absent.kind is SnapshotKind.ABSENT
    assert absent.prior_state == {"exists": False}

    with pytest.raises(BackupRestoreError):
        manager.restore_content("op_svc")
    assert manager.load("op_pkg").target == "htop"
    assert {summary.id for summary in manager.list_snapshots()} == {"op_svc", "op_pkg", "op_new"}


def test_duplicate_and_missing_snapshot_ids(work_dir, sandbox, services, packages):
    manager = _manager(work_dir, services, packages)
    manager.snapshot("op_once", OperationType.SERVICE_STOP, "cups")
    with pytest.raises(BackupError):
        manager.snapshot("op_once", OperationType.SERVICE_STOP, "cups")
    with pytest.raises(SnapshotMissingError):
        manager.load("op_never")
    assert manager.discard("op_once") is True
    assert manager.discard("op_once") is False
