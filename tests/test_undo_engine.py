import os
import stat

import pytest

from journal.errors import OperationNotFoundError
from journal.types import OperationStatus
from undo.errors import MissingBackupError
from undo.types import UndoStatus


def test_file_deletion_is_restored_then_idempotent(service, sandbox):
    target = sandbox / "notes.txt"
    target.write_text("abc", encoding="utf-8")
    os.chmod(target, 0o640)

    op_id = service.record_file_deletion(str(target), "tidy notes")
    target.unlink()
    service.complete_operation(op_id)

    outcome = service.undo(op_id)
    assert outcome.status is UndoStatus.UNDONE
    assert [step.name for step in outcome.steps] == ["verify_snapshot", "restore_content", "restore_metadata"]
    assert target.read_text(encoding="utf-8") == "abc"
    assert stat.S_IMODE(os.stat(target).st_mode) == 0o640
    assert service.get_operation(op_id).status is OperationStatus.UNDONE

    again = service.undo(op_id)
    assert again.status is UndoStatus.ALREADY_UNDONE
    assert again.ok


def test_directory_creation_refuses_non_empty_directory(service, sandbox):
    created = sandbox / "scratch"
    op_id = service.record_directory_creation(str(created))
    created.mkdir()
    service.complete_operation(op_id)
    (created / "keep.me").write_text("data", encoding="utf-8")

    outcome = service.undo(op_id)
    assert outcome.status is UndoStatus.FAILED
    [error] = outcome.errors
    assert error.kind == "target_not_empty"
    assert "Manual intervention required" in error.remediation
    assert created.is_dir()
    operation = service.get_operation(op_id)
    assert operation.status is OperationStatus.COMPLETED
    assert "not empty" in operation.error

    (created / "keep.me").unlink()
    assert service.undo(op_id).status is UndoStatus.UNDONE
    assert not created.exists()


def test_package_reinstalled_at_recorded_version(service, packages):
    op_id = service.record_package_removal("htop")
    packages.remove("htop")
    service.complete_operation(op_id)

    outcome = service.undo(op_id)
    assert outcome.ok
    assert ("install", "htop", "3.0.5-7") in packages.calls
    assert packages.installed_version("htop") == "3.0.5-7"


def test_service_restarted_only_if_it_was_active(service, services):
    running = service.record_service_stop("nginx")
    idle = service.record_service_stop("bluetooth")
    services.stop("nginx")
    service.complete_operation(running)
    service.complete_operation(idle)

    assert service.undo(running).status is UndoStatus.UNDONE
    assert services.is_active("nginx")
    assert service.undo(idle).status is UndoStatus.UNDONE
    assert ("start", "bluetooth") not in services.calls


def test_adapter_failure_keeps_status_and_explains(service, services):
    op_id = service.record_service_stop("cups")
    services.stop("cups")
    service.complete_operation(op_id)
    services.fail_on.add("cups")

    outcome = service.undo(op_id)
    assert outcome.status is UndoStatus.FAILED
    assert outcome.errors[0].kind == "adapter_failure"
    assert "systemctl start cups" in outcome.errors[0].remediation
    assert service.get_operation(op_id).status is OperationStatus.COMPLETED


def test_missing_snapshot_is_reported(service, sandbox):
    target = sandbox / "report.csv"
    target.write_text("a,b\n", encoding="utf-8")
    op_id = service.record_file_deletion(str(target))
    target.unlink()
    service.complete_operation(op_id)
    service.backups.discard(service.get_operation(op_id).backup_ref)

    outcome = service.undo(op_id)
    assert outcome.status is UndoStatus.FAILED
    with pytest.raises(MissingBackupError):
        outcome.raise_for_status()
    operation = service.get_operation(op_id)
    assert operation.status is OperationStatus.COMPLETED
    assert operation.error.startswith("undo failed at verify_snapshot")
    assert not target.exists()


def test_failed_operation_can_be_undone(service, sandbox):
    target = sandbox / "half.txt"
    target.write_text("whole", encoding="utf-8")
    op_id = service.record_file_modification(str(target))
    target.write_text("ha", encoding="utf-8")
    service.complete_operation(op_id, error="write interrupted")
    assert service.get_operation(op_id).status is OperationStatus.FAILED

    assert service.undo(op_id).ok
    assert target.read_text(encoding="utf-8") == "whole"


def test_unknown_operation(service):
    with pytest.raises(OperationNotFoundError):
        service.undo("op_does_not_exist")
