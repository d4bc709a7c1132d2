from datetime import datetime, timedelta, timezone

import pytest

from journal.api import JournalRetention, OperationJournal
from journal.errors import InvalidTransitionError, JournalError, OperationNotFoundError
from journal.store import InMemoryJournalStore, SqliteJournalStore
from journal.types import Operation, OperationStatus, OperationType, new_operation_id


@pytest.fixture(params=["memory", "sqlite"])
def journal(request, tmp_path):
    if request.param == "memory":
        store = InMemoryJournalStore()
    else:
        store = SqliteJournalStore(tmp_path / "data" / "journal.db")
    yield OperationJournal(store, retention=JournalRetention(max_entries=0, retention_days=30))
    store.close()


def test_record_creates_pending_entry(journal):
    op_id = journal.record(OperationType.FILE_DELETE, "/srv/cache/a.bin", "clear cache", details={"batch_id": "b1"})
    operation = journal.get(op_id)
    assert operation.status is OperationStatus.PENDING
    assert operation.type is OperationType.FILE_DELETE
    assert operation.details == {"batch_id": "b1"}
    assert journal.pending() == [operation]


def test_status_transitions_are_monotonic(journal):
    op_id = journal.record("service_stop", "cups", "printing not needed")
    journal.update_status(op_id, OperationStatus.COMPLETED)
    with pytest.raises(InvalidTransitionError):
        journal.update_status(op_id, OperationStatus.PENDING)
    with pytest.raises(InvalidTransitionError):
        journal.update_status(op_id, OperationStatus.FAILED)
    journal.update_status(op_id, OperationStatus.UNDONE)
    with pytest.raises(InvalidTransitionError):
        journal.update_status(op_id, OperationStatus.COMPLETED)
    assert journal.get(op_id).status is OperationStatus.UNDONE


def test_failed_status_carries_error(journal):
    op_id = journal.record(OperationType.PACKAGE_REMOVE, "htop", "")
    journal.update_status(op_id, OperationStatus.FAILED, error="dpkg lock held")
    operation = journal.get(op_id)
    assert operation.status is OperationStatus.FAILED
    assert operation.error == "dpkg lock held"
    assert operation.updated_at is not None


def test_annotate_and_backup_ref(journal):
    op_id = journal.record(OperationType.FILE_MODIFY, "/srv/app.conf", "")
    journal.set_backup_ref(op_id, op_id)
    journal.annotate(op_id, "restore_content failed")
    operation = journal.get(op_id)
    assert operation.backup_ref == op_id
    assert operation.error == "restore_content failed"
    assert operation.status is OperationStatus.PENDING


def test_list_is_bounded_most_recent_first_and_stable(journal):
    ids = [journal.record(OperationType.FILE_DELETE, f"/srv/f{index}", "") for index in range(5)]
    first = [op.id for op in journal.list(3)]
    assert first == list(reversed(ids))[:3]
    assert [op.id for op in journal.list(3)] == first
    assert len(journal.list(50)) == 5


def test_unknown_operation_raises_lookup_error(journal):
    with pytest.raises(OperationNotFoundError) as info:
        journal.get("op_missing")
    assert isinstance(info.value, LookupError)
    assert info.value.operation_id == "op_missing"


def test_purge_never_removes_pending(journal):
    now = datetime.now(timezone.utc)
    old = (now - timedelta(days=90)).isoformat()
    for status in (OperationStatus.PENDING, OperationStatus.COMPLETED, OperationStatus.FAILED):
        journal.store.insert(
            Operation(id=new_operation_id(), type=OperationType.FILE_DELETE, target=f"/srv/{status.value}",
                      description="", status=status, created_at=old)
        )
    fresh = journal.record(OperationType.FILE_DELETE, "/srv/fresh", "")

    removed = journal.purge(max_age_days=30, now=now)
    assert len(removed) == 2
    remaining = {op.target for op in journal.list(None)}
    assert remaining == {"/srv/pending", "/srv/fresh"}
    assert journal.get(fresh).status is OperationStatus.PENDING


def test_count_retention_trims_oldest_finished_records(tmp_path):
    journal = OperationJournal(InMemoryJournalStore(), retention=JournalRetention(max_entries=3, retention_days=0))
    stuck = journal.record(OperationType.FILE_DELETE, "/srv/stuck", "")
    done = []
    for index in range(4):
        op_id = journal.record(OperationType.FILE_DELETE, f"/srv/{index}", "")
        journal.update_status(op_id, OperationStatus.COMPLETED)
        done.append(op_id)
    journal.apply_retention()
    ids = {op.id for op in journal.list(None)}
    assert stuck in ids
    assert done[-1] in ids
    assert done[0] not in ids


def test_sqlite_journal_is_shared_between_connections(tmp_path):
    db_path = tmp_path / "journal.db"
    first = OperationJournal(SqliteJournalStore(db_path))
    second = OperationJournal(SqliteJournalStore(db_path))
    try:
        a = first.record(OperationType.FILE_DELETE, "/srv/a", "writer one")
        b = second.record(OperationType.FILE_DELETE, "/srv/b", "writer two")
        first.update_status(a, OperationStatus.COMPLETED)
        second.update_status(b, OperationStatus.FAILED, error="boom")
        assert first.get(b).status is OperationStatus.FAILED
        assert second.get(a).status is OperationStatus.COMPLETED
        assert a != b
    finally:
        first.store.close()
        second.store.close()


def test_operation_type_aliases():
    assert OperationType.parse("mkdir") is OperationType.DIRECTORY_CREATE
    assert OperationType.parse("stop-service") is OperationType.SERVICE_STOP
    with pytest.raises(ValueError):
        OperationType.parse("format_disk")


def test_duplicate_id_is_rejected(journal):
    op_id = journal.record(OperationType.FILE_DELETE, "/srv/a", "")
    with pytest.raises(JournalError):
        journal.record(OperationType.FILE_DELETE, "/srv/b", "", operation_id=op_id)
    assert journal.get(op_id).target == "/srv/a"


def test_newer_schema_is_refused(tmp_path):
    import sqlite3

    from core.db import SchemaVersionError

    db_path = tmp_path / "journal.db"
    SqliteJournalStore(db_path).close()
    conn = sqlite3.connect(str(db_path))
    conn.execute("PRAGMA user_version=99")
    conn.commit()
    conn.close()
    with pytest.raises(SchemaVersionError):
        SqliteJournalStore(db_path)
