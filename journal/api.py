"""Public API of the operation journal."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from .errors import InvalidTransitionError, OperationNotFoundError
from .store import JournalStore
from .types import Operation, OperationStatus, OperationType, can_transition, new_operation_id, utcnow

LOGGER = logging.getLogger("fub.journal")


@dataclass(slots=True)
class JournalRetention:
    max_entries: int = 100
    retention_days: int = 30


def _parse_ts(value: str) -> Optional[datetime]:
    try:
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class OperationJournal:
    """Durable record of every attempted operation and its outcome.

    Every write goes straight to the backing store, so a status transition is
    persisted by the time the call returns. Retention trims the oldest
    records beyond ``max_entries`` and records older than ``retention_days``
    but never removes a record that is still Pending.
    """

    def __init__(self, store: JournalStore, *, retention: Optional[JournalRetention] = None) -> None:
        self._store = store
        self._retention = retention or JournalRetention()

    @property
    def store(self) -> JournalStore:
        return self._store

    @property
    def retention(self) -> JournalRetention:
        return self._retention

    # ------------------------------------------------------------------
    def record(
        self,
        op_type: OperationType,
        target: str,
        description: str,
        *,
        operation_id: Optional[str] = None,
        backup_ref: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> str:
        operation = Operation(
            id=operation_id or new_operation_id(),
            type=OperationType.parse(op_type),
            target=target,
            description=description,
            backup_ref=backup_ref,
            details=dict(details or {}),
        )
        self._store.insert(operation)
        LOGGER.info("recorded %s %s %s", operation.id, operation.type.value, target)
        if self._retention.max_entries > 0:
            self.purge(max_entries=self._retention.max_entries, max_age_days=None)
        return operation.id

    def get(self, operation_id: str) -> Operation:
        operation = self._store.get(operation_id)
        if operation is None:
            raise OperationNotFoundError(operation_id)
        return operation

    def list(self, limit: int = 20) -> List[Operation]:
        return self._store.list(limit)

    def pending(self) -> List[Operation]:
        return [op for op in self._store.list(None) if op.status is OperationStatus.PENDING]

    def update_status(
        self,
        operation_id: str,
        status: OperationStatus,
        *,
        error: Optional[str] = None,
    ) -> Operation:
        operation = self.get(operation_id)
        status = OperationStatus(status)
        if not can_transition(operation.status, status):
            raise InvalidTransitionError(
                f"operation {operation_id} cannot move from {operation.status.value} to {status.value}"
            )
        operation.status = status
        operation.updated_at = utcnow()
        if error is not None:
            operation.error = error
        self._store.save(operation)
        LOGGER.info("operation %s -> %s", operation_id, status.value)
        return operation

    def annotate(self, operation_id: str, error: str) -> Operation:
        operation = self.get(operation_id)
        operation.error = error
        operation.updated_at = utcnow()
        self._store.save(operation)
        return operation

    def set_backup_ref(self, operation_id: str, backup_ref: Optional[str]) -> Operation:
        operation = self.get(operation_id)
        operation.backup_ref = backup_ref
        operation.updated_at = utcnow()
        self._store.save(operation)
        return operation

    # ------------------------------------------------------------------
    def purge(
        self,
        *,
        max_entries: Optional[int] = None,
        max_age_days: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> List[str]:
        """Apply count and age retention, returning the removed ids."""

        records = self._store.list(None)
        doomed: List[str] = []
        if max_age_days is not None and max_age_days > 0:
            cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=max_age_days)
            for op in records:
                if op.status is OperationStatus.PENDING:
                    continue
                created = _parse_ts(op.created_at)
                if created is not None and created < cutoff:
                    doomed.append(op.id)
        if max_entries is not None and max_entries > 0:
            survivors = [op for op in records if op.id not in doomed]
            for op in survivors[max_entries:]:
                if op.status is not OperationStatus.PENDING:
                    doomed.append(op.id)
        if doomed:
            self._store.delete(doomed)
            LOGGER.info("journal retention removed %d record(s)", len(doomed))
        return doomed

    def apply_retention(self, *, now: Optional[datetime] = None) -> List[str]:
        return self.purge(
            max_entries=self._retention.max_entries,
            max_age_days=self._retention.retention_days,
            now=now,
        )


__all__ = ["JournalRetention", "OperationJournal"]
