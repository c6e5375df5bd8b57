"""Record mutations. Every create, edit and delete is written to the change log."""

from __future__ import annotations

import logging
from dataclasses import fields
from typing import Any
from uuid import uuid4

from ledger_bridge.errors import RecordNotFoundError, RecordValidationError
from ledger_bridge.ledger.changelog import ChangeLog
from ledger_bridge.store.db import RecordStore
from ledger_bridge.store.models import RECORDS, Record
from ledger_bridge.utils.time import utc_now_iso

logger = logging.getLogger(__name__)

TXN_TYPES = frozenset({"expense", "income"})

_USER_FIELDS = frozenset(
    f.name
    for f in fields(Record)
    if f.name not in {"id", "revision", "status", "created_at", "updated_at"}
)


def _check_fields(values: dict[str, Any], allowed: frozenset[str]) -> None:
    unknown = sorted(set(values) - allowed)
    if unknown:
        raise RecordValidationError(f"Unsupported record field(s): {', '.join(unknown)}")
    txn_type = values.get("txn_type")
    if txn_type is not None and txn_type not in TXN_TYPES:
        raise RecordValidationError(f"txn_type must be one of {sorted(TXN_TYPES)}")


class RecordService:
    def __init__(self, store: RecordStore, changelog: ChangeLog) -> None:
        self._store = store
        self._changelog = changelog

    def get(self, record_id: str) -> Record | None:
        row = self._store.get(RECORDS, str(record_id))
        return Record.from_dict(row) if row is not None else None

    def require(self, record_id: str) -> Record:
        record = self.get(record_id)
        if record is None:
            raise RecordNotFoundError(str(record_id))
        return record

    def list_records(self) -> list[Record]:
        return [Record.from_dict(row) for row in self._store.get_all(RECORDS)]

    def create(self, record_id: str | None = None, **values: Any) -> Record:
        """Create a draft at revision 1."""
        _check_fields(values, _USER_FIELDS)
        now = utc_now_iso()
        record = Record(
            id=str(record_id) if record_id else uuid4().hex,
            revision=1,
            status="draft",
            created_at=now,
            updated_at=now,
            **values,
        )
        after = record.to_dict()
        self._store.add(RECORDS, after)
        self._changelog.write(
            record.id, "create", None, after, source="user_create", created_at=now
        )
        logger.info("Created record %s", record.id)
        return record

    def update(self, record_id: str, **changes: Any) -> Record:
        """Apply a user edit; the revision always advances, status is kept."""
        _check_fields(changes, _USER_FIELDS)
        current = self.require(record_id)
        before = current.to_dict()
        now = utc_now_iso()
        after = {**before, **changes, "revision": current.revision + 1, "updated_at": now}
        self._store.put(RECORDS, after)
        self._changelog.write(
            current.id, "update", before, after, source="user_edit", created_at=now
        )
        logger.info("Updated record %s to revision %d", current.id, after["revision"])
        return Record.from_dict(after)

    def delete(self, record_id: str) -> None:
        """Log the prior snapshot, then remove the record."""
        current = self.require(record_id)
        self._changelog.write(current.id, "delete", current.to_dict(), None, source="user_delete")
        self._store.delete(RECORDS, current.id)
        logger.info("Deleted record %s", current.id)
