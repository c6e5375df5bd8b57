"""Append-only change log for records."""

from __future__ import annotations

import logging
from typing import Any
from uuid import uuid4

from ledger_bridge.store.db import RecordStore
from ledger_bridge.store.models import CHANGE_LOG, ChangeAction, ChangeLogEntry
from ledger_bridge.utils.time import utc_now_iso

logger = logging.getLogger(__name__)

# Only these fields are compared. Bookkeeping such as timestamps and the
# revision counter never shows up in a diff.
DIFF_FIELDS: tuple[str, ...] = (
    "txn_type",
    "date",
    "amount",
    "currency_code",
    "category_id",
    "expense_type",
    "vendor",
    "notes",
    "status",
)


def diff_records(
    before: dict[str, Any] | None,
    after: dict[str, Any] | None,
) -> list[dict[str, Any]]:
    changes: list[dict[str, Any]] = []
    for name in DIFF_FIELDS:
        old = before.get(name) if before else None
        new = after.get(name) if after else None
        if _same(old, new):
            continue
        changes.append({"field": name, "from": old, "to": new})
    return changes


def _same(old: object, new: object) -> bool:
    # 1 == 1.0 == True in Python; strict comparison also requires the same type.
    return type(old) is type(new) and old == new


class ChangeLog:
    def __init__(self, store: RecordStore) -> None:
        self._store = store

    def write(
        self,
        record_id: str,
        action: ChangeAction,
        before: dict[str, Any] | None,
        after: dict[str, Any] | None,
        source: str | None = None,
        created_at: str | None = None,
    ) -> ChangeLogEntry:
        entry = ChangeLogEntry(
            change_id=uuid4().hex,
            record_id=str(record_id),
            created_at=created_at or utc_now_iso(),
            action=action,
            before=before,
            after=after,
            diff=diff_records(before, after) if action == "update" else [],
            source=source,
        )
        self._store.add(CHANGE_LOG, entry.to_dict())
        logger.debug(
            "Logged %s for record %s (%d field(s), source=%s)",
            action,
            record_id,
            len(entry.diff),
            source,
        )
        return entry

    def entries_for(self, record_id: str) -> list[ChangeLogEntry]:
        rows = self._store.get_all_by_index(CHANGE_LOG, "record_id", record_id)
        return [ChangeLogEntry.from_dict(row) for row in rows]
