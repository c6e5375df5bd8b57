from __future__ import annotations

import pytest

from ledger_bridge.errors import RecordNotFoundError, RecordValidationError, StoreError
from ledger_bridge.ledger.changelog import ChangeLog, diff_records
from ledger_bridge.ledger.records import RecordService
from ledger_bridge.store.models import CHANGE_LOG


@pytest.fixture
def changelog(store) -> ChangeLog:
    return ChangeLog(store)


@pytest.fixture
def records(store, changelog: ChangeLog) -> RecordService:
    return RecordService(store, changelog)


def test_diff_lists_only_changed_tracked_fields() -> None:
    before = {"vendor": "A", "amount": 10, "updated_at": "t1", "revision": 1}
    after = {"vendor": "B", "amount": 10, "updated_at": "t2", "revision": 2}

    assert diff_records(before, after) == [{"field": "vendor", "from": "A", "to": "B"}]


def test_diff_is_strict_about_types() -> None:
    changes = diff_records({"amount": 10}, {"amount": 10.0})
    assert changes == [{"field": "amount", "from": 10, "to": 10.0}]
    assert diff_records({"category_id": 1}, {"category_id": True}) != []


def test_diff_treats_missing_as_none() -> None:
    assert diff_records(None, {"notes": "x"}) == [{"field": "notes", "from": None, "to": "x"}]
    assert diff_records({}, {}) == []


def test_create_then_edit_writes_two_entries(records: RecordService, changelog: ChangeLog) -> None:
    records.create("m1", date="2024-05-01", amount=12.5, vendor="A")
    records.update("m1", vendor="B")

    entries = changelog.entries_for("m1")
    assert [entry.action for entry in entries] == ["create", "update"]

    created, edited = entries
    assert created.before is None
    assert created.after["vendor"] == "A"
    assert created.diff == []
    assert created.source == "user_create"

    assert edited.before["vendor"] == "A"
    assert edited.after["vendor"] == "B"
    assert edited.diff == [{"field": "vendor", "from": "A", "to": "B"}]
    assert edited.after["revision"] == 2
    assert edited.source == "user_edit"


def test_update_advances_revision_and_keeps_status(records: RecordService, store) -> None:
    records.create("m1", amount=5)
    store.put("records", {**store.get("records", "m1"), "status": "sent"})

    updated = records.update("m1", notes="checked")

    assert updated.revision == 2
    assert updated.status == "sent"
    assert updated.notes == "checked"


def test_create_generates_id(records: RecordService) -> None:
    record = records.create(amount=1, txn_type="income")
    assert record.id
    assert records.require(record.id).txn_type == "income"
    assert [r.id for r in records.list_records()] == [record.id]


def test_delete_logs_snapshot(records: RecordService, changelog: ChangeLog) -> None:
    records.create("m1", amount=5)
    records.delete("m1")

    assert records.get("m1") is None
    deleted = changelog.entries_for("m1")[-1]
    assert deleted.action == "delete"
    assert deleted.before["id"] == "m1"
    assert deleted.after is None
    assert deleted.source == "user_delete"


def test_missing_record(records: RecordService) -> None:
    with pytest.raises(RecordNotFoundError):
        records.update("nope", notes="x")
    with pytest.raises(RecordNotFoundError):
        records.delete("nope")


@pytest.mark.parametrize(
    "values",
    [{"status": "sent"}, {"revision": 9}, {"colour": "red"}, {"txn_type": "transfer"}],
)
def test_rejects_non_user_fields(records: RecordService, values: dict) -> None:
    with pytest.raises(RecordValidationError):
        records.create("m1", **values)


def test_entries_cannot_be_rewritten(records: RecordService, store) -> None:
    records.create("m1", amount=5)
    entry = store.get_all(CHANGE_LOG)[0]
    with pytest.raises(StoreError):
        store.put(CHANGE_LOG, {**entry, "source": "tampered"})
