"""Data models for records, send attempts, remote mappings and change log."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import Any, Literal

RECORDS = "records"
SEND_ATTEMPTS = "send_attempts"
REMOTE_MAP = "remote_map"
CHANGE_LOG = "change_log"

RecordStatus = Literal["draft", "sent"]
AttemptStatus = Literal["pending", "success", "failed"]
ChangeAction = Literal["create", "update", "delete"]


class _Row:
    @classmethod
    def from_dict(cls, data: dict[str, Any]):
        known = {f.name for f in fields(cls)}  # type: ignore[arg-type]
        return cls(**{key: value for key, value in data.items() if key in known})

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)  # type: ignore[call-overload]


@dataclass
class Record(_Row):
    id: str
    revision: int = 1
    txn_type: str = "expense"
    date: str | None = None
    amount: float | int | None = None
    currency_code: str | None = None
    category_id: object = None
    vendor: str = ""
    expense_type: str = ""
    notes: str = ""
    status: RecordStatus = "draft"
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class SendAttempt(_Row):
    attempt_id: str
    record_id: str
    created_at: str
    status: AttemptStatus
    idempotency_key: str
    request_payload: dict[str, Any]
    response_payload: Any = None
    error_code: str | None = None
    error_message: str | None = None
    duration_ms: int | None = None
    remote_txn_id: str | None = None


@dataclass
class RemoteMap(_Row):
    record_id: str
    idempotency_key: str
    remote_txn_id: str
    first_sent_at: str
    last_sent_at: str
    sent_count: int = 1


@dataclass
class ChangeLogEntry(_Row):
    change_id: str
    record_id: str
    created_at: str
    action: ChangeAction
    before: dict[str, Any] | None
    after: dict[str, Any] | None
    diff: list[dict[str, Any]] = field(default_factory=list)
    source: str | None = None
