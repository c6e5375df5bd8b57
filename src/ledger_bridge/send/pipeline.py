"""Idempotent send-to-host pipeline.

A send writes a ``pending`` attempt before the host call and rewrites that
same row into ``success`` or ``failed`` afterwards. A record becomes ``sent``
only after the host acknowledges with a real transaction id. Each store write
is independent; after a crash the state is re-derived from the rows that
made it to disk.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from typing import Any, Literal, Protocol
from uuid import uuid4

from ledger_bridge.bridge.payload import map_submission, validate_submission
from ledger_bridge.bridge.protocol import UNKNOWN_ERROR_CODE
from ledger_bridge.config import BridgeSettings
from ledger_bridge.errors import (
    ChannelClosed,
    ConfigurationError,
    DestroyedError,
    HostRejectedError,
    PayloadValidationError,
    RpcTimeoutError,
    SendErrorKind,
)
from ledger_bridge.ledger.changelog import ChangeLog
from ledger_bridge.send.idempotency import append_remote_txn_id, idempotency_key
from ledger_bridge.send.prompts import (
    LoggingNotifier,
    Messages,
    Notifier,
    Prompter,
    phrase_matches,
)
from ledger_bridge.send.state import SendHistory, derive_history
from ledger_bridge.store.db import RecordStore
from ledger_bridge.store.models import (
    RECORDS,
    REMOTE_MAP,
    SEND_ATTEMPTS,
    Record,
    RemoteMap,
    SendAttempt,
)
from ledger_bridge.utils.time import elapsed_ms, monotonic_ms, utc_now_iso

logger = logging.getLogger(__name__)

HOST_UNREACHABLE_CODE = SendErrorKind.HOST_UNREACHABLE.value
INVALID_ACK_CODE = SendErrorKind.INVALID_ACKNOWLEDGEMENT.value
INVALID_ACK_MESSAGE = "Invalid host confirmation"
SEND_STATUS_SOURCE = "send_status_update"

OutcomeStatus = Literal["sent", "failed", "blocked", "cancelled"]


class HostSubmitter(Protocol):
    def is_ready(self) -> bool: ...

    async def submit_transaction(
        self, payload: dict[str, Any], timeout_ms: int | None = None
    ) -> Any: ...


@dataclass(frozen=True)
class SendOutcome:
    status: OutcomeStatus
    error: SendErrorKind | None = None
    attempt: SendAttempt | None = None
    remote_txn_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    record: Record | None = None


@dataclass(frozen=True)
class ExtractedError:
    kind: SendErrorKind
    code: str
    message: str
    response_payload: Any = None


def extract_send_error(exc: BaseException) -> ExtractedError:
    """Best-effort code/message/raw response from whatever a failed call raised."""
    response_payload = getattr(exc, "response_payload", None)
    raw = getattr(exc, "raw", None)
    if response_payload is None and raw is not None:
        response_payload = {"error": raw}

    code = getattr(exc, "code", None)
    if not isinstance(code, str) or not code:
        code = UNKNOWN_ERROR_CODE if isinstance(exc, HostRejectedError) else type(exc).__name__
    message = getattr(exc, "message", None)
    if not isinstance(message, str) or not message:
        message = str(exc) or code

    if isinstance(exc, RpcTimeoutError):
        kind = SendErrorKind.TIMEOUT
    elif isinstance(exc, HostRejectedError):
        kind = SendErrorKind.HOST_REJECTED
    elif isinstance(exc, PayloadValidationError):
        kind = SendErrorKind.VALIDATION
    elif isinstance(exc, (DestroyedError, ChannelClosed, ConfigurationError)):
        kind = SendErrorKind.HOST_UNREACHABLE
    else:
        kind = SendErrorKind.HOST_UNREACHABLE
        logger.warning("Unexpected send failure: %s", exc, exc_info=exc)

    return ExtractedError(kind=kind, code=code, message=message, response_payload=response_payload)


def validate_acknowledgement(response: object) -> str | None:
    """Return the trimmed remote transaction id of a valid acknowledgement."""
    if not isinstance(response, dict):
        return None
    status = response.get("status")
    if not isinstance(status, str) or status.strip().lower() != "success":
        return None
    remote_txn_id = response.get("remoteTxnId")
    if not isinstance(remote_txn_id, str) or not remote_txn_id.strip():
        return None
    return remote_txn_id.strip()


def _is_finite_number(value: object) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return math.isfinite(value)
    if isinstance(value, str):
        try:
            return math.isfinite(float(value.strip()))
        except ValueError:
            return False
    return False


class SendPipeline:
    """Submits records to the host at most meaningfully once.

    Pipelines that share a store must share ``in_flight`` too; the guard only
    protects this process.
    """

    def __init__(
        self,
        store: RecordStore,
        bridge: HostSubmitter,
        prompter: Prompter,
        *,
        notifier: Notifier | None = None,
        settings: BridgeSettings | None = None,
        messages: Messages | None = None,
        changelog: ChangeLog | None = None,
        in_flight: set[str] | None = None,
    ) -> None:
        self._store = store
        self._bridge = bridge
        self._prompter = prompter
        self._notifier = notifier or LoggingNotifier()
        self._settings = settings or BridgeSettings()
        self._t = messages or Messages()
        self._changelog = changelog or ChangeLog(store)
        self._in_flight: set[str] = in_flight if in_flight is not None else set()

    @property
    def in_flight(self) -> frozenset[str]:
        return frozenset(self._in_flight)

    def history(self, record_id: str) -> SendHistory:
        attempts = self.attempts_for(record_id)
        row = self._store.get(REMOTE_MAP, str(record_id))
        return derive_history(attempts, RemoteMap.from_dict(row) if row else None)

    def attempts_for(self, record_id: str) -> list[SendAttempt]:
        rows = self._store.get_all_by_index(SEND_ATTEMPTS, "record_id", str(record_id))
        return [SendAttempt.from_dict(row) for row in rows]

    async def send(self, record_id: str, force_resend: bool = False) -> SendOutcome:
        rid = str(record_id or "")
        if rid in self._in_flight:
            return self._blocked(SendErrorKind.IN_PROGRESS, "send.in_progress")

        self._in_flight.add(rid)
        try:
            return await self._send(rid, force_resend)
        finally:
            self._in_flight.discard(rid)

    async def _send(self, rid: str, force_resend: bool) -> SendOutcome:
        row = self._store.get(RECORDS, rid) if rid else None
        record = Record.from_dict(row) if row is not None else None

        if record is None:
            return self._blocked(SendErrorKind.VALIDATION, "send.validation.missing_record")
        problem = self._validate(record)
        if problem is not None:
            return self._blocked(SendErrorKind.VALIDATION, problem, record=record)

        request_payload = self._build_payload(record)
        message_type, host_payload = map_submission(request_payload)
        payload_errors = validate_submission(message_type, host_payload)
        if payload_errors:
            logger.info("Record %s not sendable: %s", rid, "; ".join(payload_errors))
            return self._blocked(
                SendErrorKind.VALIDATION, "send.validation.invalid_payload", record=record
            )

        history = self.history(rid)
        if history.pending is not None:
            return self._blocked(SendErrorKind.IN_PROGRESS, "send.in_progress", record=record)

        if history.already_sent and not force_resend:
            wants_resend = await self._prompter.confirm_resend(
                history.known_remote_txn_id, history.last_sent_at
            )
            if not wants_resend:
                return SendOutcome(status="cancelled", record=record)
            typed = await self._prompter.request_phrase(self._settings.resend_phrase)
            if not phrase_matches(self._settings.resend_phrase, typed):
                logger.info("Resend of record %s blocked: confirmation phrase mismatch", rid)
                return SendOutcome(status="cancelled", record=record)

        key = idempotency_key(record)

        if not self._bridge.is_ready():
            return self._record_unreachable(record, key, request_payload)

        first_send = (
            not history.already_sent and history.latest_success is None and not force_resend
        )
        if first_send and not await self._prompter.confirm_first_send():
            return SendOutcome(status="cancelled", record=record)

        if history.known_remote_txn_id:
            request_payload["notes"], _ = append_remote_txn_id(
                request_payload.get("notes"), history.known_remote_txn_id
            )
            request_payload["prior_remote_txn_id"] = history.known_remote_txn_id

        # The gates above yield; another send may have started meanwhile.
        if any(a.status == "pending" for a in self.attempts_for(rid)):
            return self._blocked(SendErrorKind.IN_PROGRESS, "send.in_progress", record=record)

        attempt = SendAttempt(
            attempt_id=uuid4().hex,
            record_id=rid,
            created_at=utc_now_iso(),
            status="pending",
            idempotency_key=key,
            request_payload=request_payload,
        )
        self._store.add(SEND_ATTEMPTS, attempt.to_dict())
        logger.info("Sending record %s (attempt %s, key %s)", rid, attempt.attempt_id, key)

        started = monotonic_ms()
        try:
            response = await self._bridge.submit_transaction(
                request_payload, timeout_ms=self._settings.send_timeout_ms
            )
        except Exception as exc:
            return self._record_failure(attempt, record, extract_send_error(exc), started)

        duration_ms = elapsed_ms(started)
        remote_txn_id = validate_acknowledgement(response)
        if remote_txn_id is None:
            extracted = ExtractedError(
                kind=SendErrorKind.INVALID_ACKNOWLEDGEMENT,
                code=INVALID_ACK_CODE,
                message=INVALID_ACK_MESSAGE,
                response_payload=response,
            )
            return self._record_failure(attempt, record, extracted, started)

        return self._record_success(attempt, record, response, remote_txn_id, duration_ms)

    def _validate(self, record: Record) -> str | None:
        if not record.date:
            return "send.validation.missing_date"
        if not _is_finite_number(record.amount) or float(record.amount) <= 0:  # type: ignore[arg-type]
            return "send.validation.missing_amount"
        return None

    def _build_payload(self, record: Record) -> dict[str, Any]:
        return {
            "record_id": record.id,
            "txn_type": "income" if record.txn_type == "income" else "expense",
            "date": str(record.date or ""),
            "amount": float(record.amount),  # type: ignore[arg-type]
            "currency_code": record.currency_code or self._settings.currency_code,
            "category_id": record.category_id,
            "vendor": record.vendor or "",
            "expense_type": record.expense_type or "",
            "notes": record.notes or "",
            "revision": record.revision,
        }

    def _blocked(
        self, kind: SendErrorKind, message_key: str, record: Record | None = None
    ) -> SendOutcome:
        message = self._t(message_key)
        self._notifier.notice("warning", message)
        return SendOutcome(
            status="blocked",
            error=kind,
            error_code=kind.value,
            error_message=message,
            record=record,
        )

    def _record_unreachable(
        self, record: Record, key: str, request_payload: dict[str, Any]
    ) -> SendOutcome:
        attempt = SendAttempt(
            attempt_id=uuid4().hex,
            record_id=record.id,
            created_at=utc_now_iso(),
            status="failed",
            idempotency_key=key,
            request_payload=request_payload,
            error_code=HOST_UNREACHABLE_CODE,
            error_message=HOST_UNREACHABLE_CODE,
            duration_ms=0,
        )
        self._store.add(SEND_ATTEMPTS, attempt.to_dict())
        logger.warning("Host not connected; recorded failed attempt for record %s", record.id)
        self._notifier.notice("warning", self._t("send.host_not_connected"))
        return SendOutcome(
            status="failed",
            error=SendErrorKind.HOST_UNREACHABLE,
            attempt=attempt,
            error_code=HOST_UNREACHABLE_CODE,
            error_message=HOST_UNREACHABLE_CODE,
            record=record,
        )

    def _record_failure(
        self,
        attempt: SendAttempt,
        record: Record,
        extracted: ExtractedError,
        started: float,
    ) -> SendOutcome:
        failed = replace(
            attempt,
            status="failed",
            response_payload=extracted.response_payload,
            error_code=extracted.code,
            error_message=extracted.message,
            duration_ms=elapsed_ms(started),
        )
        self._store.put(SEND_ATTEMPTS, failed.to_dict())
        logger.warning(
            "Send of record %s failed (attempt %s): %s %s",
            record.id,
            attempt.attempt_id,
            extracted.code,
            extracted.message,
        )

        if extracted.kind == SendErrorKind.HOST_UNREACHABLE:
            self._notifier.notice("warning", self._t("send.host_not_connected"))
        else:
            friendly = self._t.friendly_error(extracted.code)
            self._notifier.error_dialog(
                self._t("send.error.title"),
                f"{friendly} ({extracted.message})" if extracted.message else friendly,
                self._t.error_details(extracted.code, extracted.message),
            )

        return SendOutcome(
            status="failed",
            error=extracted.kind,
            attempt=failed,
            error_code=extracted.code,
            error_message=extracted.message,
            record=record,
        )

    def _record_success(
        self,
        attempt: SendAttempt,
        record: Record,
        response: Any,
        remote_txn_id: str,
        duration_ms: int,
    ) -> SendOutcome:
        succeeded = replace(
            attempt,
            status="success",
            response_payload=response,
            duration_ms=duration_ms,
            remote_txn_id=remote_txn_id,
        )
        self._store.put(SEND_ATTEMPTS, succeeded.to_dict())

        existing_row = self._store.get(REMOTE_MAP, record.id)
        existing = RemoteMap.from_dict(existing_row) if existing_row else None
        remote_map = RemoteMap(
            record_id=record.id,
            idempotency_key=attempt.idempotency_key,
            remote_txn_id=remote_txn_id,
            first_sent_at=existing.first_sent_at if existing else attempt.created_at,
            last_sent_at=attempt.created_at,
            sent_count=(existing.sent_count + 1) if existing else 1,
        )
        self._store.put(REMOTE_MAP, remote_map.to_dict())

        updated = self._mark_sent(record, remote_txn_id)
        logger.info(
            "Record %s sent (attempt %s, remote %s)", record.id, attempt.attempt_id, remote_txn_id
        )
        self._notifier.notice("success", self._t("send.success"))
        return SendOutcome(
            status="sent",
            attempt=succeeded,
            remote_txn_id=remote_txn_id,
            record=updated,
        )

    def _mark_sent(self, record: Record, remote_txn_id: str) -> Record:
        current_row = self._store.get(RECORDS, record.id)
        if current_row is None:
            logger.warning("Record %s disappeared before it could be marked sent", record.id)
            return record
        current = Record.from_dict(current_row)
        if current.revision != record.revision:
            # The sent key belongs to the old revision; the new one is unsent.
            logger.warning(
                "Record %s changed to revision %d while revision %d was in flight",
                record.id,
                current.revision,
                record.revision,
            )
            return current

        before = current.to_dict()
        notes, _ = append_remote_txn_id(current.notes, remote_txn_id)
        now = utc_now_iso()
        after = {**before, "status": "sent", "notes": notes, "updated_at": now}
        self._store.put(RECORDS, after)
        self._changelog.write(
            current.id, "update", before, after, source=SEND_STATUS_SOURCE, created_at=now
        )
        return Record.from_dict(after)
