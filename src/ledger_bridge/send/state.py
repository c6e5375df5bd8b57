"""Send state derived from attempt history and the remote map.

There is no stored status flag for sending; state is recomputed from rows
every time so it cannot drift from the history.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Sequence

from ledger_bridge.store.models import RemoteMap, SendAttempt


class SendState(str, Enum):
    UNSENT = "unsent"
    SENDING = "sending"
    SENT = "sent"
    FAILED = "failed"


@dataclass(frozen=True)
class SendHistory:
    state: SendState
    pending: SendAttempt | None
    latest: SendAttempt | None
    latest_success: SendAttempt | None
    known_remote_txn_id: str | None
    last_sent_at: str | None

    @property
    def already_sent(self) -> bool:
        return bool(self.known_remote_txn_id)


def _newest(attempts: Sequence[SendAttempt]) -> SendAttempt | None:
    # Stable for equal timestamps: later rows (insertion order) win.
    newest: SendAttempt | None = None
    for attempt in attempts:
        if newest is None or attempt.created_at >= newest.created_at:
            newest = attempt
    return newest


def derive_history(
    attempts: Sequence[SendAttempt],
    remote_map: RemoteMap | None,
) -> SendHistory:
    pending = _newest([a for a in attempts if a.status == "pending"])
    latest = _newest(attempts)
    latest_success = _newest([a for a in attempts if a.status == "success"])

    known_remote = (remote_map.remote_txn_id if remote_map else "") or ""
    if not known_remote.strip() and latest_success is not None:
        known_remote = latest_success.remote_txn_id or ""
    known_remote = known_remote.strip()

    last_sent_at = None
    if remote_map is not None and remote_map.last_sent_at:
        last_sent_at = remote_map.last_sent_at
    elif latest_success is not None:
        last_sent_at = latest_success.created_at

    if pending is not None:
        state = SendState.SENDING
    elif known_remote and (latest_success is not None or remote_map is not None):
        state = SendState.SENT
    elif latest is not None and latest.status == "failed":
        state = SendState.FAILED
    else:
        state = SendState.UNSENT

    return SendHistory(
        state=state,
        pending=pending,
        latest=latest,
        latest_success=latest_success,
        known_remote_txn_id=known_remote or None,
        last_sent_at=last_sent_at,
    )


def derive_send_state(
    attempts: Sequence[SendAttempt],
    remote_map: RemoteMap | None,
) -> SendState:
    return derive_history(attempts, remote_map).state
