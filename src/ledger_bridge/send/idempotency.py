"""Idempotency keys and remote-id dedupe hints."""

from __future__ import annotations

from ledger_bridge.store.models import Record

REMOTE_TXN_NOTE_PREFIX = "RemoteTxnId: "


def idempotency_key(record: Record) -> str:
    """``"{id}:{revision}"``; a revision below 1 or non-integral counts as 1."""
    revision = record.revision
    if isinstance(revision, bool) or not isinstance(revision, int) or revision < 1:
        revision = 1
    return f"{record.id}:{revision}"


def append_remote_txn_id(note: str | None, remote_txn_id: str | None) -> tuple[str, bool]:
    """Append ``RemoteTxnId: <id>`` to ``note`` unless it is already there.

    Returns the resulting note and whether it changed.
    """
    current = note or ""
    rid = (remote_txn_id or "").strip()
    if not rid:
        return current, False
    line = f"{REMOTE_TXN_NOTE_PREFIX}{rid}"
    if line in current:
        return current, False
    if not current.strip():
        return line, True
    return f"{current}\n\n{line}", True
