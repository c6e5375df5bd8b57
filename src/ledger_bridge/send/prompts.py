"""User gates and notices used by the send pipeline.

Rendering is someone else's job: the pipeline talks to a ``Prompter`` for the
confirmation gates and to a ``Notifier`` for the outcome.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Literal, Protocol

logger = logging.getLogger(__name__)

NoticeLevel = Literal["info", "success", "warning", "error"]

DEFAULT_MESSAGES: dict[str, str] = {
    "send.in_progress": "This record is already being sent.",
    "send.validation.missing_record": "The record no longer exists.",
    "send.validation.missing_date": "Add a date before sending.",
    "send.validation.missing_amount": "Add an amount greater than zero before sending.",
    "send.validation.invalid_payload": "The record cannot be sent as it is.",
    "send.host_not_connected": "Not connected to the host. The attempt was recorded.",
    "send.success": "Sent to the host.",
    "send.error.title": "The host did not accept the record",
    "send.error.generic": "Sending failed.",
    "send.error.timeout": "The host did not answer in time. You can try again.",
    "send.error.invalid_ack": "The host answered without a transaction id.",
    "send.error.category_not_found": "The host does not know this category.",
    "send.error.code_label": "Code",
    "send.error.message_label": "Message",
}


def phrase_matches(expected: str, given: object) -> bool:
    """Trimmed, case-insensitive comparison for the resend phrase."""
    if not isinstance(given, str):
        return False
    wanted = expected.strip().casefold()
    return bool(wanted) and given.strip().casefold() == wanted


class Prompter(Protocol):
    async def confirm_resend(self, remote_txn_id: str | None, last_sent_at: str | None) -> bool: ...

    async def request_phrase(self, phrase: str) -> str | None: ...

    async def confirm_first_send(self) -> bool: ...


class Notifier(Protocol):
    def notice(self, level: NoticeLevel, message: str) -> None: ...

    def error_dialog(self, title: str, message: str, details: str) -> None: ...


@dataclass
class PresetPrompter:
    """Answers every gate from fixed values; for scripted and headless use."""

    resend: bool = False
    phrase: str | None = None
    first_send: bool = True
    asked: list[str] = field(default_factory=list)

    async def confirm_resend(self, remote_txn_id: str | None, last_sent_at: str | None) -> bool:
        self.asked.append("confirm_resend")
        return self.resend

    async def request_phrase(self, phrase: str) -> str | None:
        self.asked.append("request_phrase")
        return self.phrase

    async def confirm_first_send(self) -> bool:
        self.asked.append("confirm_first_send")
        return self.first_send


class LoggingNotifier:
    """Notifier that writes notices and dialogs to the log."""

    def __init__(self, name: str = __name__) -> None:
        self._logger = logging.getLogger(name)

    def notice(self, level: NoticeLevel, message: str) -> None:
        if level in ("warning", "error"):
            self._logger.warning("%s", message)
        else:
            self._logger.info("%s", message)

    def error_dialog(self, title: str, message: str, details: str) -> None:
        self._logger.error("%s: %s [%s]", title, message, details.replace("\n", "; "))


class Messages:
    """Message lookup with optional overrides; unknown keys echo the key."""

    def __init__(self, overrides: Mapping[str, str] | None = None) -> None:
        self._table = {**DEFAULT_MESSAGES, **(overrides or {})}

    def __call__(self, key: str) -> str:
        return self._table.get(key, key)

    def friendly_error(self, code: str | None) -> str:
        if code == "CATEGORY_NOT_FOUND":
            return self("send.error.category_not_found")
        if code == "Timeout":
            return self("send.error.timeout")
        if code == "InvalidAcknowledgement":
            return self("send.error.invalid_ack")
        return self("send.error.generic")

    def error_details(self, code: str | None, message: str | None) -> str:
        lines = [f"{self('send.error.code_label')}: {code or 'UNKNOWN'}"]
        if message:
            lines.append(f"{self('send.error.message_label')}: {message}")
        return "\n".join(lines)
