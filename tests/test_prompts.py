from __future__ import annotations

import pytest

from ledger_bridge.send.prompts import DEFAULT_MESSAGES, Messages, PresetPrompter, phrase_matches


@pytest.mark.parametrize(
    ("given", "expected"),
    [
        ("confirm send", True),
        ("CONFIRM SEND", True),
        (" confirm send ", True),
        ("Confirm Send\n", True),
        ("confirm-send", False),
        ("confirmsend", False),
        ("", False),
        (None, False),
        (42, False),
    ],
)
def test_phrase_matches(given: object, expected: bool) -> None:
    assert phrase_matches("confirm send", given) is expected


def test_blank_expected_phrase_never_matches() -> None:
    assert phrase_matches("  ", "  ") is False


def test_messages_overrides_and_fallback() -> None:
    messages = Messages({"send.success": "Done"})
    assert messages("send.success") == "Done"
    assert messages("send.in_progress") == DEFAULT_MESSAGES["send.in_progress"]
    assert messages("no.such.key") == "no.such.key"


@pytest.mark.parametrize(
    ("code", "key"),
    [
        ("CATEGORY_NOT_FOUND", "send.error.category_not_found"),
        ("Timeout", "send.error.timeout"),
        ("InvalidAcknowledgement", "send.error.invalid_ack"),
        ("SOMETHING_ELSE", "send.error.generic"),
        (None, "send.error.generic"),
    ],
)
def test_friendly_error(code: str | None, key: str) -> None:
    assert Messages().friendly_error(code) == DEFAULT_MESSAGES[key]


def test_error_details() -> None:
    messages = Messages()
    assert messages.error_details("LIMIT", "Too much") == "Code: LIMIT\nMessage: Too much"
    assert messages.error_details(None, None) == "Code: UNKNOWN"


@pytest.mark.asyncio
async def test_preset_prompter_records_questions() -> None:
    prompter = PresetPrompter(resend=True, phrase="confirm send", first_send=False)

    assert await prompter.confirm_resend("r1", "2024-01-01") is True
    assert await prompter.request_phrase("confirm send") == "confirm send"
    assert await prompter.confirm_first_send() is False
    assert prompter.asked == ["confirm_resend", "request_phrase", "confirm_first_send"]
