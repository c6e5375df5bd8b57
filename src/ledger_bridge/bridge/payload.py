"""Host-facing submission payloads."""

from __future__ import annotations

import math
import re
from typing import Any

from ledger_bridge.bridge.protocol import CREATE_EXPENSE, CREATE_INCOME
from ledger_bridge.utils.jsonschema import validate_payload

_DIGITS_RE = re.compile(r"^\d+$")

SUBMISSION_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "amount": {"type": "number", "exclusiveMinimum": 0},
        "currencyCode": {"type": "string", "minLength": 1},
        "note": {"type": "string"},
        "occurredAt": {"type": "string", "minLength": 1},
        "categoryId": {"type": "integer", "minimum": 0},
    },
    "required": ["amount"],
    "additionalProperties": False,
}

# Expenses and incomes share a shape today; each kind keeps its own entry so
# they can diverge without touching callers.
SUBMISSION_SCHEMAS: dict[str, dict[str, object]] = {
    CREATE_EXPENSE: SUBMISSION_SCHEMA,
    CREATE_INCOME: SUBMISSION_SCHEMA,
}


def normalize_category_id(value: object) -> int | None:
    """Coerce a free-form category id to a non-negative int, else ``None``."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, float):
        if not math.isfinite(value) or value < 0 or not value.is_integer():
            return None
        return int(value)
    if isinstance(value, str):
        candidate = value.strip()
        if _DIGITS_RE.match(candidate):
            return int(candidate)
    return None


def message_type_for(txn_type: object) -> str:
    """``CREATE_INCOME`` for incomes, ``CREATE_EXPENSE`` for everything else."""
    if isinstance(txn_type, str) and txn_type.strip().lower() == "income":
        return CREATE_INCOME
    return CREATE_EXPENSE


def _to_amount(value: object) -> float | int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return value if math.isfinite(value) else 0
    if isinstance(value, str):
        try:
            parsed = float(value.strip())
        except ValueError:
            return 0
        return parsed if math.isfinite(parsed) else 0
    return 0


def map_submission(payload: dict[str, Any]) -> tuple[str, dict[str, Any]]:
    """Map a stored send payload to ``(message_type, host_payload)``.

    Optional keys are omitted rather than sent empty; ``note`` falls back to
    the vendor name.
    """
    message_type = message_type_for(payload.get("txn_type"))
    host_payload: dict[str, Any] = {"amount": _to_amount(payload.get("amount"))}

    currency = payload.get("currency_code")
    if currency:
        host_payload["currencyCode"] = str(currency)

    notes = payload.get("notes")
    vendor = payload.get("vendor")
    if notes:
        host_payload["note"] = str(notes)
    elif vendor:
        host_payload["note"] = str(vendor)

    occurred_at = payload.get("date")
    if occurred_at:
        host_payload["occurredAt"] = str(occurred_at)

    category_id = normalize_category_id(payload.get("category_id"))
    if category_id is not None:
        host_payload["categoryId"] = category_id

    return message_type, host_payload


def validate_submission(message_type: str, host_payload: dict[str, Any]) -> list[str]:
    schema = SUBMISSION_SCHEMAS.get(message_type)
    if schema is None:
        return [f"Unsupported submission type: {message_type}"]
    return validate_payload(schema, host_payload)
