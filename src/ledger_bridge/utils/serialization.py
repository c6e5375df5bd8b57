"""JSON serialization utilities."""

from __future__ import annotations

import base64
import datetime
import decimal
import json
import math


def json_default(obj: object) -> object:
    """JSON serializer for objects not serializable by default json code."""
    if isinstance(obj, (datetime.date, datetime.datetime)):
        return obj.isoformat()
    if isinstance(obj, decimal.Decimal):
        # Amounts keep their numeric type: int when integral, float when the
        # float round-trips, string otherwise.
        if obj == obj.to_integral_value():
            return int(obj)
        f = float(obj)
        if decimal.Decimal(str(f)) != obj:
            return str(obj)
        return f
    if isinstance(obj, bytes):
        try:
            return obj.decode("utf-8")
        except UnicodeDecodeError:
            return base64.b64encode(obj).decode("utf-8")
    if isinstance(obj, (set, frozenset, tuple)):
        return list(obj)
    return str(obj)


def _scrub_non_finite(value: object) -> object:
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, dict):
        return {key: _scrub_non_finite(val) for key, val in value.items()}
    if isinstance(value, (list, tuple)):
        return [_scrub_non_finite(item) for item in value]
    return value


def dumps_document(value: object) -> str:
    """Serialize a stored document. NaN/Infinity become ``null``."""
    return json.dumps(
        _scrub_non_finite(value),
        ensure_ascii=False,
        sort_keys=True,
        default=json_default,
        allow_nan=False,
    )


def loads_document(text: str | None) -> object:
    if text is None:
        return None
    return json.loads(text)
