"""Time helpers."""

from __future__ import annotations

import time
from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def utc_now_iso() -> str:
    return utc_now().isoformat()


def monotonic_ms() -> float:
    return time.perf_counter() * 1000.0


def elapsed_ms(start_ms: float) -> int:
    """Milliseconds since ``start_ms`` (from ``monotonic_ms``), never negative."""
    return max(0, int(round(monotonic_ms() - start_ms)))
