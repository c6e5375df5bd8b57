"""Logging setup for the ledger bridge process."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from ledger_bridge.config import LoggingSettings, load_settings

_LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

# Health and readiness checks hit the server constantly.
_QUIET_LOGGERS = ("uvicorn.access",)

_logger = logging.getLogger(__name__)


def _formatter() -> logging.Formatter:
    return logging.Formatter(_LOG_FORMAT, datefmt=_DATE_FORMAT)


def _file_handler(path: str) -> logging.Handler | None:
    try:
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path)
    except OSError as exc:
        _logger.warning("Failed to open log file %s: %s", path, exc)
        return None
    handler.setFormatter(_formatter())
    return handler


def configure_logging(settings: LoggingSettings | None = None) -> None:
    """Route all logging to stderr and, if configured, a log file.

    Replaces any handlers installed earlier, including uvicorn's defaults, so
    bridge and server records share one format.
    """
    settings = settings or load_settings().logging
    level = getattr(logging, settings.level.upper(), logging.INFO)

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(_formatter())
    handlers: list[logging.Handler] = [stream_handler]

    if settings.file:
        file_handler = _file_handler(settings.file)
        if file_handler is not None:
            handlers.append(file_handler)

    logging.basicConfig(level=level, handlers=handlers, force=True)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
