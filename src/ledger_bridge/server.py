"""Entrypoint for the ledger bridge HTTP server."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

if __package__ in (None, ""):
    sys.path.insert(0, str(Path(__file__).resolve().parents[1]))  # pragma: no cover

from ledger_bridge import __version__
from ledger_bridge.config import load_settings
from ledger_bridge.logging_utils import configure_logging


def run_entrypoint() -> None:
    """Run the HTTP server with the configured host and port."""
    settings = load_settings()
    configure_logging()
    from ledger_bridge.transport.http_server import create_http_app

    try:
        import uvicorn
    except ImportError as exc:
        raise RuntimeError("uvicorn is required to run the HTTP server") from exc

    if not settings.bridge.allowed_origin:
        logging.warning("BRIDGE_ALLOWED_ORIGIN is not set; every host connection will be refused")

    logging.info("Starting ledger bridge v%s", __version__)
    app = create_http_app()
    uvicorn.run(
        app,
        host=settings.server.host,
        port=settings.server.port,
        log_config=None,
    )


if __name__ == "__main__":  # pragma: no cover
    run_entrypoint()
