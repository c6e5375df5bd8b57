"""Starlette application exposing the host bridge endpoint."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route, WebSocketRoute
from starlette.websockets import WebSocket

from ledger_bridge.app import AppContext, create_app_context
from ledger_bridge.bridge.client import HostBridge
from ledger_bridge.errors import ConfigurationError
from ledger_bridge.transport.websocket import WebSocketTransport

logger = logging.getLogger(__name__)

# RFC 6455 policy violation.
_CLOSE_POLICY_VIOLATION = 1008


def create_http_app(context: AppContext | None = None) -> Starlette:
    """Create the HTTP application.

    ``/bridge`` accepts a WebSocket only from the configured host origin and
    binds a ``HostBridge`` to it for the lifetime of the connection.
    """
    ctx = context or create_app_context()

    async def bridge_endpoint(websocket: WebSocket) -> None:
        allowed = ctx.settings.bridge.allowed_origin
        origin = websocket.headers.get("origin")
        if not allowed or origin != allowed:
            logger.warning("Rejected bridge connection from origin %r", origin)
            await websocket.close(code=_CLOSE_POLICY_VIOLATION)
            return

        await websocket.accept()
        transport = WebSocketTransport(websocket)
        try:
            bridge = HostBridge.create(transport, websocket, ctx.settings.bridge)
        except ConfigurationError as exc:
            logger.error("Cannot bind host bridge: %s", exc)
            await websocket.close(code=_CLOSE_POLICY_VIOLATION)
            return

        ctx.host.attach(bridge)
        try:
            await bridge.initialize()
            await transport.run()
        finally:
            ctx.host.detach(bridge)
            await bridge.destroy()

    async def health_handler(request: Request) -> Response:
        return JSONResponse({"status": "ok"})

    async def ready_handler(request: Request) -> Response:
        ready = ctx.host.is_ready()
        return JSONResponse(
            {"status": "ready" if ready else "waiting"},
            status_code=200 if ready else 503,
        )

    routes = [
        Route("/health", endpoint=health_handler, methods=["GET"]),
        Route("/ready", endpoint=ready_handler, methods=["GET"]),
        WebSocketRoute("/bridge", endpoint=bridge_endpoint),
    ]

    @asynccontextmanager
    async def lifespan(app: Starlette):
        logger.info("Starting ledger bridge HTTP server...")
        try:
            yield
        finally:
            logger.info("Stopping ledger bridge HTTP server...")
            if context is None:
                ctx.close()

    app = Starlette(routes=routes, lifespan=lifespan)
    app.state.context = ctx
    return app
