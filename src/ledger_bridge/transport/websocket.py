"""Channel transport over a Starlette WebSocket connection.

The WebSocket object itself plays the counterpart role: events carry it as
``source`` and the connection's ``Origin`` header as ``origin``.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from starlette.websockets import WebSocket

from ledger_bridge.bridge.channel import MessageCallback, MessageEvent
from ledger_bridge.utils.serialization import json_default

logger = logging.getLogger(__name__)


class WebSocketTransport:
    def __init__(self, websocket: WebSocket) -> None:
        self._websocket = websocket
        self._listeners: list[MessageCallback] = []
        self.origin: str | None = websocket.headers.get("origin")

    @property
    def websocket(self) -> WebSocket:
        return self._websocket

    def add_listener(self, callback: MessageCallback) -> None:
        if callback not in self._listeners:
            self._listeners.append(callback)

    def remove_listener(self, callback: MessageCallback) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    async def post_message(self, envelope: dict[str, Any], target_origin: str) -> None:
        # Same contract as window.postMessage: a target that does not match the
        # peer's origin is not delivered.
        if target_origin != self.origin:
            logger.warning(
                "Dropped outbound %s: target origin %s does not match peer",
                envelope.get("type"),
                target_origin,
            )
            return
        await self._websocket.send_text(json.dumps(envelope, default=json_default))

    def dispatch(self, data: Any) -> None:
        event = MessageEvent(data=data, origin=self.origin, source=self._websocket)
        for callback in list(self._listeners):
            callback(event)

    async def run(self) -> None:
        """Read frames until the peer disconnects."""
        while True:
            message = await self._websocket.receive()
            if message["type"] == "websocket.disconnect":
                logger.info("Host disconnected (code=%s)", message.get("code"))
                return
            text = message.get("text")
            if text is None:
                logger.debug("Ignoring non-text frame from %s", self.origin)
                continue
            try:
                data = json.loads(text)
            except json.JSONDecodeError:
                logger.debug("Ignoring non-JSON frame from %s", self.origin)
                continue
            self.dispatch(data)
