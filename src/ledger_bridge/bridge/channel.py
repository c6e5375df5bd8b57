"""Authenticated message channel to exactly one host counterpart."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from ledger_bridge.bridge.protocol import (
    HANDSHAKE_TYPES,
    HOST_CONTEXT,
    HostContextMessage,
    InboundMessage,
    parse_inbound,
)
from ledger_bridge.errors import ChannelClosed, ConfigurationError
from ledger_bridge.utils.origin import normalize_origin

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MessageEvent:
    """An inbound message as delivered by the transport."""

    data: Any
    origin: str | None
    source: object | None


MessageCallback = Callable[[MessageEvent], None]
InboundListener = Callable[[InboundMessage], None]


class Transport(Protocol):
    async def post_message(self, envelope: dict[str, Any], target_origin: str) -> None: ...

    def add_listener(self, callback: MessageCallback) -> None: ...

    def remove_listener(self, callback: MessageCallback) -> None: ...


class Channel:
    """Delivers envelopes to and from one trusted counterpart.

    An inbound event is accepted only when its origin equals the configured
    origin exactly, its source is the counterpart object itself, and its data
    is a recognized inbound message. Everything else is dropped; a warning is
    logged once per distinct offending origin.
    """

    def __init__(
        self,
        transport: Transport,
        counterpart: object | None,
        allowed_origin: str | None,
    ) -> None:
        origin = normalize_origin(allowed_origin)
        if origin is None:
            raise ConfigurationError(
                f"A valid http(s) host origin is required, got {allowed_origin!r}",
                code="MISSING_ALLOWED_ORIGIN",
            )
        if counterpart is None:
            raise ConfigurationError("Host counterpart is not available", code="NO_HOST_WINDOW")

        self._transport = transport
        self._counterpart = counterpart
        self._allowed_origin = origin
        self._listeners: list[InboundListener] = []
        self._warned_origins: set[str | None] = set()
        self._attached = False
        self._closed = False

        self.ready = False
        self.active_origin: str | None = None
        self.host_context: dict[str, Any] | None = None

    @property
    def allowed_origin(self) -> str:
        return self._allowed_origin

    @property
    def counterpart(self) -> object:
        return self._counterpart

    @property
    def closed(self) -> bool:
        return self._closed

    def attach(self) -> None:
        if self._closed:
            raise ChannelClosed("Channel is closed")
        if not self._attached:
            self._transport.add_listener(self.on_message)
            self._attached = True

    def close(self) -> None:
        if self._attached:
            self._transport.remove_listener(self.on_message)
            self._attached = False
        self._listeners.clear()
        self._closed = True

    def add_listener(self, listener: InboundListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: InboundListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def send(self, envelope: dict[str, Any]) -> None:
        if self._closed:
            raise ChannelClosed("Channel is closed")
        if self._counterpart is None:
            raise ConfigurationError("Host counterpart is not available", code="NO_HOST_WINDOW")
        if not self._allowed_origin:
            raise ConfigurationError("Host origin is not configured", code="MISSING_ALLOWED_ORIGIN")
        await self._transport.post_message(envelope, self._allowed_origin)

    def on_message(self, event: MessageEvent) -> None:
        if self._closed:
            return

        if event.origin != self._allowed_origin:
            self._warn_origin(event.origin)
            return
        if event.source is not self._counterpart:
            return

        message = parse_inbound(event.data)
        if message is None:
            return

        if message.type in HANDSHAKE_TYPES:
            self._mark_handshake(event, message)

        for listener in list(self._listeners):
            listener(message)

    def _mark_handshake(self, event: MessageEvent, message: InboundMessage) -> None:
        if message.type == HOST_CONTEXT:
            self.remember_host_context(message)
        if self.ready:
            return
        self.ready = True
        self.active_origin = event.origin
        logger.info("Host channel ready (origin=%s)", event.origin)

    def remember_host_context(self, message: HostContextMessage) -> None:
        payload = message.payload
        if isinstance(payload, dict) and payload.get("v") == 1:
            self.host_context = payload

    def _warn_origin(self, origin: str | None) -> None:
        if origin in self._warned_origins:
            return
        self._warned_origins.add(origin)
        logger.warning(
            "Blocked message from disallowed origin %r (expected %s)",
            origin,
            self._allowed_origin,
        )
