from __future__ import annotations

import asyncio
import contextlib
import os
from collections.abc import Callable
from typing import Any

import pytest

from ledger_bridge.bridge.channel import Channel, MessageEvent
from ledger_bridge.bridge.client import HostBridge
from ledger_bridge.bridge.rpc import RpcClient
from ledger_bridge.config import BridgeSettings
from ledger_bridge.store.db import SqliteStore

HOST_ORIGIN = "https://host.example"

Responder = Callable[[dict[str, Any]], "list[dict[str, Any]] | None"]


def pytest_sessionstart(session: pytest.Session) -> None:
    # Keep a developer's .env from leaking a real host origin into tests.
    os.environ.setdefault("BRIDGE_ALLOWED_ORIGIN", HOST_ORIGIN)


@pytest.fixture(autouse=True)
def _close_default_event_loop() -> None:
    yield
    policy = asyncio.get_event_loop_policy()
    local = getattr(policy, "_local", None)
    loop = getattr(local, "_loop", None) if local is not None else None
    if loop is not None and not loop.is_running() and not loop.is_closed():
        with contextlib.suppress(Exception):
            loop.close()
    if loop is not None:
        with contextlib.suppress(Exception):
            policy.set_event_loop(None)


class FakeWindow:
    """Stands in for the host window; only its identity matters."""

    def __init__(self, name: str = "host") -> None:
        self.name = name

    def __repr__(self) -> str:
        return f"FakeWindow({self.name})"


class LoopbackTransport:
    """In-memory transport.

    Outbound envelopes are recorded; an optional ``responder`` turns each one
    into host replies, delivered on the next loop iteration from
    ``reply_origin`` / ``reply_source``.
    """

    def __init__(self, window: FakeWindow, origin: str = HOST_ORIGIN) -> None:
        self.window = window
        self.posted: list[tuple[dict[str, Any], str]] = []
        self.listeners: list[Callable[[MessageEvent], None]] = []
        self.responder: Responder | None = None
        self.reply_origin: str | None = origin
        self.reply_source: object | None = window
        self.fail_with: Exception | None = None

    def add_listener(self, callback: Callable[[MessageEvent], None]) -> None:
        self.listeners.append(callback)

    def remove_listener(self, callback: Callable[[MessageEvent], None]) -> None:
        if callback in self.listeners:
            self.listeners.remove(callback)

    async def post_message(self, envelope: dict[str, Any], target_origin: str) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.posted.append((envelope, target_origin))
        if self.responder is None:
            return
        replies = self.responder(envelope) or []
        loop = asyncio.get_running_loop()
        for reply in replies:
            loop.call_soon(self.deliver, reply)

    def deliver(
        self,
        data: Any,
        origin: str | None = None,
        source: object | None = None,
    ) -> None:
        event = MessageEvent(
            data=data,
            origin=self.reply_origin if origin is None else origin,
            source=self.reply_source if source is None else source,
        )
        for callback in list(self.listeners):
            callback(event)

    def posted_types(self) -> list[str]:
        return [envelope["type"] for envelope, _ in self.posted]


def result_for(envelope: dict[str, Any], result: Any) -> dict[str, Any]:
    return {"type": "RESULT", "requestId": envelope.get("requestId"), "result": result}


def error_for(envelope: dict[str, Any], code: str, message: str) -> dict[str, Any]:
    return {
        "type": "ERROR",
        "requestId": envelope.get("requestId"),
        "error": {"code": code, "message": message},
    }


@pytest.fixture
def host_window() -> FakeWindow:
    return FakeWindow()


@pytest.fixture
def transport(host_window: FakeWindow) -> LoopbackTransport:
    return LoopbackTransport(host_window)


@pytest.fixture
def channel(transport: LoopbackTransport, host_window: FakeWindow) -> Channel:
    ch = Channel(transport, host_window, HOST_ORIGIN)
    ch.attach()
    return ch


@pytest.fixture
def rpc(channel: Channel) -> RpcClient:
    return RpcClient(channel, default_timeout_ms=200, min_timeout_ms=10)


@pytest.fixture
def bridge_settings() -> BridgeSettings:
    return BridgeSettings(
        allowed_origin=HOST_ORIGIN,
        default_timeout_ms=200,
        min_timeout_ms=10,
        send_timeout_ms=100,
        context_timeout_ms=50,
        ready_timeout_ms=300,
    )


@pytest.fixture
def bridge(
    transport: LoopbackTransport,
    host_window: FakeWindow,
    bridge_settings: BridgeSettings,
) -> HostBridge:
    return HostBridge.create(transport, host_window, bridge_settings)


@pytest.fixture
def store(tmp_path) -> SqliteStore:
    sqlite_store = SqliteStore(str(tmp_path / "ledger.db"))
    yield sqlite_store
    sqlite_store.close()
