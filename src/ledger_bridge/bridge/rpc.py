"""Correlated request/response calls over a ``Channel``."""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Any
from uuid import uuid4

from ledger_bridge.bridge.channel import Channel
from ledger_bridge.bridge.protocol import (
    ErrorMessage,
    HostContextMessage,
    InboundMessage,
    ResultMessage,
    build_outbound,
)
from ledger_bridge.errors import DestroyedError, HostRejectedError, RpcTimeoutError
from ledger_bridge.utils.time import elapsed_ms, monotonic_ms

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 8000
MIN_TIMEOUT_MS = 500


@dataclass
class _PendingCall:
    future: asyncio.Future[Any]
    timer: asyncio.TimerHandle | None
    request_type: str
    timeout_ms: int
    started_ms: float


class RpcClient:
    """Turns one-way channel messages into awaitable calls.

    Each call gets a fresh ``requestId``; exactly one of result, error or
    timeout completes it, and the pending entry is removed on all three
    paths. Replies for unknown or already completed ids are ignored.
    """

    def __init__(
        self,
        channel: Channel,
        *,
        default_timeout_ms: int = DEFAULT_TIMEOUT_MS,
        min_timeout_ms: int = MIN_TIMEOUT_MS,
    ) -> None:
        self._channel = channel
        self._default_timeout_ms = max(min_timeout_ms, int(default_timeout_ms))
        self._min_timeout_ms = min_timeout_ms
        self._pending: dict[str, _PendingCall] = {}
        self._destroyed = False
        channel.add_listener(self._on_inbound)

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def resolve_timeout(self, timeout_ms: object = None) -> int:
        """Clamp a requested bound to the floor; unusable values use the default."""
        if timeout_ms is None or isinstance(timeout_ms, bool):
            value = self._default_timeout_ms
        elif isinstance(timeout_ms, (int, float)) and math.isfinite(timeout_ms):
            value = int(timeout_ms)
        else:
            value = self._default_timeout_ms
        return max(self._min_timeout_ms, value)

    async def call(
        self,
        message_type: str,
        payload: dict[str, Any] | None = None,
        timeout_ms: int | None = None,
    ) -> Any:
        if self._destroyed:
            raise DestroyedError("Bridge destroyed", request_type=message_type)

        request_id = uuid4().hex
        envelope = build_outbound(message_type, payload, request_id)
        bound_ms = self.resolve_timeout(timeout_ms)

        loop = asyncio.get_running_loop()
        future: asyncio.Future[Any] = loop.create_future()
        entry = _PendingCall(
            future=future,
            timer=None,
            request_type=message_type,
            timeout_ms=bound_ms,
            started_ms=monotonic_ms(),
        )
        entry.timer = loop.call_later(bound_ms / 1000.0, self._expire, request_id)
        self._pending[request_id] = entry

        try:
            await self._channel.send(envelope)
        except Exception as exc:
            self._finish(request_id, error=exc)

        return await future

    def destroy(self) -> None:
        """Reject every outstanding call and refuse new ones."""
        if self._destroyed:
            return
        self._destroyed = True
        self._channel.remove_listener(self._on_inbound)
        outstanding = list(self._pending)
        for request_id in outstanding:
            entry = self._pending[request_id]
            self._finish(
                request_id,
                error=DestroyedError(
                    "Bridge destroyed",
                    request_id=request_id,
                    request_type=entry.request_type,
                ),
            )
        if outstanding:
            logger.info("Rejected %d pending host call(s) on teardown", len(outstanding))

    def _expire(self, request_id: str) -> None:
        entry = self._pending.get(request_id)
        if entry is None:
            return
        entry.timer = None
        logger.warning(
            "Host call %s (%s) timed out after %d ms",
            entry.request_type,
            request_id,
            entry.timeout_ms,
        )
        self._finish(
            request_id,
            error=RpcTimeoutError(entry.request_type, entry.timeout_ms, request_id),
        )

    def _on_inbound(self, message: InboundMessage) -> None:
        request_id = message.request_id
        if request_id is None:
            return
        entry = self._pending.get(request_id)
        if entry is None:
            return

        if isinstance(message, ResultMessage):
            self._finish(request_id, result=message.result)
        elif isinstance(message, ErrorMessage):
            self._finish(
                request_id,
                error=HostRejectedError(
                    message.error_code,
                    message.error_message,
                    raw=message.error,
                    request_id=request_id,
                    request_type=entry.request_type,
                ),
            )
        elif isinstance(message, HostContextMessage):
            self._finish(request_id, result=message.payload)

    def _finish(
        self,
        request_id: str,
        *,
        result: Any = None,
        error: BaseException | None = None,
    ) -> None:
        entry = self._pending.pop(request_id, None)
        if entry is None:
            return
        if entry.timer is not None:
            entry.timer.cancel()
            entry.timer = None
        if entry.future.done():
            return
        logger.debug(
            "Host call %s (%s) finished in %d ms",
            entry.request_type,
            request_id,
            elapsed_ms(entry.started_ms),
        )
        if error is not None:
            entry.future.set_exception(error)
        else:
            entry.future.set_result(result)
