"""Host bridge: handshake, diagnostics and typed host calls."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from ledger_bridge.bridge.channel import Channel, Transport
from ledger_bridge.bridge.payload import map_submission, validate_submission
from ledger_bridge.bridge.protocol import (
    APP_READY,
    GET_USER_PROFILE,
    REQUEST_HOST_CONTEXT,
    UNKNOWN_ERROR_CODE,
    UNKNOWN_ERROR_MESSAGE,
    build_outbound,
)
from ledger_bridge.bridge.rpc import RpcClient
from ledger_bridge.config import BridgeSettings
from ledger_bridge.errors import HostRejectedError, PayloadValidationError, RpcError

logger = logging.getLogger(__name__)

_MIN_READY_WAIT_MS = 250
_READY_POLL_SECONDS = 0.05


class HostBridge:
    """Explicitly owned bridge to one host.

    Construct one per host connection; nothing here is module-global.
    """

    def __init__(
        self,
        channel: Channel,
        rpc: RpcClient,
        *,
        context_timeout_ms: int = 6000,
        ready_timeout_ms: int = 1200,
    ) -> None:
        self.channel = channel
        self.rpc = rpc
        self._context_timeout_ms = context_timeout_ms
        self._ready_timeout_ms = ready_timeout_ms
        self._initialized = False
        self._context_task: asyncio.Task[None] | None = None

    @classmethod
    def create(
        cls,
        transport: Transport,
        counterpart: object | None,
        settings: BridgeSettings,
    ) -> HostBridge:
        channel = Channel(transport, counterpart, settings.allowed_origin)
        rpc = RpcClient(
            channel,
            default_timeout_ms=settings.default_timeout_ms,
            min_timeout_ms=settings.min_timeout_ms,
        )
        return cls(
            channel,
            rpc,
            context_timeout_ms=settings.context_timeout_ms,
            ready_timeout_ms=settings.ready_timeout_ms,
        )

    @property
    def host_context(self) -> dict[str, Any] | None:
        return self.channel.host_context

    async def initialize(self) -> None:
        """Start listening, announce readiness and request the host context.

        The context request runs in the background and is diagnostic only.
        """
        if not self._initialized:
            self._initialized = True
            self.channel.attach()
        await self.channel.send(build_outbound(APP_READY))
        self._context_task = asyncio.create_task(self._request_host_context())

    async def _request_host_context(self) -> None:
        try:
            context = await self.rpc.call(
                REQUEST_HOST_CONTEXT, timeout_ms=self._context_timeout_ms
            )
        except RpcError as exc:
            logger.debug("Host context request failed: %s", exc)
            return
        if isinstance(context, dict) and context.get("v") == 1:
            self.channel.host_context = context

    def is_ready(self) -> bool:
        return (
            self.channel.ready
            and bool(self.channel.active_origin)
            and not self.channel.closed
            and not self.rpc.destroyed
        )

    async def wait_until_ready(self, timeout_ms: int | None = None) -> bool:
        bound_ms = max(_MIN_READY_WAIT_MS, timeout_ms or self._ready_timeout_ms)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + bound_ms / 1000.0
        while loop.time() < deadline:
            if self.is_ready():
                return True
            await asyncio.sleep(_READY_POLL_SECONDS)
        return self.is_ready()

    def summarize_host_context(self) -> dict[str, Any] | None:
        context = self.host_context
        if not isinstance(context, dict):
            return None
        app = context.get("app") if isinstance(context.get("app"), dict) else {}
        platform = context.get("platform") if isinstance(context.get("platform"), dict) else {}
        permissions = context.get("permissions")
        return {
            "v": context.get("v"),
            "isAuthed": context.get("isAuthed"),
            "permissions": list(permissions) if isinstance(permissions, list) else [],
            "appId": app.get("id"),
            "appMode": app.get("mode"),
            "platformMode": platform.get("mode"),
            "platformHost": platform.get("host"),
        }

    async def get_user_profile(self, timeout_ms: int | None = None) -> Any:
        return await self.rpc.call(GET_USER_PROFILE, timeout_ms=timeout_ms)

    async def submit_transaction(
        self,
        payload: dict[str, Any],
        timeout_ms: int | None = None,
    ) -> Any:
        """Submit a stored send payload as ``CREATE_EXPENSE``/``CREATE_INCOME``.

        Returns the host's ``result`` unchanged; acknowledgement checks belong
        to the caller.
        """
        message_type, host_payload = map_submission(payload)
        errors = validate_submission(message_type, host_payload)
        if errors:
            raise PayloadValidationError(errors, request_type=message_type)

        result = await self.rpc.call(message_type, host_payload, timeout_ms=timeout_ms)

        error = result.get("error") if isinstance(result, dict) else None
        if isinstance(error, dict):
            code = error.get("code")
            message = error.get("message")
            raise HostRejectedError(
                code if isinstance(code, str) else UNKNOWN_ERROR_CODE,
                message if isinstance(message, str) else UNKNOWN_ERROR_MESSAGE,
                raw=error,
                response_payload=result,
                request_type=message_type,
            )
        return result

    async def destroy(self) -> None:
        self.rpc.destroy()
        if self._context_task is not None:
            await asyncio.gather(self._context_task, return_exceptions=True)
            self._context_task = None
        self.channel.close()
