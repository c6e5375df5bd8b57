"""Application context assembly."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from ledger_bridge.bridge.client import HostBridge
from ledger_bridge.config import Settings, load_settings
from ledger_bridge.errors import ChannelClosed
from ledger_bridge.ledger.changelog import ChangeLog
from ledger_bridge.ledger.records import RecordService
from ledger_bridge.send.pipeline import SendPipeline
from ledger_bridge.send.prompts import Messages, Notifier, Prompter
from ledger_bridge.store.db import SqliteStore

logger = logging.getLogger(__name__)


class HostConnection:
    """Slot for the currently connected host bridge, if any.

    The send pipeline holds this instead of a bridge so that it survives host
    reconnects; with no host attached it reports not ready.
    """

    def __init__(self) -> None:
        self._bridge: HostBridge | None = None

    @property
    def bridge(self) -> HostBridge | None:
        return self._bridge

    def attach(self, bridge: HostBridge) -> None:
        if self._bridge is not None and self._bridge is not bridge:
            logger.info("Replacing connected host bridge")
        self._bridge = bridge

    def detach(self, bridge: HostBridge) -> None:
        if self._bridge is bridge:
            self._bridge = None

    def is_ready(self) -> bool:
        return self._bridge is not None and self._bridge.is_ready()

    async def submit_transaction(
        self, payload: dict[str, Any], timeout_ms: int | None = None
    ) -> Any:
        bridge = self._bridge
        if bridge is None:
            raise ChannelClosed("No host connected")
        return await bridge.submit_transaction(payload, timeout_ms=timeout_ms)


@dataclass
class AppContext:
    """Application-wide dependency container."""

    settings: Settings
    store: SqliteStore
    changelog: ChangeLog
    records: RecordService
    host: HostConnection = field(default_factory=HostConnection)
    in_flight: set[str] = field(default_factory=set)

    def build_pipeline(
        self,
        prompter: Prompter,
        notifier: Notifier | None = None,
        messages: Messages | None = None,
    ) -> SendPipeline:
        return SendPipeline(
            self.store,
            self.host,
            prompter,
            notifier=notifier,
            settings=self.settings.bridge,
            messages=messages,
            changelog=self.changelog,
            in_flight=self.in_flight,
        )

    def close(self) -> None:
        self.store.close()


def create_app_context(settings: Settings | None = None) -> AppContext:
    settings = settings or load_settings()
    store = SqliteStore(settings.storage.sqlite_path, wal=settings.storage.sqlite_wal)
    changelog = ChangeLog(store)
    return AppContext(
        settings=settings,
        store=store,
        changelog=changelog,
        records=RecordService(store, changelog),
    )
