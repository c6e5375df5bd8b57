"""Cross-context bridge to the host: channel, RPC client and facade."""

from __future__ import annotations

from ledger_bridge.bridge.channel import Channel, MessageEvent, Transport
from ledger_bridge.bridge.client import HostBridge
from ledger_bridge.bridge.rpc import RpcClient

__all__ = ["Channel", "HostBridge", "MessageEvent", "RpcClient", "Transport"]
