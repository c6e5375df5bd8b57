import time

import pytest
from starlette.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from conftest import HOST_ORIGIN
from ledger_bridge.app import create_app_context
from ledger_bridge.config import BridgeSettings, Settings, StorageSettings
from ledger_bridge.send.prompts import PresetPrompter
from ledger_bridge.transport.http_server import create_http_app


@pytest.fixture
def context(tmp_path):
    settings = Settings(
        bridge=BridgeSettings(allowed_origin=HOST_ORIGIN, context_timeout_ms=2000),
        storage=StorageSettings(sqlite_path=str(tmp_path / "bridge.sqlite")),
    )
    ctx = create_app_context(settings)
    yield ctx
    ctx.close()


@pytest.fixture
def client(context):
    with TestClient(create_http_app(context)) as test_client:
        yield test_client


def _wait_for(condition, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return False


def _wait_ready(context, timeout=2.0):
    return _wait_for(context.host.is_ready, timeout)


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_ready_without_host(client):
    response = client.get("/ready")
    assert response.status_code == 503
    assert response.json() == {"status": "waiting"}


def test_bridge_rejects_foreign_origin(client):
    with pytest.raises(WebSocketDisconnect) as excinfo:
        with client.websocket_connect("/bridge", headers={"origin": "https://evil.example"}):
            pass
    assert excinfo.value.code == 1008


def test_bridge_rejects_missing_origin(client):
    with pytest.raises(WebSocketDisconnect) as excinfo:
        with client.websocket_connect("/bridge"):
            pass
    assert excinfo.value.code == 1008


def test_bridge_handshake(client, context):
    with client.websocket_connect("/bridge", headers={"origin": HOST_ORIGIN}) as ws:
        assert ws.receive_json() == {"type": "APP_READY"}
        context_request = ws.receive_json()
        assert context_request["type"] == "REQUEST_HOST_CONTEXT"
        assert context_request["requestId"]

        ws.send_json(
            {
                "type": "HOST_CONTEXT",
                "requestId": context_request["requestId"],
                "payload": {"v": 1, "isAuthed": True},
            }
        )
        assert _wait_ready(context)
        assert client.get("/ready").json() == {"status": "ready"}
        assert context.host.bridge.host_context == {"v": 1, "isAuthed": True}

    assert _wait_for(lambda: context.host.bridge is None)
    assert context.host.is_ready() is False


def test_send_over_websocket(client, context):
    context.records.create("m1", date="2024-05-01", amount=9.99, vendor="Kiosk")
    pipeline = context.build_pipeline(PresetPrompter())

    with client.websocket_connect("/bridge", headers={"origin": HOST_ORIGIN}) as ws:
        assert ws.receive_json()["type"] == "APP_READY"
        ws.receive_json()
        ws.send_json({"type": "BRIDGE_READY"})
        assert _wait_ready(context)

        future = client.portal.start_task_soon(pipeline.send, "m1")
        request = ws.receive_json()
        assert request["type"] == "CREATE_EXPENSE"
        assert request["payload"]["amount"] == 9.99
        ws.send_json(
            {
                "type": "RESULT",
                "requestId": request["requestId"],
                "result": {"status": "success", "remoteTxnId": "r-ws"},
            }
        )
        outcome = future.result(timeout=5)

    assert outcome.status == "sent"
    assert outcome.remote_txn_id == "r-ws"
    assert context.records.require("m1").status == "sent"


def test_frames_from_host_that_are_not_json_are_ignored(client, context):
    with client.websocket_connect("/bridge", headers={"origin": HOST_ORIGIN}) as ws:
        ws.receive_json()
        ws.receive_json()
        ws.send_text("not json")
        ws.send_json({"type": "BRIDGE_READY"})
        assert _wait_ready(context)
