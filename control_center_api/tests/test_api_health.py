import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from starlette.websockets import WebSocketDisconnect

from control_center.api import main
from control_center.core.security import create_access_token, create_refresh_token


@pytest.fixture
def bare_client():
    return TestClient(main.app)


def test_liveness(bare_client):
    response = bare_client.get("/api/v1/health")
    assert response.status_code == 200
    assert response.json()["message"] == "Healthy"
    assert response.headers["X-Correlation-ID"]


def test_correlation_id_is_echoed(bare_client):
    response = bare_client.get("/api/v1/health", headers={"X-Correlation-ID": "abc-123"})
    assert response.headers["X-Correlation-ID"] == "abc-123"


def test_tenant_echo_requires_header(bare_client, tenant_headers, tenant_id):
    missing = bare_client.get("/api/v1/health/tenant")
    assert missing.status_code == 400
    body = missing.json()
    assert body["error"]["type"] == "http_error"
    assert body["error"]["message"] == "X-Tenant-ID header is required."
    assert body["path"] == "/api/v1/health/tenant"

    ok = bare_client.get("/api/v1/health/tenant", headers=tenant_headers)
    assert ok.json() == {"tenant_id": str(tenant_id)}


def test_system_health_ok(bare_client, monkeypatch):
    async def _metrics(tenant_id):
        return {"sites": 4, "tenants": 1}

    monkeypatch.setattr(main, "_database_metrics", _metrics)
    response = bare_client.get("/api/v1/health/system")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["checks"] == {"database": "connected", "auth": "active", "storage": "available"}
    assert body["metrics"] == {"sites": 4, "tenants": 1}
    assert body["version"] == main.settings.APP_VERSION


def test_system_health_degraded_when_database_is_down(bare_client, monkeypatch):
    async def _metrics(tenant_id):
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    monkeypatch.setattr(main, "_database_metrics", _metrics)
    response = bare_client.get("/api/v1/health/system")

    assert response.status_code == 503
    body = response.json()
    assert body["status"] == "degraded"
    assert body["checks"]["database"] == "disconnected"
    assert body["metrics"] == {"sites": 0, "tenants": 0}
    assert body["error"]


def test_system_health_rejects_bad_tenant_header(bare_client):
    response = bare_client.get("/api/v1/health/system", headers={"X-Tenant-ID": "nope"})
    assert response.status_code == 400


def test_websocket_info_describes_change_feed(bare_client):
    body = bare_client.get("/api/v1/websocket-info").json()
    assert [e["path"] for e in body["endpoints"]] == ["/ws/changes"]


def test_change_feed_rejects_missing_token(bare_client):
    with bare_client.websocket_connect("/ws/changes") as ws:
        with pytest.raises(WebSocketDisconnect) as exc_info:
            ws.receive_text()
    assert exc_info.value.code == 4401


def test_change_feed_rejects_refresh_token(bare_client, tenant_id):
    token = create_refresh_token("user-1", str(tenant_id))
    with bare_client.websocket_connect(f"/ws/changes?token={token}&tenant_id={tenant_id}") as ws:
        with pytest.raises(WebSocketDisconnect) as exc_info:
            ws.receive_text()
    assert exc_info.value.code == 4401


def test_change_feed_rejects_tenant_mismatch(bare_client, tenant_id):
    token = create_access_token("user-1", "another-tenant")
    with bare_client.websocket_connect(f"/ws/changes?token={token}", headers={"X-Tenant-ID": str(tenant_id)}) as ws:
        with pytest.raises(WebSocketDisconnect) as exc_info:
            ws.receive_text()
    assert exc_info.value.code == 4403


def test_change_feed_answers_ping(bare_client, tenant_id):
    token = create_access_token("user-1", str(tenant_id))
    with bare_client.websocket_connect(f"/ws/changes?token={token}", headers={"X-Tenant-ID": str(tenant_id)}) as ws:
        ws.send_text("ping")
        assert ws.receive_text() == "pong"
        ws.send_text("PING")
        assert ws.receive_text() == "pong"
