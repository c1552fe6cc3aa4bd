"""Tests for the HTTP command surface and health check.

Run:
    uv run pytest tests/test_commands.py -v
"""

import httpx
import pytest

from sidebot_bridge.config import Settings
from sidebot_bridge.main import create_app
from tests.conftest import FakeAI, FakeSocket


@pytest.fixture
def app(credentials):
    return create_app(Settings(otel_exporter="none"), credentials=credentials, ai_client=FakeAI())


@pytest.fixture
def client(app):
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_health_without_plugin(client):
    async with client:
        resp = await client.get("/health")
    body = resp.json()
    assert resp.status_code == 200
    assert body["status"] == "ok"
    assert body["pluginConnected"] is False
    assert body["activeProject"] == "None"
    assert body["hasApiKey"] is False
    assert body["timestamp"].endswith("Z")


@pytest.mark.asyncio
async def test_add_goals_without_plugin_is_503(client):
    async with client:
        resp = await client.post("/add-goals", json={"projectName": "Checkout", "goals": ["Ship"]})
    assert resp.status_code == 503
    assert resp.json() == {"error": "Plugin not connected", "code": "E_PLUGIN_NOT_CONNECTED"}


@pytest.mark.asyncio
async def test_add_goals_forwards_to_plugin(app, client):
    sock = FakeSocket()
    app.state.bridge.registry.attach(sock)

    async with client:
        resp = await client.post("/add-goals", json={
            "projectName": "Checkout",
            "goals": ["Reduce drop-off", "Add Apple Pay"],
            "prdText": "PRD body",
            "notionPageId": "abc123",
        })

    assert resp.status_code == 200
    assert resp.json() == {"success": True, "message": "Sent 2 goals to plugin"}
    assert sock.sent == [{
        "type": "add-goals-from-claude",
        "projectName": "Checkout",
        "goals": ["Reduce drop-off", "Add Apple Pay"],
        "prdText": "PRD body",
        "notionPageId": "abc123",
    }]


@pytest.mark.asyncio
async def test_add_fixes_forwards_to_plugin(app, client):
    sock = FakeSocket()
    app.state.bridge.registry.attach(sock)

    async with client:
        resp = await client.post("/add-fixes", json={"projectName": "Checkout", "fixes": [{"title": "x"}]})

    assert resp.json()["message"] == "Sent 1 fixes to plugin"
    assert sock.of_type("add-fixes-from-claude")[0]["projectName"] == "Checkout"


@pytest.mark.asyncio
async def test_send_failure_is_503(app, client):
    app.state.bridge.registry.attach(FakeSocket(fail=True))

    async with client:
        resp = await client.post("/add-fixes", json={"projectName": "P", "fixes": []})

    assert resp.status_code == 503
    assert app.state.bridge.registry.is_connected() is False


@pytest.mark.asyncio
async def test_missing_fields_are_422(client):
    async with client:
        resp = await client.post("/add-goals", json={"goals": []})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_state_and_design_data(app, client):
    state = app.state.bridge.state
    async with client:
        missing = await client.get("/design-data")

        state.replace_projects([{"name": "A"}], {"name": "A"})
        state.store_snapshot({"rootNames": ["Login"], "nodes": []})
        state.store_audit_result({"score": 80})
        snapshot = await client.get("/design-data")
        full = await client.get("/state")

    assert missing.status_code == 404
    assert missing.json() == {"error": "No design data"}
    assert snapshot.json() == {"rootNames": ["Login"], "nodes": []}
    body = full.json()
    assert body["activeProject"] == {"name": "A"}
    assert body["lastDesignData"]["rootNames"] == ["Login"]
    assert body["lastAuditResult"] == {"score": 80}
    assert body["connected"] is False


@pytest.mark.asyncio
async def test_cors_preflight(client):
    async with client:
        resp = await client.options(
            "/add-goals",
            headers={"Origin": "null", "Access-Control-Request-Method": "POST"},
        )
    assert resp.status_code == 200
    assert resp.headers["access-control-allow-origin"] == "*"
