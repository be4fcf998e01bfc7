"""
HTTP surface tests: the per-bridge MCP endpoint and token management routes.
"""
import asyncio
import logging

import httpx
import pytest
from fastapi.testclient import TestClient

from access_control import AccessGate
from bridge_models import Session
from config import Settings
from conftest import OWNER_ID, rpc
from http_executor import HttpExecutor
from main import create_app, dispatch
from mcp_server import McpServer
from stores import SESSION_COOKIE, InMemorySessionResolver

SETTINGS = Settings(bridge_secret="test-secret", rate_limit_per_minute=0)


@pytest.fixture
def sessions():
    return InMemorySessionResolver()


@pytest.fixture
def app(bridges, tokens, sessions, executor):
    return create_app(SETTINGS, bridges=bridges, tokens=tokens, sessions=sessions, executor=executor)


@pytest.fixture
def anonymous(app):
    with TestClient(app) as client:
        yield client


@pytest.fixture
def owner(app, sessions):
    with TestClient(app, cookies={SESSION_COOKIE: sessions.issue(OWNER_ID)}) as client:
        yield client


@pytest.fixture
def stranger(app, sessions):
    with TestClient(app, cookies={SESSION_COOKIE: sessions.issue("someone-else")}) as client:
        yield client


def rpc_body(method, params=None, request_id=1):
    body = {"jsonrpc": "2.0", "id": request_id, "method": method}
    if params is not None:
        body["params"] = params
    return body


class TestMcpEndpoint:

    def test_health(self, anonymous):
        response = anonymous.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_initialize_as_owner(self, owner):
        response = owner.post("/mcp/bridge-1", json=rpc_body("initialize"))
        assert response.status_code == 200
        assert response.json() == {
            "jsonrpc": "2.0",
            "id": 1,
            "result": {"initialized": True, "serverInfo": {"name": "Test Bridge", "version": "1.0.0"}},
        }

    def test_private_bridge_requires_credentials(self, anonymous):
        response = anonymous.post("/mcp/bridge-1", json=rpc_body("tools/list", request_id="x"))
        assert response.status_code == 401
        body = response.json()
        assert body["error"]["code"] == -32001
        assert body["id"] == "x"

    def test_unknown_bridge(self, owner):
        response = owner.post("/mcp/nope", json=rpc_body("initialize"))
        assert response.status_code == 404
        assert response.json()["error"]["code"] == -32001

    def test_parse_error(self, owner):
        response = owner.post("/mcp/bridge-1", content=b"{oops", headers={"Content-Type": "application/json"})
        assert response.status_code == 200
        assert response.json()["error"]["code"] == -32700

    def test_tools_call_with_issued_token(self, owner, anonymous, upstream):
        issued = owner.post("/api/bridges/bridge-1/tokens", json={"name": "agent"})
        assert issued.status_code == 201
        secret = issued.json()["token"]["token"]

        response = anonymous.post(
            "/mcp/bridge-1",
            json=rpc_body("tools/call", {"name": "get_post", "arguments": {"id": 3}}),
            headers={"Authorization": f"Bearer {secret}"},
        )
        assert response.status_code == 200
        assert response.json()["result"]["isError"] is False
        assert upstream.last.url.path == "/v1/posts/3"


class TestTokenRoutes:

    def test_requires_session(self, anonymous):
        assert anonymous.get("/api/bridges/bridge-1/tokens").status_code == 401

    def test_other_users_bridge_is_hidden(self, stranger):
        assert stranger.get("/api/bridges/bridge-1/tokens").status_code == 404

    def test_issue_list_update_delete(self, owner):
        created = owner.post("/api/bridges/bridge-1/tokens", json={
            "name": "ci", "description": "pipeline", "expiresInDays": 30,
            "permissions": [{"type": "tools", "actions": ["execute"]}],
        })
        assert created.status_code == 201
        token = created.json()["token"]
        assert token["token"].startswith("mcp_")
        assert token["permissions"][0]["type"] == "tools"

        listed = owner.get("/api/bridges/bridge-1/tokens").json()["tokens"]
        assert [t["id"] for t in listed] == [token["id"]]
        assert listed[0]["token"] != token["token"]

        updated = owner.put(f"/api/bridges/bridge-1/tokens/{token['id']}", json={"isActive": False})
        assert updated.status_code == 200
        assert updated.json()["token"]["isActive"] is False

        deleted = owner.delete(f"/api/bridges/bridge-1/tokens/{token['id']}")
        assert deleted.status_code == 200
        assert owner.get("/api/bridges/bridge-1/tokens").json()["tokens"] == []

    def test_invalid_input(self, owner):
        assert owner.post("/api/bridges/bridge-1/tokens", json={"name": ""}).status_code == 400
        assert owner.put("/api/bridges/bridge-1/tokens/unknown", json={"name": "x"}).status_code == 404

    def test_empty_update(self, owner):
        token = owner.post("/api/bridges/bridge-1/tokens", json={"name": "ci"}).json()["token"]
        assert owner.put(f"/api/bridges/bridge-1/tokens/{token['id']}", json={}).status_code == 400

    def test_deactivated_token_stops_working(self, owner, anonymous):
        token = owner.post("/api/bridges/bridge-1/tokens", json={"name": "ci"}).json()["token"]
        owner.put(f"/api/bridges/bridge-1/tokens/{token['id']}", json={"isActive": False})
        response = anonymous.post("/mcp/bridge-1", json=rpc_body("tools/list"),
                                  headers={"Authorization": f"Bearer {token['token']}"})
        assert response.status_code == 401


@pytest.mark.asyncio
class TestDispatch:
    """A client hanging up mid-call."""

    async def test_disconnect_lets_upstream_call_finish(self, bridges, tokens, encryption, caplog):
        caplog.set_level(logging.INFO)
        arrived = asyncio.Event()
        release = asyncio.Event()
        received = []

        async def slow_api(request):
            received.append(request)
            arrived.set()
            await release.wait()
            return httpx.Response(200, json={"id": 5})

        client = httpx.AsyncClient(transport=httpx.MockTransport(slow_api))
        server = McpServer(bridges, AccessGate(tokens), encryption, HttpExecutor(client=client))
        body = rpc("tools/call", {"name": "get_post", "arguments": {"id": 5}})
        caller = asyncio.ensure_future(dispatch(server, body, "bridge-1", session=Session(userId=OWNER_ID)))

        await asyncio.wait_for(arrived.wait(), timeout=5)
        caller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller

        release.set()
        pending = [t for t in asyncio.all_tasks() if t is not asyncio.current_task()]
        results = await asyncio.wait_for(asyncio.gather(*pending), timeout=5)
        await client.aclose()

        assert [str(r.url) for r in received] == ["https://api.example.com/v1/posts/5"]
        assert any(isinstance(r, tuple) and r[0] == 200 for r in results)
        assert "result discarded" in caplog.text
        assert not [r for r in caplog.records if r.levelno >= logging.ERROR]


def test_settings_from_env():
    settings = Settings.from_env({
        "BRIDGE_SECRET": "s",
        "CORS_ALLOWED_ORIGINS": "https://a.example, https://b.example",
        "UPSTREAM_TIMEOUT_SECONDS": "12.5",
        "RATE_LIMIT_PER_MINUTE": "0",
        "PORT": "9000",
    })
    assert settings.cors_allowed_origins == ["https://a.example", "https://b.example"]
    assert settings.upstream_timeout_seconds == 12.5
    assert settings.rate_limit_per_minute == 0
    assert settings.port == 9000


def test_settings_require_secret():
    with pytest.raises(ValueError):
        Settings.from_env({})
