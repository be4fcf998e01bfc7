"""
Shared fixtures: a sample bridge, an upstream API faked with httpx.MockTransport
and a dispatcher wired to in-memory stores.
"""
import json

import httpx
import pytest

from access_control import AccessGate
from bridge_models import BridgeConfig
from encryption import EncryptionService
from http_executor import HttpExecutor
from mcp_server import McpServer
from stores import InMemoryBridgeStore, InMemoryTokenStore

OWNER_ID = "owner-1"


def sample_bridge_data(**overrides):
    data = {
        "id": "bridge-1",
        "name": "Test Bridge",
        "description": "Bridge used by the test suite",
        "userId": OWNER_ID,
        "enabled": True,
        "baseUrl": "https://api.example.com/v1/",
        "headers": {"X-Client": "mcp-bridge"},
        "authentication": {"type": "bearer", "token": "upstream-secret"},
        "access": {"public": False, "authRequired": True},
        "endpoints": [
            {
                "name": "list_posts",
                "method": "GET",
                "path": "/posts",
                "description": "List posts",
                "parameters": [
                    {"name": "limit", "type": "integer", "required": False, "defaultValue": 10},
                    {"name": "tags", "type": "array", "required": False},
                ],
            },
            {
                "name": "get_post",
                "method": "GET",
                "path": "/posts/{id}",
                "parameters": [{"name": "id", "type": "number", "required": True}],
            },
            {
                "name": "create_post",
                "method": "POST",
                "path": "/posts",
                "requestBody": {
                    "contentType": "application/json",
                    "properties": {
                        "title": {"type": "string", "required": True, "description": "Post title"},
                        "published": {"type": "boolean"},
                    },
                },
            },
            {
                "name": "delete_post",
                "method": "DELETE",
                "path": "/posts/{id}",
                "parameters": [{"name": "id", "type": "string", "required": True}],
            },
            {
                "name": "archived_endpoint",
                "method": "GET",
                "path": "/archive",
                "enabled": False,
            },
        ],
        "mcpResources": [
            {"uri": "api://posts/latest", "name": "Latest posts", "path": "/posts?sort=latest"},
            {"uri": "api://readme", "name": "Readme", "mimeType": "text/plain", "text": "Posts API"},
        ],
        "mcpPrompts": [
            {
                "name": "summarize_post",
                "description": "Summarize a post",
                "arguments": [{"name": "post_id", "required": True}],
                "template": "Summarize post {post_id} in {style} style",
            },
        ],
    }
    data.update(overrides)
    return data


@pytest.fixture
def bridge():
    return BridgeConfig.model_validate(sample_bridge_data())


@pytest.fixture(scope="session")
def encryption():
    return EncryptionService("test-secret")


class Upstream:
    """Fake REST API recording every request it receives."""

    def __init__(self):
        self.requests = []
        self.status_code = 200
        self.payload = {"ok": True}
        self.error = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        if isinstance(self.payload, (dict, list)):
            return httpx.Response(self.status_code, json=self.payload)
        return httpx.Response(self.status_code, text=self.payload)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]

    def last_json(self):
        return json.loads(self.last.content)


@pytest.fixture
def upstream():
    return Upstream()


@pytest.fixture
def executor(upstream):
    client = httpx.AsyncClient(transport=httpx.MockTransport(upstream.handler))
    return HttpExecutor(client=client, default_timeout=5.0)


@pytest.fixture
def tokens():
    return InMemoryTokenStore()


@pytest.fixture
def bridges(bridge, tokens):
    return InMemoryBridgeStore([bridge], tokens=tokens)


@pytest.fixture
def server(bridges, tokens, encryption, executor):
    return McpServer(
        bridges=bridges,
        gate=AccessGate(tokens),
        encryption=encryption,
        executor=executor,
    )


def rpc(method, params=None, request_id=1):
    """Serialized JSON-RPC request body."""
    body = {"jsonrpc": "2.0", "id": request_id, "method": method}
    if params is not None:
        body["params"] = params
    return json.dumps(body).encode("utf-8")
