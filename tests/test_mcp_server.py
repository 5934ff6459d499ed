import importlib.util
import json
from pathlib import Path

import httpx
import pytest


SERVER_PATH = Path(__file__).resolve().parent.parent / "mcp-server" / "server.py"


@pytest.fixture
def server():
    spec = importlib.util.spec_from_file_location("erd_mcp_server", SERVER_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def requests_seen(server, monkeypatch):
    """Route the server's HTTP client through a mock transport."""
    seen = []
    real_client = httpx.Client

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path.endswith("/nodes/missing"):
            return httpx.Response(404, json={"detail": "Node not found"})
        return httpx.Response(200, json={"success": True, "path": request.url.path})

    def client_factory(**kwargs):
        return real_client(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(server.httpx, "Client", client_factory)
    return seen


class TestTools:

    def test_set_sql_sends_put(self, server, requests_seen):
        result = json.loads(server.erd_set_sql("create table a (id int);"))

        assert result["success"] is True
        request = requests_seen[0]
        assert request.method == "PUT"
        assert request.url.path == "/api/sql"
        assert json.loads(request.content) == {"sql": "create table a (id int);"}

    def test_search_passes_query(self, server, requests_seen):
        server.erd_search_tables("ord")
        assert requests_seen[0].url.params["q"] == "ord"

    def test_move_node_uses_patch(self, server, requests_seen):
        server.erd_move_node("orders", 10, 20, snap=True)
        request = requests_seen[0]
        assert request.method == "PATCH"
        assert json.loads(request.content) == {"x": 10, "y": 20, "snap": True}

    def test_error_status_raises(self, server, requests_seen):
        with pytest.raises(server.ApiError, match="Node not found"):
            server.erd_move_node("missing", 0, 0)

    def test_unknown_method(self, server):
        with pytest.raises(ValueError):
            server.api_request("HEAD", "/health")
