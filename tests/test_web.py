"""Tests for the search web app (FastAPI TestClient)."""
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from neuralmirror.errors import TransientUpstreamError
from neuralmirror.models import BatchResult, SearchResult
from neuralmirror.web import GUEST, create_web_app


@pytest.fixture
def web_env(config, health):
    gateway = MagicMock()
    gateway.search.return_value = [
        SearchResult(uuid="doc-a", name="a.txt", text="hello", node_ref="workspace://SpacesStore/doc-a"),
    ]
    indexer = MagicMock()
    indexer.health_check.return_value = True
    app = create_web_app(config, gateway, indexer, health)
    return {"client": TestClient(app), "gateway": gateway, "indexer": indexer, "health": health}


class TestSearchEndpoint:
    def test_results(self, web_env):
        resp = web_env["client"].get("/search", params={"query": "hello", "searchType": "keyword"})
        assert resp.status_code == 200
        assert resp.json() == [
            {"uuid": "doc-a", "name": "a.txt", "text": "hello", "nodeRef": "workspace://SpacesStore/doc-a"},
        ]
        web_env["gateway"].search.assert_called_once_with("hello", "keyword", GUEST)

    def test_default_mode_is_neural(self, web_env):
        web_env["client"].get("/search", params={"query": "hello"})
        assert web_env["gateway"].search.call_args.args[1] == "neural"

    def test_caller_from_basic_auth(self, web_env):
        web_env["client"].get("/search", params={"query": "hello"}, auth=("alice", "pw"))
        assert web_env["gateway"].search.call_args.args[2] == "alice"

    def test_query_required(self, web_env):
        assert web_env["client"].get("/search").status_code == 422

    def test_backend_down_is_502(self, web_env):
        web_env["gateway"].search.side_effect = TransientUpstreamError("search failed")
        resp = web_env["client"].get("/search", params={"query": "hello"})
        assert resp.status_code == 502


class TestHealthEndpoint:
    def test_degraded_before_first_batch(self, web_env):
        body = web_env["client"].get("/health").json()
        assert body["status"] == "degraded"
        assert body["index_healthy"] is True

    def test_ok_after_batch(self, web_env):
        web_env["health"].record_batch(BatchResult(status="success", cursor_after=7))
        body = web_env["client"].get("/health").json()
        assert body["status"] == "ok"
        assert body["cursor"] == 7
        assert body["last_batch_ok"] is True

    def test_index_down(self, web_env):
        web_env["health"].record_batch(BatchResult())
        web_env["indexer"].health_check.return_value = False
        body = web_env["client"].get("/health").json()
        assert body["status"] == "degraded"
        assert web_env["health"].status["index_healthy"] is False


class TestStatusEndpoint:
    def test_secrets_masked(self, config, health):
        config.repository_password = "hunter2"
        app = create_web_app(config, MagicMock(), MagicMock(), health)
        body = TestClient(app).get("/api/status").json()
        assert body["config"]["repository_password"] == "***set***"
        assert "health" in body
