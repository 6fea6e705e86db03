"""Tests for the Alfresco RepositoryClient (httpx, mocked transport)."""
import json

import httpx
import pytest

from neuralmirror.config import Config
from neuralmirror.errors import (
    MalformedResponseError,
    TransientUpstreamError,
    UnknownStatusError,
    UpstreamRequestError,
)
from neuralmirror.models import ChangeStatus
from neuralmirror.repository import SEARCH_SECRET_HEADER, RepositoryClient, parse_change_record

SOLR = "/alfresco/service/api/solr"
PUBLIC = "/alfresco/api/-default-/public/alfresco/versions/1"


def _client(handler, **overrides):
    config = Config(repository_url="http://alfresco:8080", **overrides)
    http = httpx.Client(base_url=config.repository_url, transport=httpx.MockTransport(handler))
    return RepositoryClient(config, http=http)


class Recorder:
    def __init__(self, response):
        self.response = response
        self.requests: list[httpx.Request] = []

    def __call__(self, request):
        self.requests.append(request)
        return self.response(request) if callable(self.response) else self.response


class TestParseChangeRecord:
    def test_parses(self):
        record = parse_change_record(
            {"id": 11, "nodeRef": "workspace://SpacesStore/abc", "txnId": 4, "status": "u"}
        )
        assert record.sequence_id == 4
        assert record.node_id == 11
        assert record.status is ChangeStatus.UPDATED
        assert record.document_id == "abc"

    def test_unknown_status(self):
        with pytest.raises(UnknownStatusError) as exc:
            parse_change_record({"id": 1, "nodeRef": "workspace://SpacesStore/a", "txnId": 1, "status": "x"})
        assert exc.value.status == "x"

    def test_missing_txn(self):
        with pytest.raises(MalformedResponseError):
            parse_change_record({"id": 1, "nodeRef": "workspace://SpacesStore/a", "status": "u"})


class TestChangeFeed:
    def test_transactions(self):
        rec = Recorder(httpx.Response(200, json={
            "transactions": [{"id": 3, "commitTimeMs": 1}, {"id": 5, "commitTimeMs": 2}],
            "maxTxnId": 9,
        }))
        ids, max_known = _client(rec).get_transactions(3, 100)
        assert ids == [3, 5]
        assert max_known == 9
        request = rec.requests[0]
        assert request.method == "GET"
        assert request.url.path == f"{SOLR}/transactions"
        assert request.url.params["minTxnId"] == "3"
        assert request.url.params["maxResults"] == "100"

    def test_no_transactions(self):
        rec = Recorder(httpx.Response(200, json={"transactions": [], "maxTxnId": 2}))
        assert _client(rec).get_transactions(3, 100) == ([], 2)

    def test_change_records(self):
        nodes = [{"id": 1, "nodeRef": "workspace://SpacesStore/a", "txnId": 3, "status": "u"}]
        rec = Recorder(httpx.Response(200, json={"nodes": nodes}))
        assert _client(rec).get_change_records(3, 5) == nodes
        request = rec.requests[0]
        assert request.method == "POST"
        assert request.url.path == f"{SOLR}/nodes"
        assert json.loads(request.content) == {"fromTxnId": 3, "toTxnId": 5}

    def test_metadata(self):
        rec = Recorder(httpx.Response(200, json={"nodes": [{"id": 1}]}))
        assert _client(rec).get_nodes_metadata([1, 2]) == [{"id": 1}]
        payload = json.loads(rec.requests[0].content)
        assert payload["nodeIds"] == [1, 2]
        assert payload["includeAclId"] is False
        assert payload["includePaths"] is False

    def test_metadata_empty_ids_skips_call(self):
        rec = Recorder(httpx.Response(200, json={"nodes": []}))
        assert _client(rec).get_nodes_metadata([]) == []
        assert rec.requests == []

    def test_metadata_without_nodes_list(self):
        rec = Recorder(httpx.Response(200, json={"error": "nope"}))
        with pytest.raises(MalformedResponseError):
            _client(rec).get_nodes_metadata([1])


class TestContent:
    def test_text_content(self):
        rec = Recorder(httpx.Response(200, text="hello world"))
        assert _client(rec).get_text_content(7) == "hello world"
        assert rec.requests[0].url.params["nodeId"] == "7"

    def test_no_content(self):
        rec = Recorder(httpx.Response(204))
        assert _client(rec).get_text_content(7) == ""


class TestPublicApi:
    def test_permissions(self):
        entry = {
            "entries": [{"authorityId": "alice", "allowPermissions": True, "permissions": ["Read"]}],
            "owner": "admin",
            "inherits": True,
        }
        rec = Recorder(httpx.Response(200, json={"entry": entry}))
        assert _client(rec).get_permissions("abc") == entry
        assert rec.requests[0].url.path == f"{PUBLIC}/nodes/abc/permissions"

    def test_user_groups(self):
        rec = Recorder(httpx.Response(200, json={"list": {"entries": [
            {"entry": {"id": "GROUP_finance"}},
            {"entry": {"id": "GROUP_EVERYONE"}},
        ]}}))
        assert _client(rec).get_user_groups("alice") == ["GROUP_finance", "GROUP_EVERYONE"]
        assert rec.requests[0].url.path == f"{PUBLIC}/people/alice/groups"

    def test_groups_malformed(self):
        rec = Recorder(httpx.Response(200, json={"list": {}}))
        with pytest.raises(MalformedResponseError):
            _client(rec).get_user_groups("alice")


class TestTransport:
    def test_search_secret_header(self):
        config = Config(repository_url="http://alfresco:8080", repository_search_secret="s3cret")
        client = RepositoryClient(config)
        try:
            assert client._http.headers[SEARCH_SECRET_HEADER] == "s3cret"
        finally:
            client.close()

    def test_server_error_is_transient(self):
        rec = Recorder(httpx.Response(503))
        with pytest.raises(TransientUpstreamError):
            _client(rec).get_transactions(1, 10)

    def test_timeout_is_transient(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(TransientUpstreamError):
            _client(handler).get_text_content(1)

    def test_connect_error_is_transient(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(TransientUpstreamError):
            _client(handler).get_permissions("abc")

    def test_client_error(self):
        rec = Recorder(httpx.Response(404))
        with pytest.raises(UpstreamRequestError) as exc:
            _client(rec).get_permissions("missing")
        assert exc.value.status_code == 404

    def test_invalid_json(self):
        rec = Recorder(httpx.Response(200, text="<html>login</html>"))
        with pytest.raises(MalformedResponseError):
            _client(rec).get_transactions(1, 10)
