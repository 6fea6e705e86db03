import threading

import pytest

from neuralmirror.acl import AclResolver
from neuralmirror.batch import BatchIndexer
from neuralmirror.config import Config
from neuralmirror.cursor import JsonCursorStore
from neuralmirror.errors import IndexWriteError, TransientUpstreamError
from neuralmirror.health import HealthTracker
from neuralmirror.models import CM_CONTENT, CM_NAME, SYS_STORE_IDENTIFIER

CONTENT_TYPE = "{http://www.alfresco.org/model/content/1.0}content"


class FakeRepository:
    """In-memory Alfresco: change feed, metadata, text, permissions, groups."""

    def __init__(self):
        self.transactions: list[int] = []
        self.records: list[dict] = []
        self.nodes: dict[int, dict] = {}
        self.texts: dict[int, str] = {}
        self.permissions: dict[str, object] = {}
        self.groups: dict[str, object] = {}
        self.failing_text: set[int] = set()
        self.fail_metadata = False
        self.metadata_calls: list[list[int]] = []
        self.text_fetches: list[int] = []

    # helpers

    def _add_txn(self, txn: int):
        if txn not in self.transactions:
            self.transactions.append(txn)

    def add_node(
        self, txn, dbid, uuid, text="", content_id="c1", type_name=CONTENT_TYPE,
        store="SpacesStore", status="u", name=None,
    ):
        self._add_txn(txn)
        node_ref = f"workspace://{store}/{uuid}"
        self.records.append({"id": dbid, "nodeRef": node_ref, "txnId": txn, "status": status})
        self.nodes[dbid] = {
            "id": dbid,
            "nodeRef": node_ref,
            "type": type_name,
            "properties": {
                CM_NAME: name or f"{uuid}.txt",
                SYS_STORE_IDENTIFIER: store,
                CM_CONTENT: {"contentId": content_id, "mimetype": "text/plain"},
            },
        }
        self.texts[dbid] = text

    def delete_node(self, txn, dbid, node_ref):
        self._add_txn(txn)
        self.records.append({"id": dbid, "nodeRef": node_ref, "txnId": txn, "status": "d"})
        self.nodes.pop(dbid, None)

    # ChangeFeed

    def get_transactions(self, min_txn_id, max_results):
        ids = [t for t in sorted(self.transactions) if t >= min_txn_id][:max_results]
        return ids, max(self.transactions, default=0)

    def get_change_records(self, from_txn_id, to_txn_id):
        return [r for r in self.records if from_txn_id <= r["txnId"] <= to_txn_id]

    def get_nodes_metadata(self, node_ids):
        ids = list(node_ids)
        self.metadata_calls.append(ids)
        if self.fail_metadata:
            raise TransientUpstreamError("metadata timed out")
        return [self.nodes[i] for i in ids if i in self.nodes]

    # ContentFetcher

    def get_text_content(self, node_id):
        self.text_fetches.append(node_id)
        if node_id in self.failing_text:
            raise TransientUpstreamError(f"textContent {node_id} timed out")
        return self.texts.get(node_id, "")

    # PermissionSource / AuthorityDirectory

    def get_permissions(self, node_uuid):
        value = self.permissions.get(node_uuid, {"entries": [], "inherits": True})
        if isinstance(value, Exception):
            raise value
        return value

    def get_user_groups(self, person_id):
        value = self.groups.get(person_id, [])
        if isinstance(value, Exception):
            raise value
        return value


class FakeIndexer:
    """In-memory DocumentIndexer."""

    def __init__(self):
        self.docs: dict[str, dict] = {}
        self.upserts: list[str] = []
        self.deletes: list[str] = []
        self.failing_segments: set[str] = set()
        self.healthy = True
        self._lock = threading.Lock()

    def upsert_segment(self, segment):
        with self._lock:
            self.upserts.append(segment.segment_id)
            if segment.segment_id in self.failing_segments:
                raise IndexWriteError(f"upsert {segment.segment_id} failed")
            self.docs[segment.segment_id] = segment.to_source()

    def delete_document(self, document_id):
        with self._lock:
            self.deletes.append(document_id)
            doomed = [k for k, v in self.docs.items() if v["documentId"] == document_id]
            for key in doomed:
                del self.docs[key]
            return len(doomed)

    def delete_segments(self, segment_ids):
        with self._lock:
            self.deletes.extend(segment_ids)
            doomed = [k for k in segment_ids if k in self.docs]
            for key in doomed:
                del self.docs[key]
            return len(doomed)

    def get_content_id(self, document_id):
        with self._lock:
            for source in self.docs.values():
                if source["documentId"] == document_id:
                    return source["contentId"]
        return ""

    def health_check(self):
        return self.healthy

    def segments_of(self, document_id):
        return sorted(
            (v for v in self.docs.values() if v["documentId"] == document_id),
            key=lambda v: v["segmentIndex"],
        )


@pytest.fixture
def config(tmp_path):
    return Config(
        cursor_backend="file",
        cursor_path=str(tmp_path / "cursor.json"),
        indexable_types=CONTENT_TYPE,
        batch_max_results=100,
        segment_max_chars=512,
    )


@pytest.fixture
def repo():
    return FakeRepository()


@pytest.fixture
def fake_indexer():
    return FakeIndexer()


@pytest.fixture
def cursor(config):
    return JsonCursorStore(config.cursor_path)


@pytest.fixture
def health():
    return HealthTracker()


@pytest.fixture
def acl(repo):
    return AclResolver(permissions=repo, directory=repo)


@pytest.fixture
def batch(config, repo, acl, fake_indexer, cursor, health):
    return BatchIndexer(config, repo, repo, acl, fake_indexer, cursor, health=health)
