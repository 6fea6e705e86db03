# neuralmirror – Permission-aware neural search mirror for content repositories
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
Write path to OpenSearch.

One repository document becomes N index entries "<uuid>_<i>", one per
segment, all sharing dbid / contentId / aclReaders. The stored contentId
is the change-detection oracle: a node is re-indexed only when its
current contentId differs from the one found here.

Embeddings are computed inside OpenSearch by the ingest pipeline
(text -> passage_embedding), so documents are written as plain text.
"""
import logging
from typing import Optional

from opensearchpy import OpenSearch
from opensearchpy.exceptions import NotFoundError, OpenSearchException

from .config import Config
from .errors import IndexWriteError
from .models import Segment

logger = logging.getLogger(__name__)

HEALTHY_STATUSES = ("green", "yellow")


def create_client(config: Config) -> OpenSearch:
    auth = (config.opensearch_username, config.opensearch_password) if config.opensearch_password else None
    return OpenSearch(
        hosts=[config.opensearch_url],
        http_auth=auth,
        use_ssl=config.opensearch_url.startswith("https"),
        verify_certs=config.opensearch_verify_certs,
        ssl_show_warn=False,
        timeout=config.request_timeout,
    )


def index_body(config: Config) -> dict:
    settings: dict = {"index": {"knn": True}}
    if config.embedding_model_id:
        settings["index"]["default_pipeline"] = config.pipeline_name
    return {
        "settings": settings,
        "mappings": {
            "properties": {
                "id": {"type": "keyword"},
                "documentId": {"type": "keyword"},
                "segmentIndex": {"type": "integer"},
                "dbid": {"type": "long"},
                "contentId": {"type": "keyword"},
                "name": {"type": "text"},
                "text": {"type": "text"},
                "nodeRef": {"type": "keyword"},
                "aclReaders": {"type": "keyword"},
                "acl": {
                    "properties": {
                        "authority": {"type": "keyword"},
                        "permission": {"type": "keyword"},
                    },
                },
                "passage_embedding": {
                    "type": "knn_vector",
                    "dimension": config.embedding_dimension,
                    "method": {"engine": "lucene", "space_type": "l2", "name": "hnsw", "parameters": {}},
                },
            },
        },
    }


def pipeline_body(config: Config) -> dict:
    return {
        "description": "Passage embeddings for neural search",
        "processors": [
            {
                "text_embedding": {
                    "model_id": config.embedding_model_id,
                    "field_map": {"text": "passage_embedding"},
                },
            },
        ],
    }


class DocumentIndexer:
    def __init__(self, client: OpenSearch, index_name: str, config: Optional[Config] = None):
        self.client = client
        self.index_name = index_name
        self.config = config

    # ── Bootstrap ────────────────────────────────

    def ensure_index(self) -> bool:
        """Create ingest pipeline and index if missing. Returns True if the index was created."""
        config = self.config or Config()
        if config.embedding_model_id:
            try:
                self.client.ingest.get_pipeline(id=config.pipeline_name)
            except NotFoundError:
                self.client.ingest.put_pipeline(id=config.pipeline_name, body=pipeline_body(config))
                logger.info("Created ingest pipeline %s (model %s)", config.pipeline_name, config.embedding_model_id)
        else:
            logger.warning("No embedding model configured – neural queries will fail until one is set")

        if self.client.indices.exists(index=self.index_name):
            return False
        self.client.indices.create(index=self.index_name, body=index_body(config))
        logger.info("Created index %s", self.index_name)
        return True

    # ── Writes ───────────────────────────────────

    def upsert_segment(self, segment: Segment):
        try:
            self.client.index(index=self.index_name, id=segment.segment_id, body=segment.to_source())
        except OpenSearchException as e:
            logger.error("Error indexing segment %s: %s", segment.segment_id, e)
            raise IndexWriteError(f"upsert {segment.segment_id} failed: {e}") from e

    def delete_document(self, document_id: str) -> int:
        """Delete every segment of a document. Returns the number removed."""
        try:
            response = self.client.delete_by_query(
                index=self.index_name,
                body={"query": {"term": {"documentId": document_id}}},
                conflicts="proceed",
            )
        except NotFoundError:
            return 0
        except OpenSearchException as e:
            raise IndexWriteError(f"delete {document_id} failed: {e}") from e
        deleted = int(response.get("deleted", 0))
        if deleted:
            logger.debug("Deleted %d segment(s) of %s", deleted, document_id)
        return deleted

    def delete_segments(self, segment_ids: list[str]) -> int:
        """Delete segments by id. Unlike delete_document this also removes
        segments that have not been refreshed yet."""
        deleted = 0
        for segment_id in segment_ids:
            try:
                self.client.delete(index=self.index_name, id=segment_id)
            except NotFoundError:
                continue
            except OpenSearchException as e:
                raise IndexWriteError(f"delete {segment_id} failed: {e}") from e
            deleted += 1
        return deleted

    # ── Reads ────────────────────────────────────

    def get_content_id(self, document_id: str) -> str:
        try:
            response = self.client.search(
                index=self.index_name,
                body={
                    "query": {"term": {"documentId": document_id}},
                    "_source": ["contentId"],
                    "size": 1,
                },
            )
        except NotFoundError:
            return ""
        except OpenSearchException as e:
            logger.debug("Error getting contentId for %s: %s", document_id, e)
            return ""
        hits = response.get("hits", {}).get("hits", [])
        if not hits:
            return ""
        return str(hits[0].get("_source", {}).get("contentId", ""))

    def health_check(self) -> bool:
        try:
            response = self.client.cluster.health(index=self.index_name)
        except OpenSearchException as e:
            logger.error("Error verifying index status: %s", e)
            return False
        return response.get("status") in HEALTHY_STATUSES
