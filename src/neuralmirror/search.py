# neuralmirror – Permission-aware neural search mirror for content repositories
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
Read path: caller -> reader set -> ACL-filtered query -> results.

Each hit is one segment. Its id "<uuid>_<i>" is reported as "<uuid>", so
several hits may share a uuid; callers aggregate if they need to.
"""
import logging
import re
from typing import Optional

from opensearchpy import OpenSearch
from opensearchpy.exceptions import OpenSearchException

from .acl import AclResolver
from .errors import TransientUpstreamError
from .health import HealthTracker
from .models import SearchResult
from .query import QueryBuilder, SearchMode

logger = logging.getLogger(__name__)

_SEGMENT_SUFFIX = re.compile(r"_\d+$")


def strip_segment_suffix(segment_id: str) -> str:
    return _SEGMENT_SUFFIX.sub("", segment_id)


def hit_to_result(hit: dict) -> SearchResult:
    source = hit.get("_source") or {}
    return SearchResult(
        uuid=strip_segment_suffix(str(source.get("id", hit.get("_id", "")))),
        name=source.get("name", ""),
        text=source.get("text", ""),
        node_ref=source.get("nodeRef", ""),
    )


class SearchGateway:
    def __init__(
        self,
        client: OpenSearch,
        index_name: str,
        builder: QueryBuilder,
        acl: AclResolver,
        health: Optional[HealthTracker] = None,
    ):
        self.client = client
        self.index_name = index_name
        self.builder = builder
        self.acl = acl
        self.health = health

    def build_query(self, query: str, mode: SearchMode | str, caller: str) -> dict:
        readers = self.acl.caller_readers(caller)
        body = self.builder.build(query, mode)
        return self.builder.with_acl(body, readers, caller)

    def search(self, query: str, mode: SearchMode | str, caller: str) -> list[SearchResult]:
        search_mode = mode if isinstance(mode, SearchMode) else SearchMode.parse(mode)
        body = self.build_query(query, search_mode, caller)
        logger.debug("Performing %s search for %s: %r", search_mode.value, caller, query)
        try:
            response = self.client.search(index=self.index_name, body=body)
        except OpenSearchException as e:
            logger.error("Error performing search: %s", e)
            raise TransientUpstreamError(f"search failed: {e}") from e

        hits = response.get("hits", {}).get("hits", [])
        results = [hit_to_result(hit) for hit in hits]
        logger.debug("Found %d result(s) for %s", len(results), caller)
        if self.health:
            self.health.record_search(search_mode.value, bool(results))
        return results
