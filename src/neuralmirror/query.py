# neuralmirror – Permission-aware neural search mirror for content repositories
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
OpenSearch query bodies for the three search modes:

- "keyword": match on the segment text (BM25)
- "neural":  k-NN over the passage embedding, query embedded server-side
- "hybrid":  bool/should over neural + keyword

with_acl() wraps any of them in bool/must + a terms filter on aclReaders.
Unknown modes fall back to neural.
"""
import copy
import logging
from enum import Enum
from typing import Iterable, Optional

logger = logging.getLogger(__name__)


class SearchMode(Enum):
    KEYWORD = "keyword"
    NEURAL = "neural"
    HYBRID = "hybrid"

    @classmethod
    def parse(cls, value: Optional[str]) -> "SearchMode":
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            logger.debug("Unknown search mode %r, using neural", value)
            return cls.NEURAL


class QueryBuilder:
    def __init__(
        self,
        size: int = 20,
        neural_k: int = 20,
        hybrid_neural_k: int = 10,
        text_field: str = "text",
        embedding_field: str = "passage_embedding",
        readers_field: str = "aclReaders",
        model_id: Optional[str] = None,
    ):
        self.size = size
        self.neural_k = neural_k
        self.hybrid_neural_k = hybrid_neural_k
        self.text_field = text_field
        self.embedding_field = embedding_field
        self.readers_field = readers_field
        self.model_id = model_id

    def keyword(self, query: str) -> dict:
        return {"match": {self.text_field: {"query": query}}}

    def neural(self, query: str, k: Optional[int] = None) -> dict:
        params: dict = {"query_text": query, "k": k or self.neural_k}
        if self.model_id:
            params["model_id"] = self.model_id
        return {"neural": {self.embedding_field: params}}

    def hybrid(self, query: str) -> dict:
        return {
            "bool": {
                "should": [
                    self.neural(query, self.hybrid_neural_k),
                    self.keyword(query),
                ],
            },
        }

    def build(self, query: str, mode: SearchMode | str) -> dict:
        if not isinstance(mode, SearchMode):
            mode = SearchMode.parse(mode)
        if mode is SearchMode.KEYWORD:
            inner = self.keyword(query)
        elif mode is SearchMode.HYBRID:
            inner = self.hybrid(query)
        else:
            inner = self.neural(query)
        return {"query": inner, "size": self.size}

    def with_acl(self, body: dict, readers: Iterable[str], caller: str) -> dict:
        """Restrict a query body to segments readable by one of `readers`.

        An empty reader set narrows to the caller alone.
        """
        allowed = sorted(set(readers)) or [caller]
        wrapped = copy.deepcopy(body)
        wrapped["query"] = {
            "bool": {
                "must": [wrapped["query"]],
                "filter": [{"terms": {self.readers_field: allowed}}],
            },
        }
        return wrapped
