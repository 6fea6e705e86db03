# neuralmirror – Permission-aware neural search mirror for content repositories
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
Unified entry point: python -m neuralmirror

Runs the index scheduler and the search web app in a single process with
shared state. Scheduler in a background thread, web app in the main thread.
"""
import logging
import sys
import threading

import uvicorn

from .acl import AclResolver
from .batch import BatchIndexer
from .config import Config
from .cursor import CursorStore, IndexCursorStore, JsonCursorStore
from .health import HealthTracker
from .indexer import DocumentIndexer, create_client
from .query import QueryBuilder
from .repository import RepositoryClient
from .scheduler import IndexScheduler
from .search import SearchGateway
from .web import create_web_app

logger = logging.getLogger("neuralmirror")


def build_cursor_store(config: Config, client) -> CursorStore:
    if config.cursor_backend == "file":
        return JsonCursorStore(config.cursor_path)
    if not client.indices.exists(index=config.control_index_name):
        client.indices.create(index=config.control_index_name)
    return IndexCursorStore(client, config.control_index_name)


def main():
    config = Config.load()

    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    index_lock = threading.Lock()
    health = HealthTracker()

    client = create_client(config)
    repository = RepositoryClient(config)
    indexer = DocumentIndexer(client, config.index_name, config)
    acl = AclResolver(
        permissions=repository,
        directory=repository,
        grant_everyone=config.acl_grant_everyone,
        everyone_authority=config.acl_everyone_authority,
        enabled=config.acl_enabled,
    )

    logger.info("Preparing index %s on %s ...", config.index_name, config.opensearch_url)
    indexer.ensure_index()
    cursor = build_cursor_store(config, client)

    batch = BatchIndexer(
        config, repository, repository, acl, indexer, cursor,
        index_lock=index_lock, health=health,
    )
    scheduler = IndexScheduler(config, batch, indexer, health)
    scheduler.start()

    builder = QueryBuilder(
        size=config.search_size,
        neural_k=config.neural_k,
        hybrid_neural_k=config.hybrid_neural_k,
        model_id=config.embedding_model_id or None,
    )
    gateway = SearchGateway(client, config.index_name, builder, acl, health)
    web_app = create_web_app(config, gateway, indexer, health)

    logger.info("Search API on http://%s:%d", config.web_host, config.web_port)
    try:
        uvicorn.run(web_app, host=config.web_host, port=config.web_port, log_level="warning")
    finally:
        scheduler.stop(timeout=5)
        repository.close()


if __name__ == "__main__":
    main()
