# neuralmirror – Permission-aware neural search mirror for content repositories
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
Index scheduler – periodic catch-up indexing.
Runs as a background daemon thread.

Each tick checks index health, then runs one batch to completion. Ticks
are sequential, and the batch indexer's lock keeps manual runs from
overlapping with them.
"""
import logging
import threading

from .batch import BatchIndexer
from .config import Config
from .health import HealthTracker
from .indexer import DocumentIndexer

logger = logging.getLogger(__name__)


class IndexScheduler:
    def __init__(
        self,
        config: Config,
        batch: BatchIndexer,
        indexer: DocumentIndexer,
        health: HealthTracker | None = None,
    ):
        self.config = config
        self.batch = batch
        self.indexer = indexer
        self.health = health
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        if not self.config.indexer_enabled:
            logger.info("Batch indexer disabled, scheduler not started")
            return

        if self.config.index_interval <= 0:
            logger.info("Index interval = 0, scheduler disabled")
            return

        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, daemon=True, name="index-scheduler")
        self._thread.start()
        logger.info("Index scheduler started (every %ss)", self.config.index_interval)

    def stop(self, timeout: float | None = None):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)

    def tick(self):
        healthy = self.indexer.health_check()
        if self.health:
            self.health.record_index_health(healthy)
        if not healthy:
            logger.info("Index is not healthy, waiting for next tick")
            return None
        return self.batch.run_once()

    def _loop(self):
        while not self._stop.wait(self.config.index_interval):
            try:
                self.tick()
            except Exception:
                logger.exception("Error during indexing")
