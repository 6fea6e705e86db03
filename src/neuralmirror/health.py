# neuralmirror – Permission-aware neural search mirror for content repositories
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
Centralized health/status tracker – shared across batch indexer,
scheduler, search gateway and web app.
Thread-safe, no external dependencies.
"""
import threading
from datetime import datetime, timezone
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import BatchResult

SEARCH_MODES = ("keyword", "neural", "hybrid")


class HealthTracker:
    def __init__(self):
        self._lock = threading.Lock()
        self._data = {
            "state": "idle",
            "cursor": None,

            "last_batch_at": None,
            "last_batch_ok": False,
            "last_batch_status": None,
            "last_batch_indexed": 0,
            "last_batch_deleted": 0,
            "last_batch_failed": 0,
            "last_batch_segments": 0,
            "last_batch_error": None,
            "last_batch_failures": [],
            "batches_total": 0,

            "index_healthy": None,
            "last_index_check_at": None,

            "started_at": datetime.now(timezone.utc).isoformat(),

            "searches_total": 0,
            "searches_hits": 0,
            "searches_misses": 0,
            "searches_by_mode": {mode: 0 for mode in SEARCH_MODES},
            "last_search_at": None,
        }

    def record_state(self, state: str):
        with self._lock:
            self._data["state"] = state

    def record_batch(self, result: "BatchResult"):
        # A skipped run (another one holds the lock) says nothing about health
        if result.status == "busy":
            return
        with self._lock:
            self._data["last_batch_at"] = datetime.now(timezone.utc).isoformat()
            self._data["last_batch_ok"] = result.ok
            self._data["last_batch_status"] = result.status
            self._data["last_batch_indexed"] = result.indexed
            self._data["last_batch_deleted"] = result.deleted
            self._data["last_batch_failed"] = result.failed
            self._data["last_batch_segments"] = result.segments_upserted
            self._data["last_batch_error"] = result.message if not result.ok else None
            self._data["last_batch_failures"] = list(result.failures)
            self._data["cursor"] = result.cursor_after
            self._data["batches_total"] += 1

    def record_index_health(self, ok: bool):
        with self._lock:
            self._data["index_healthy"] = ok
            self._data["last_index_check_at"] = datetime.now(timezone.utc).isoformat()

    def record_search(self, mode: str, hit: bool):
        with self._lock:
            self._data["searches_total"] += 1
            if hit:
                self._data["searches_hits"] += 1
            else:
                self._data["searches_misses"] += 1
            by_mode = self._data["searches_by_mode"]
            if mode in by_mode:
                by_mode[mode] += 1
            self._data["last_search_at"] = datetime.now(timezone.utc).isoformat()

    @property
    def status(self) -> dict:
        with self._lock:
            data = dict(self._data)
            data["searches_by_mode"] = dict(self._data["searches_by_mode"])
            return data

    @property
    def is_healthy(self) -> bool:
        with self._lock:
            return self._data["last_batch_ok"] and self._data["index_healthy"] is not False
