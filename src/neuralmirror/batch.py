# neuralmirror – Permission-aware neural search mirror for content repositories
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
Transaction-driven catch-up indexing.

One run:
  IDLE -> FETCHING_CHANGES -> CLASSIFYING_BATCH -> PROCESSING_NODE*
       -> COMMITTING_CURSOR -> IDLE

- Transactions are read from cursor + 1, bounded by batch_max_results.
- Every change record is classified before anything is written. A bad
  status, a bad node reference or an unparsable feed aborts the batch
  and leaves the cursor where it was (the batch is retried next tick).
- Nodes are processed independently. A node that fails (fetch timeout,
  index write error) is logged, rolled back and queued for the next run.
- The cursor moves to the batch's max transaction id once every record
  has been classified and processed.
"""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .acl import AclResolver
from .config import Config
from .cursor import CursorStore
from .errors import IndexWriteError, MalformedResponseError, NeuralMirrorError
from .health import HealthTracker
from .indexer import DocumentIndexer
from .models import BatchResult, ChangeRecord, ChangeStatus, ContentNode, Segment
from .repository import ChangeFeed, ContentFetcher, parse_change_record
from .segmenter import segment

logger = logging.getLogger(__name__)

MAX_SEGMENT_WORKERS = 16


class BatchState(Enum):
    IDLE = "idle"
    FETCHING_CHANGES = "fetching_changes"
    CLASSIFYING_BATCH = "classifying_batch"
    PROCESSING_NODE = "processing_node"
    COMMITTING_CURSOR = "committing_cursor"


@dataclass
class _Work:
    record: Optional[ChangeRecord]
    node: Optional[ContentNode] = None
    document_id: str = ""


class BatchIndexer:
    def __init__(
        self,
        config: Config,
        feed: ChangeFeed,
        content: ContentFetcher,
        acl: AclResolver,
        indexer: DocumentIndexer,
        cursor: CursorStore,
        index_lock: Optional["threading.Lock"] = None,
        health: HealthTracker | None = None,
    ):
        self.config = config
        self.feed = feed
        self.content = content
        self.acl = acl
        self.indexer = indexer
        self.cursor = cursor
        self.index_lock = index_lock or threading.Lock()
        self.health = health
        self._state = BatchState.IDLE
        # Failed in an earlier run, retried on the next one (in-memory only)
        self._retry_nodes: set[int] = set()
        self._retry_deletes: set[str] = set()
        # Indexed with fail-closed readers; re-indexed until the ACL resolves
        self._stale_acl: set[int] = set()

    @property
    def state(self) -> BatchState:
        return self._state

    @property
    def pending_retries(self) -> int:
        return len(self._retry_nodes) + len(self._retry_deletes)

    def _set_state(self, state: BatchState):
        self._state = state
        if self.health:
            self.health.record_state(state.value)

    # ── Entry point ──────────────────────────────

    def run_once(self) -> BatchResult:
        if not self.index_lock.acquire(blocking=False):
            logger.info("Indexing run already in progress, skipping")
            return BatchResult(status="busy")
        try:
            result = self._run()
        finally:
            self._set_state(BatchState.IDLE)
            self.index_lock.release()

        if self.health:
            self.health.record_batch(result)
        return result

    def _run(self) -> BatchResult:
        self._set_state(BatchState.FETCHING_CHANGES)
        result = BatchResult()
        try:
            cursor = self.cursor.read()
            result.cursor_before = result.cursor_after = cursor
            txn_ids, max_known = self.feed.get_transactions(cursor + 1, self.config.batch_max_results)
        except NeuralMirrorError as e:
            return self._abort(result, e)

        if not txn_ids:
            logger.info(
                "Fully caught up: max transaction in repository is %d, cursor is %d",
                max_known, cursor,
            )
            result.status = "caught_up"
            if self.pending_retries:
                self._retry_only(result)
            return result

        result.transactions = len(txn_ids)
        min_txn, max_txn = min(txn_ids), max(txn_ids)
        logger.info("Indexing content for transactions between %d and %d", min_txn, max_txn)

        self._set_state(BatchState.CLASSIFYING_BATCH)
        try:
            work = self._classify(min_txn, max_txn)
        except NeuralMirrorError as e:
            return self._abort(result, e)

        self._set_state(BatchState.PROCESSING_NODE)
        for item in work:
            self._process(item, result)

        self._set_state(BatchState.COMMITTING_CURSOR)
        if max_txn > cursor:
            try:
                moved = self.cursor.compare_and_set(cursor, max_txn)
            except NeuralMirrorError as e:
                return self._abort(result, e)
            if not moved:
                logger.warning("Cursor changed concurrently (expected %d), not advancing to %d", cursor, max_txn)
                result.status = "conflict"
                return result
            result.cursor_after = max_txn

        logger.info(
            "Batch %d..%d done: %d indexed, %d deleted, %d unchanged, %d skipped, %d failed "
            "(%d segments), cursor -> %d",
            min_txn, max_txn, result.indexed, result.deleted, result.unchanged,
            result.skipped, result.failed, result.segments_upserted, result.cursor_after,
        )
        return result

    def _abort(self, result: BatchResult, error: Exception) -> BatchResult:
        logger.error("Batch aborted, cursor stays at %d: %s", result.cursor_before, error)
        result.status = "error"
        result.message = str(error)
        result.cursor_after = result.cursor_before
        return result

    # ── Classification ───────────────────────────

    def _classify(self, min_txn: int, max_txn: int) -> list[_Work]:
        records = sorted(
            (parse_change_record(raw) for raw in self.feed.get_change_records(min_txn, max_txn)),
            key=lambda r: r.sequence_id,
        )

        work: list[_Work] = []
        updated_ids: list[int] = []
        for record in records:
            if record.status is ChangeStatus.DELETED:
                work.append(_Work(record=record, document_id=record.document_id))
            else:
                updated_ids.append(record.node_id)
                work.append(_Work(record=record))

        nodes = self._fetch_nodes(updated_ids + sorted(self._retry_nodes - set(updated_ids)))

        for item in work:
            if item.record.status is not ChangeStatus.DELETED:
                item.node = nodes.pop(item.record.node_id, None)
        # Leftovers are retries of earlier failures
        work.extend(_Work(record=None, node=node) for node in nodes.values())
        work.extend(
            _Work(record=None, document_id=doc_id)
            for doc_id in sorted(self._retry_deletes)
        )
        self._retry_nodes.clear()
        self._retry_deletes.clear()
        return work

    def _fetch_nodes(self, node_ids: list[int]) -> dict[int, ContentNode]:
        if not node_ids:
            return {}
        nodes: dict[int, ContentNode] = {}
        for raw in self.feed.get_nodes_metadata(node_ids):
            try:
                node = ContentNode.from_metadata(raw)
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                raise MalformedResponseError(f"Invalid node metadata {raw!r}: {e}") from e
            nodes[node.node_id] = node
        return nodes

    def _retry_only(self, result: BatchResult):
        logger.info("Retrying %d node(s) that failed in earlier runs", self.pending_retries)
        deletes = sorted(self._retry_deletes)
        node_ids = sorted(self._retry_nodes)
        self._retry_deletes.clear()
        self._retry_nodes.clear()
        try:
            nodes = self._fetch_nodes(node_ids)
        except NeuralMirrorError as e:
            logger.error("Retry pass failed: %s", e)
            self._retry_nodes.update(node_ids)
            self._retry_deletes.update(deletes)
            return
        self._set_state(BatchState.PROCESSING_NODE)
        for doc_id in deletes:
            self._process(_Work(record=None, document_id=doc_id), result)
        for node in nodes.values():
            self._process(_Work(record=None, node=node), result)

    # ── Processing ───────────────────────────────

    def _process(self, item: _Work, result: BatchResult):
        if item.document_id and item.node is None:
            try:
                self.indexer.delete_document(item.document_id)
                if item.record is not None:
                    self._stale_acl.discard(item.record.node_id)
                result.deleted += 1
                logger.debug("Deleted document %s", item.document_id)
            except NeuralMirrorError as e:
                self._retry_deletes.add(item.document_id)
                self._record_failure(result, item.document_id, e)
            return

        if item.node is None:
            # Node vanished between the change feed and the metadata call
            result.skipped += 1
            return

        try:
            self._process_node(item.node, result)
        except NeuralMirrorError as e:
            self._retry_nodes.add(item.node.node_id)
            self._record_failure(result, item.node.content_reference, e)

    def _record_failure(self, result: BatchResult, ref: str, error: Exception):
        logger.error("Error processing %s: %s", ref, error)
        result.failed += 1
        result.failures.append({"node": ref, "error": str(error)})

    def _process_node(self, node: ContentNode, result: BatchResult):
        if node.type_name not in self.config.indexable_type_set:
            logger.debug("Skipping non-indexable type %s", node.type_name)
            result.skipped += 1
            return
        if not node.in_primary_store:
            logger.debug("Skipping node %s in store %s", node.node_id, node.store_identifier)
            result.skipped += 1
            return

        uuid = node.document_id
        content_id = node.content_id
        stale_acl = node.node_id in self._stale_acl
        if not stale_acl and content_id == self.indexer.get_content_id(uuid):
            logger.debug("Un-indexed: contentId for node %s has not changed (%s)", uuid, content_id)
            result.unchanged += 1
            return

        acl = self.acl.resolve(uuid)
        text = self.content.get_text_content(node.node_id)

        self.indexer.delete_document(uuid)

        pieces = segment(text, self.config.segment_max_chars)
        entries = tuple(acl.entries)
        segments = [
            Segment(
                document_id=uuid,
                segment_index=i,
                dbid=node.node_id,
                content_id=content_id,
                name=node.name,
                text=piece,
                acl_readers=acl.readers,
                acl_entries=entries,
                node_ref=node.content_reference,
            )
            for i, piece in enumerate(pieces)
        ]
        logger.debug("Indexing %d segment(s) for %s (%s, %s)", len(segments), uuid, content_id, node.name)

        failures = self._upsert_all(segments)
        if failures:
            # By id: segments written a moment ago are not yet visible to queries
            try:
                self.indexer.delete_segments([s.segment_id for s in segments])
            except IndexWriteError as e:
                logger.error("Rollback of %s failed: %s", uuid, e)
            raise IndexWriteError(
                f"{len(failures)}/{len(segments)} segment(s) of {uuid} failed: {failures[0]}"
            )

        if acl.resolved:
            self._stale_acl.discard(node.node_id)
        else:
            logger.warning("Node %s indexed with fail-closed readers, retrying its ACL next run", uuid)
            self._stale_acl.add(node.node_id)
            self._retry_nodes.add(node.node_id)

        result.indexed += 1
        result.segments_upserted += len(segments)

    def _upsert_all(self, segments: list[Segment]) -> list[str]:
        """Write all segments concurrently; return error messages of the ones that failed."""
        if not segments:
            return []
        failures: list[str] = []
        workers = min(len(segments), MAX_SEGMENT_WORKERS)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="segment") as pool:
            futures = {pool.submit(self.indexer.upsert_segment, s): s for s in segments}
            for future in as_completed(futures):
                try:
                    future.result()
                except NeuralMirrorError as e:
                    failures.append(f"{futures[future].segment_id}: {e}")
        return failures
