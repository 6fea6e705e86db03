# neuralmirror – Permission-aware neural search mirror for content repositories
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
Cursor = highest transaction id fully committed to the index.

It is the only durable progress marker. The batch loop reads it at the
start of a run and moves it with compare_and_set() at the end; stores
refuse to move it backwards.
"""
import json
import logging
import threading
from pathlib import Path
from typing import Protocol

from opensearchpy import OpenSearch
from opensearchpy.exceptions import ConflictError, NotFoundError, OpenSearchException

from .errors import TransientUpstreamError

logger = logging.getLogger(__name__)

CURSOR_DOC_ID = "cursor"


class CursorStore(Protocol):
    def read(self) -> int: ...

    def compare_and_set(self, expected: int, new: int) -> bool: ...


class JsonCursorStore:
    """Cursor persisted as a small JSON file next to the other state."""

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _load(self) -> int:
        try:
            return int(json.loads(self.path.read_text())["cursor"])
        except FileNotFoundError:
            return 0
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Cursor file %s unreadable, starting from 0: %s", self.path, e)
            return 0

    def read(self) -> int:
        with self._lock:
            return self._load()

    def compare_and_set(self, expected: int, new: int) -> bool:
        with self._lock:
            current = self._load()
            if current != expected or new < current:
                return False
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp.write_text(json.dumps({"cursor": new}))
            tmp.replace(self.path)
            return True


class IndexCursorStore:
    """Cursor kept as a document in a control index.

    compare_and_set() uses optimistic concurrency (if_seq_no /
    if_primary_term), so two writers never both succeed.
    """

    def __init__(self, client: OpenSearch, index_name: str):
        self.client = client
        self.index_name = index_name

    def _get(self) -> tuple[int, dict]:
        try:
            doc = self.client.get(index=self.index_name, id=CURSOR_DOC_ID)
        except NotFoundError:
            return 0, {}
        except OpenSearchException as e:
            raise TransientUpstreamError(f"cursor read failed: {e}") from e
        version = {"if_seq_no": doc["_seq_no"], "if_primary_term": doc["_primary_term"]}
        return int(doc["_source"].get("cursor", 0)), version

    def read(self) -> int:
        return self._get()[0]

    def compare_and_set(self, expected: int, new: int) -> bool:
        current, version = self._get()
        if current != expected or new < current:
            return False
        kwargs = version if version else {"op_type": "create"}
        try:
            self.client.index(
                index=self.index_name, id=CURSOR_DOC_ID,
                body={"cursor": new}, refresh=True, **kwargs,
            )
        except ConflictError:
            return False
        except OpenSearchException as e:
            raise TransientUpstreamError(f"cursor write failed: {e}") from e
        return True
