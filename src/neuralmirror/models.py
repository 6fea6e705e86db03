# neuralmirror – Permission-aware neural search mirror for content repositories
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
Batch-scoped values: change records, content nodes, segments, ACL entries
and search results. None of these outlive the call that creates them.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from .errors import MalformedReferenceError, UnknownStatusError

# Alfresco content model
CM_NAME = "{http://www.alfresco.org/model/content/1.0}name"
CM_CONTENT = "{http://www.alfresco.org/model/content/1.0}content"
SYS_STORE_IDENTIFIER = "{http://www.alfresco.org/model/system/1.0}store-identifier"
SPACES_STORE = "SpacesStore"


def node_uuid(node_ref: str) -> str:
    """workspace://SpacesStore/<uuid> -> <uuid>"""
    if not isinstance(node_ref, str):
        raise MalformedReferenceError(repr(node_ref))
    index = node_ref.rfind("/")
    if index == -1 or index == len(node_ref) - 1:
        raise MalformedReferenceError(node_ref)
    return node_ref[index + 1:]


class ChangeStatus(Enum):
    CREATED = "c"
    UPDATED = "u"
    DELETED = "d"

    @classmethod
    def parse(cls, code: Any) -> "ChangeStatus":
        try:
            return cls(code)
        except ValueError:
            raise UnknownStatusError(str(code)) from None


@dataclass(frozen=True)
class ChangeRecord:
    sequence_id: int
    status: ChangeStatus
    content_ref: str
    node_id: int = 0

    @property
    def document_id(self) -> str:
        return node_uuid(self.content_ref)


@dataclass
class ContentNode:
    node_id: int
    store_identifier: str
    type_name: str
    properties: dict[str, Any]
    content_reference: str

    @classmethod
    def from_metadata(cls, raw: dict) -> "ContentNode":
        properties = raw.get("properties") or {}
        node_ref = raw.get("nodeRef", "")
        # Validates the reference up front so classification fails fast
        node_uuid(node_ref)
        return cls(
            node_id=int(raw["id"]),
            store_identifier=str(properties.get(SYS_STORE_IDENTIFIER, "")),
            type_name=raw.get("type", ""),
            properties=properties,
            content_reference=node_ref,
        )

    @property
    def document_id(self) -> str:
        return node_uuid(self.content_reference)

    @property
    def name(self) -> str:
        return str(self.properties.get(CM_NAME, "Unnamed"))

    @property
    def content_id(self) -> str:
        content = self.properties.get(CM_CONTENT)
        if isinstance(content, dict):
            return str(content.get("contentId", ""))
        return "" if content is None else str(content)

    @property
    def in_primary_store(self) -> bool:
        return self.store_identifier == SPACES_STORE


@dataclass(frozen=True)
class AclEntry:
    authority: str
    permission: str

    def to_dict(self) -> dict:
        return {"authority": self.authority, "permission": self.permission}


@dataclass
class AclResolution:
    entries: list[AclEntry] = field(default_factory=list)
    readers: frozenset[str] = frozenset()
    owner: Optional[str] = None
    inherits: bool = False
    resolved: bool = True


@dataclass
class Segment:
    document_id: str
    segment_index: int
    dbid: int
    content_id: str
    name: str
    text: str
    acl_readers: frozenset[str] = frozenset()
    acl_entries: tuple[AclEntry, ...] = ()
    node_ref: str = ""

    @property
    def segment_id(self) -> str:
        return f"{self.document_id}_{self.segment_index}"

    def to_source(self) -> dict:
        return {
            "id": self.segment_id,
            "documentId": self.document_id,
            "segmentIndex": self.segment_index,
            "dbid": self.dbid,
            "contentId": self.content_id,
            "name": self.name,
            "text": self.text,
            "nodeRef": self.node_ref,
            "aclReaders": sorted(self.acl_readers),
            "acl": [e.to_dict() for e in self.acl_entries],
        }


@dataclass
class SearchResult:
    uuid: str
    name: str
    text: str
    node_ref: str = ""

    def to_dict(self) -> dict:
        return {"uuid": self.uuid, "name": self.name, "text": self.text, "nodeRef": self.node_ref}


@dataclass
class BatchResult:
    status: str = "success"
    cursor_before: int = 0
    cursor_after: int = 0
    transactions: int = 0
    indexed: int = 0
    deleted: int = 0
    skipped: int = 0
    unchanged: int = 0
    failed: int = 0
    segments_upserted: int = 0
    failures: list[dict] = field(default_factory=list)
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status in ("success", "caught_up")

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "cursor_before": self.cursor_before,
            "cursor_after": self.cursor_after,
            "transactions": self.transactions,
            "indexed": self.indexed,
            "deleted": self.deleted,
            "skipped": self.skipped,
            "unchanged": self.unchanged,
            "failed": self.failed,
            "segments_upserted": self.segments_upserted,
            "failures": list(self.failures),
            "message": self.message,
        }
