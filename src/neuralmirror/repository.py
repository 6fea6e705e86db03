# neuralmirror – Permission-aware neural search mirror for content repositories
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
Content repository boundary.

The batch loop and the ACL resolver only depend on the Protocols below.
RepositoryClient implements all of them against Alfresco:

  Solr API   (change feed, metadata, text content)
  Public API (node permissions, person groups)

Every call applies the configured timeout. Network errors, timeouts and
5xx responses surface as TransientUpstreamError, unparsable bodies as
MalformedResponseError, 4xx as UpstreamRequestError.
"""
import logging
from typing import Any, Iterable, Optional, Protocol

import httpx

from .config import Config
from .errors import MalformedResponseError, TransientUpstreamError, UpstreamRequestError
from .models import ChangeRecord, ChangeStatus

logger = logging.getLogger(__name__)

SEARCH_SECRET_HEADER = "X-Alfresco-Search-Secret"


class ChangeFeed(Protocol):
    def get_transactions(self, min_txn_id: int, max_results: int) -> tuple[list[int], int]: ...

    def get_change_records(self, from_txn_id: int, to_txn_id: int) -> list[dict]: ...

    def get_nodes_metadata(self, node_ids: Iterable[int]) -> list[dict]: ...


class ContentFetcher(Protocol):
    def get_text_content(self, node_id: int) -> str: ...


class PermissionSource(Protocol):
    def get_permissions(self, node_uuid: str) -> dict: ...


class AuthorityDirectory(Protocol):
    def get_user_groups(self, person_id: str) -> list[str]: ...


def parse_change_record(raw: dict) -> ChangeRecord:
    """Solr API node entry -> ChangeRecord. Raises UnknownStatusError."""
    status = ChangeStatus.parse(raw.get("status"))
    try:
        return ChangeRecord(
            sequence_id=int(raw["txnId"]),
            status=status,
            content_ref=raw.get("nodeRef", ""),
            node_id=int(raw["id"]),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise MalformedResponseError(f"Invalid change record {raw!r}: {e}") from e


class RepositoryClient:
    def __init__(self, config: Config, http: Optional[httpx.Client] = None):
        self.config = config
        headers = {"Accept": "application/json"}
        if config.repository_search_secret:
            headers[SEARCH_SECRET_HEADER] = config.repository_search_secret
        self._http = http or httpx.Client(
            base_url=config.repository_url,
            auth=(config.repository_username, config.repository_password),
            timeout=config.request_timeout,
            headers=headers,
        )

    def close(self):
        self._http.close()

    # ── Transport ────────────────────────────────

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = self._http.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise TransientUpstreamError(f"{method} {path} timed out") from e
        except httpx.HTTPError as e:
            raise TransientUpstreamError(f"{method} {path} failed: {e}") from e

        if response.status_code >= 500:
            raise TransientUpstreamError(f"{method} {path} -> {response.status_code}")
        if response.status_code >= 400:
            raise UpstreamRequestError(
                f"{method} {path} -> {response.status_code}", response.status_code,
            )
        return response

    def _json(self, method: str, path: str, **kwargs) -> Any:
        response = self._request(method, path, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise MalformedResponseError(f"{method} {path}: invalid JSON body") from e

    def _solr(self, endpoint: str) -> str:
        return f"{self.config.solr_api_path}/{endpoint}"

    def _public(self, endpoint: str) -> str:
        return f"{self.config.public_api_path}/{endpoint}"

    # ── Change feed ──────────────────────────────

    def get_transactions(self, min_txn_id: int, max_results: int) -> tuple[list[int], int]:
        """Returns (transaction ids, max transaction id known to the repository)."""
        body = self._json(
            "GET", self._solr("transactions"),
            params={"minTxnId": min_txn_id, "maxResults": max_results},
        )
        try:
            ids = [int(t["id"]) for t in body.get("transactions") or []]
            max_known = int(body.get("maxTxnId") or 0)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise MalformedResponseError(f"Invalid transactions payload: {e}") from e
        return ids, max_known

    def get_change_records(self, from_txn_id: int, to_txn_id: int) -> list[dict]:
        body = self._json(
            "POST", self._solr("nodes"),
            json={"fromTxnId": from_txn_id, "toTxnId": to_txn_id},
        )
        nodes = body.get("nodes") if isinstance(body, dict) else None
        if not isinstance(nodes, list):
            raise MalformedResponseError("nodes payload has no 'nodes' list")
        return nodes

    def get_nodes_metadata(self, node_ids: Iterable[int]) -> list[dict]:
        ids = list(node_ids)
        if not ids:
            return []
        body = self._json(
            "POST", self._solr("metadata"),
            json={
                "nodeIds": ids,
                "includeAclId": False,
                "includeOwner": False,
                "includePaths": False,
                "includeParentAssociations": False,
                "includeChildIds": False,
                "includeChildAssociations": False,
            },
        )
        nodes = body.get("nodes") if isinstance(body, dict) else None
        if not isinstance(nodes, list):
            raise MalformedResponseError("metadata payload has no 'nodes' list")
        return nodes

    # ── Content ──────────────────────────────────

    def get_text_content(self, node_id: int) -> str:
        response = self._request("GET", self._solr("textContent"), params={"nodeId": node_id})
        if response.status_code == 204:
            return ""
        return response.text

    # ── Permissions / authorities ────────────────

    def get_permissions(self, node_uuid: str) -> dict:
        body = self._json("GET", self._public(f"nodes/{node_uuid}/permissions"))
        entry = body.get("entry") if isinstance(body, dict) else None
        if not isinstance(entry, dict):
            raise MalformedResponseError(f"permissions payload for {node_uuid} has no entry")
        return entry

    def get_user_groups(self, person_id: str) -> list[str]:
        body = self._json("GET", self._public(f"people/{person_id}/groups"))
        try:
            entries = body["list"]["entries"]
            return [e["entry"]["id"] for e in entries]
        except (KeyError, TypeError) as e:
            raise MalformedResponseError(f"groups payload for {person_id}: {e}") from e
