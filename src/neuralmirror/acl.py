# neuralmirror – Permission-aware neural search mirror for content repositories
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
Repository permissions -> index-time reader sets, and caller identity ->
query-time reader sets.

Both directions fail closed. A node whose permissions cannot be read only
gets the everyone authority (or nothing when granting everyone is off).
A caller whose groups cannot be read only matches documents that name
the caller directly.
"""
import logging
from typing import Iterable, Optional

from .errors import NeuralMirrorError, PermissionResolutionError
from .models import AclEntry, AclResolution
from .repository import AuthorityDirectory, PermissionSource

logger = logging.getLogger(__name__)

EVERYONE = "GROUP_EVERYONE"

READ_PERMISSIONS = frozenset({"Read", "Consumer", "Contributor", "Collaborator", "Coordinator"})


def is_read_permission(permission: str) -> bool:
    return permission in READ_PERMISSIONS


class AclResolver:
    def __init__(
        self,
        permissions: Optional[PermissionSource] = None,
        directory: Optional[AuthorityDirectory] = None,
        grant_everyone: bool = True,
        everyone_authority: str = EVERYONE,
        enabled: bool = True,
    ):
        self.permissions = permissions
        self.directory = directory
        self.grant_everyone = grant_everyone
        self.everyone_authority = everyone_authority
        self.enabled = enabled

    @property
    def _default_readers(self) -> frozenset[str]:
        return frozenset({self.everyone_authority}) if self.grant_everyone else frozenset()

    def fail_closed(self) -> AclResolution:
        return AclResolution(entries=[], readers=self._default_readers, resolved=False)

    # ── Index side ───────────────────────────────

    def resolve(self, node_id: str) -> AclResolution:
        if not self.enabled or self.permissions is None:
            return AclResolution(entries=[], readers=frozenset({self.everyone_authority}))
        try:
            return self._resolve(node_id)
        except PermissionResolutionError as e:
            logger.error("ACL for node %s unavailable, failing closed: %s", node_id, e)
            return self.fail_closed()

    def _resolve(self, node_id: str) -> AclResolution:
        try:
            listing = self.permissions.get_permissions(node_id)
        except NeuralMirrorError as e:
            raise PermissionResolutionError(f"fetch failed: {e}") from e

        try:
            return self.from_listing(listing)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise PermissionResolutionError(f"unparsable listing: {e}") from e

    def from_listing(self, listing: dict) -> AclResolution:
        """Permission listing {entries, owner, inherits} -> AclResolution."""
        entries: list[AclEntry] = []
        readers: set[str] = set()

        owner = listing.get("owner")
        if isinstance(owner, dict):
            owner = owner.get("id")
        if owner:
            readers.add(owner)

        for entry in listing.get("entries") or []:
            if not entry.get("allowPermissions"):
                continue
            authority = entry["authorityId"]
            permissions = entry.get("permissions")
            if permissions is None:
                permissions = [entry["name"]] if entry.get("name") else []
            for permission in permissions:
                entries.append(AclEntry(authority=authority, permission=permission))
                if is_read_permission(permission):
                    readers.add(authority)

        readers |= self._default_readers

        return AclResolution(
            entries=entries,
            readers=frozenset(readers),
            owner=owner or None,
            inherits=bool(listing.get("inherits", False)),
        )

    # ── Query side ───────────────────────────────

    def caller_readers(self, caller: str) -> frozenset[str]:
        if self.directory is None:
            return frozenset({caller})
        try:
            groups: Iterable[str] = self.directory.get_user_groups(caller)
        except NeuralMirrorError as e:
            logger.warning("Groups for %s unavailable, searching as caller only: %s", caller, e)
            return frozenset({caller})

        readers = {caller, *groups}
        if self.grant_everyone:
            readers.add(self.everyone_authority)
        return frozenset(readers)
