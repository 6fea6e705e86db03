# neuralmirror – Permission-aware neural search mirror for content repositories
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
Error taxonomy shared by the repository client, indexer and batch loop.

Batch-aborting:   MalformedReferenceError, UnknownStatusError,
                  MalformedResponseError (feed / metadata calls)
Node-local:       IndexWriteError, PermissionResolutionError,
                  TransientUpstreamError (content / permission fetch)
"""


class NeuralMirrorError(Exception):
    """Base class for all neuralmirror errors."""


class TransientUpstreamError(NeuralMirrorError):
    """Network error, timeout or 5xx from the repository or the index."""


class MalformedResponseError(NeuralMirrorError):
    """An upstream payload could not be parsed."""


class MalformedReferenceError(NeuralMirrorError):
    def __init__(self, reference: str):
        super().__init__(f"Invalid node reference: {reference!r}")
        self.reference = reference


class UnknownStatusError(NeuralMirrorError):
    def __init__(self, status: str):
        super().__init__(f"Unknown status: {status!r}")
        self.status = status


class PermissionResolutionError(NeuralMirrorError):
    """Permission listing for a node could not be fetched or parsed."""


class IndexWriteError(NeuralMirrorError):
    """A segment upsert or document delete failed."""


class UpstreamRequestError(NeuralMirrorError):
    """The repository rejected a request (4xx)."""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code
