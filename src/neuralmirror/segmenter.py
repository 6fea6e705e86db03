# neuralmirror – Permission-aware neural search mirror for content repositories
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
Text -> ordered list of bounded-length segments.

The limit matches the passage length the embedding model handles. It is
advisory: a single token longer than the limit becomes its own segment.
"""
import re

MAX_SEGMENT_CHARS = 512

_ESCAPED_NEWLINES = re.compile(r"\\[nr]")
_NON_ASCII = re.compile(r"[^\x00-\x7f]+")


def normalize(text: str) -> str:
    """Replace literal \\n / \\r escapes and non-ASCII runs with spaces."""
    text = _ESCAPED_NEWLINES.sub(" ", text)
    return _NON_ASCII.sub(" ", text)


def segment(text: str, max_unit_size: int = MAX_SEGMENT_CHARS) -> list[str]:
    if max_unit_size < 1:
        raise ValueError(f"max_unit_size must be >= 1, got {max_unit_size}")
    if not text:
        return []

    segments: list[str] = []
    current: list[str] = []
    # Length of the current segment including one separator per token
    length = 0

    for token in normalize(text).split():
        if current and length + len(token) + 1 > max_unit_size:
            segments.append(" ".join(current))
            current = []
            length = 0
        current.append(token)
        length += len(token) + 1

    if current:
        segments.append(" ".join(current))

    return segments
