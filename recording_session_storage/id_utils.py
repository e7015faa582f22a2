"""ID generation and window utilities for recording storage.

Centralizes the chunk key format so callers never need to
construct chunk IDs directly.

Chunk IDs: {session_id}_{subject_id}_{chunk_index}

Underscores and percent signs inside the session and subject parts are
percent-escaped, so ("a_b", "c") and ("a", "b_c") never share a key.
Chunk indexes are 0-based and match the segment window index.
"""

from __future__ import annotations


def _escape(part: str) -> str:
    return part.replace("%", "%25").replace("_", "%5F")


def chunk_id(session_id: str, subject_id: str, chunk_index: int) -> str:
    """Generate the deterministic chunk ID for a segment."""
    return f"{_escape(session_id)}_{_escape(subject_id)}_{chunk_index}"


def window_index(offset_ms: int, chunk_duration_ms: int) -> int:
    """Return the index of the segment window containing ``offset_ms``."""
    return offset_ms // chunk_duration_ms


def window_bounds(chunk_index: int, chunk_duration_ms: int) -> tuple[int, int]:
    """Return the half-open ``[start, end)`` window for a chunk index, in ms."""
    return chunk_index * chunk_duration_ms, (chunk_index + 1) * chunk_duration_ms
