"""
Chunk storage backends.

``ChunkStore`` is the abstract interface; ``SQLiteChunkStore`` is the
durable implementation backed by aiosqlite.
"""

from .base import ChunkStore
from .sqlite import SQLiteChunkStore, close_shared_stores, open_shared_store

__all__ = [
    "ChunkStore",
    "SQLiteChunkStore",
    "open_shared_store",
    "close_shared_stores",
]
