"""
SQLite chunk store.

Durable storage for recording chunks and session metadata using aiosqlite.
The connection is opened lazily by the first operation that needs it and
reused for the lifetime of the store.
"""

from __future__ import annotations

import asyncio
import json
import logging
import weakref
from pathlib import Path
from typing import Any

import aiosqlite

from ..config import MEMORY_DB, RecordingConfig
from ..exceptions import (
    ChunkNotFoundError,
    InvalidStateError,
    StorageConnectionError,
    StorageIOError,
)
from ..models import (
    ChunkRecord,
    ChunkStatus,
    RecordingEvent,
    SessionMetadata,
    utc_now_iso,
)
from .base import ChunkStore

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

# =============================================================================
# Column Definitions
# =============================================================================

# Chunk columns for listing reads (payload excluded)
CHUNK_READ_COLUMNS = (
    "chunk_id",
    "session_id",
    "subject_id",
    "chunk_index",
    "start_time",
    "end_time",
    "duration_ms",
    "size_bytes",
    "status",
    "uploaded_ref",
    "events",
    "saved_at",
    "updated_at",
)

_CHUNK_COLUMNS_SQL = ", ".join(CHUNK_READ_COLUMNS)

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS chunks (
    chunk_id TEXT NOT NULL PRIMARY KEY,
    session_id TEXT NOT NULL,
    subject_id TEXT NOT NULL,
    chunk_index INTEGER NOT NULL,
    start_time INTEGER,
    end_time INTEGER,
    duration_ms INTEGER,
    size_bytes INTEGER NOT NULL DEFAULT 0,
    status TEXT NOT NULL,
    uploaded_ref TEXT,
    events TEXT,
    payload BLOB,
    saved_at TEXT,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS sessions (
    session_id TEXT NOT NULL PRIMARY KEY,
    subject_id TEXT NOT NULL,
    start_time INTEGER,
    end_time INTEGER,
    status TEXT NOT NULL,
    events TEXT,
    total_chunks INTEGER DEFAULT 0,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS schema_meta (
    key TEXT PRIMARY KEY,
    value TEXT
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_chunks_key ON chunks (session_id, subject_id, chunk_index);
CREATE INDEX IF NOT EXISTS idx_chunks_session ON chunks (session_id, chunk_index);
CREATE INDEX IF NOT EXISTS idx_chunks_subject ON chunks (subject_id);
CREATE INDEX IF NOT EXISTS idx_chunks_status ON chunks (session_id, status);
CREATE INDEX IF NOT EXISTS idx_chunks_index ON chunks (chunk_index);
"""


class SQLiteChunkStore(ChunkStore):
    """
    SQLite-backed chunk store.

    Features:
    - Single file database (or ":memory:" for tests)
    - Chunk metadata and payload stored in one row, written in one statement
    - Secondary indexes by session, subject, status and chunk index
    - Per-chunk locks serialize read-modify-write status updates
    """

    def __init__(self, config: RecordingConfig | None = None):
        """
        Initialize SQLite store. No connection is opened until first use.

        Args:
            config: Recording configuration (only db_path is used here)
        """
        self.config = config or RecordingConfig()
        self.conn: aiosqlite.Connection | None = None
        self._initialized = False
        self._open_lock = asyncio.Lock()
        self._key_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    @classmethod
    async def create(cls, config: RecordingConfig | None = None) -> SQLiteChunkStore:
        """Create and eagerly initialize a SQLite store."""
        store = cls(config)
        await store.initialize()
        return store

    @property
    def db_path(self) -> str:
        return self.config.resolved_db_path

    async def initialize(self) -> None:
        """Open the SQLite connection and create the schema."""
        async with self._open_lock:
            if self._initialized:
                return

            try:
                if self.db_path != MEMORY_DB:
                    Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

                self.conn = await aiosqlite.connect(self.db_path)
                await self.conn.executescript(_CREATE_TABLES_SQL)

                schema_version = await self._get_schema_version()
                if schema_version < SCHEMA_VERSION:
                    await self._set_schema_version(SCHEMA_VERSION)

                await self.conn.commit()
                self._initialized = True
                logger.info(f"SQLite chunk store initialized: {self.db_path}")

            except Exception as e:
                if self.conn is not None:
                    await self.conn.close()
                    self.conn = None
                raise StorageConnectionError(self.db_path, e) from e

    async def close(self) -> None:
        """Close SQLite connection."""
        if self.conn:
            await self.conn.close()
            self.conn = None

        self._initialized = False

    async def _ensure_connection(self) -> aiosqlite.Connection:
        """Return the open connection, opening it on first use."""
        if not self._initialized or self.conn is None:
            await self.initialize()
        assert self.conn is not None
        return self.conn

    def _lock_for(self, chunk_id: str) -> asyncio.Lock:
        """Lock serializing writes to one chunk id."""
        lock = self._key_locks.get(chunk_id)
        if lock is None:
            lock = asyncio.Lock()
            self._key_locks[chunk_id] = lock
        return lock

    # =========================================================================
    # Schema Management
    # =========================================================================

    async def _get_schema_version(self) -> int:
        """Get the current schema version (0 for a fresh database)."""
        async with self.conn.execute(
            "SELECT value FROM schema_meta WHERE key = 'version'"
        ) as cursor:
            result = await cursor.fetchone()
            return int(result[0]) if result else 0

    async def _set_schema_version(self, version: int) -> None:
        """Set the schema version."""
        await self.conn.execute(
            """
            INSERT INTO schema_meta (key, value) VALUES ('version', ?)
            ON CONFLICT (key) DO UPDATE SET value = excluded.value
            """,
            (str(version),),
        )

    # =========================================================================
    # Chunk Operations
    # =========================================================================

    async def put(self, chunk: ChunkRecord) -> ChunkRecord:
        """Insert or replace a chunk record."""
        conn = await self._ensure_connection()

        chunk.size_bytes = len(chunk.payload)
        async with self._lock_for(chunk.chunk_id):
            try:
                await conn.execute(
                    f"""
                    INSERT INTO chunks ({_CHUNK_COLUMNS_SQL}, payload)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT (chunk_id) DO UPDATE SET
                        session_id = excluded.session_id,
                        subject_id = excluded.subject_id,
                        chunk_index = excluded.chunk_index,
                        start_time = excluded.start_time,
                        end_time = excluded.end_time,
                        duration_ms = excluded.duration_ms,
                        size_bytes = excluded.size_bytes,
                        status = excluded.status,
                        uploaded_ref = excluded.uploaded_ref,
                        events = excluded.events,
                        payload = excluded.payload,
                        saved_at = excluded.saved_at,
                        updated_at = excluded.updated_at
                    """,
                    (
                        chunk.chunk_id,
                        chunk.session_id,
                        chunk.subject_id,
                        chunk.chunk_index,
                        chunk.start_time,
                        chunk.end_time,
                        chunk.duration_ms,
                        chunk.size_bytes,
                        chunk.status.value,
                        chunk.uploaded_ref,
                        json.dumps([event.to_dict() for event in chunk.events]),
                        chunk.saved_at,
                        chunk.updated_at,
                        bytes(chunk.payload),
                    ),
                )
                await conn.commit()
            except aiosqlite.Error as e:
                raise StorageIOError("put_chunk", self.db_path, e) from e

        logger.debug(
            f"Saved chunk {chunk.chunk_id} ({chunk.size_bytes / 1024 / 1024:.2f} MB)"
        )
        return chunk

    async def get(self, chunk_id: str) -> ChunkRecord:
        """Get a chunk with its payload."""
        chunk = await self._fetch_one(chunk_id, include_payload=True)
        if chunk is None:
            raise ChunkNotFoundError(chunk_id)
        return chunk

    async def list_by_session(
        self,
        session_id: str,
        include_payload: bool = False,
    ) -> list[ChunkRecord]:
        """List a session's chunks ordered by chunk index."""
        conn = await self._ensure_connection()

        columns = _CHUNK_COLUMNS_SQL + (", payload" if include_payload else "")
        try:
            async with conn.execute(
                f"""
                SELECT {columns}
                FROM chunks
                WHERE session_id = ?
                ORDER BY chunk_index ASC
                """,
                (session_id,),
            ) as cursor:
                rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise StorageIOError("list_chunks", self.db_path, e) from e

        return [self._row_to_chunk(row) for row in rows]

    async def update_status(
        self,
        chunk_id: str,
        status: ChunkStatus,
        ref: str | None = None,
        strict: bool = False,
    ) -> ChunkRecord:
        """Change a chunk's status under the chunk's lock."""
        conn = await self._ensure_connection()

        async with self._lock_for(chunk_id):
            try:
                async with conn.execute(
                    "SELECT status FROM chunks WHERE chunk_id = ?", (chunk_id,)
                ) as cursor:
                    row = await cursor.fetchone()

                if row is None:
                    raise ChunkNotFoundError(chunk_id)

                current = ChunkStatus(row[0])
                if not current.can_transition(status, strict=strict):
                    raise InvalidStateError(
                        f"Chunk {chunk_id} cannot move from {current.value} to {status.value}",
                        state=current.value,
                    )

                await conn.execute(
                    """
                    UPDATE chunks
                    SET status = ?,
                        uploaded_ref = COALESCE(?, uploaded_ref),
                        updated_at = ?
                    WHERE chunk_id = ?
                    """,
                    (status.value, ref, utc_now_iso(), chunk_id),
                )
                await conn.commit()
            except aiosqlite.Error as e:
                raise StorageIOError("update_status", self.db_path, e) from e

            chunk = await self._fetch_one(chunk_id, include_payload=False)

        if chunk is None:
            raise ChunkNotFoundError(chunk_id)
        return chunk

    async def delete_all_by_session(self, session_id: str) -> int:
        """Delete every chunk of a session."""
        conn = await self._ensure_connection()

        try:
            async with conn.execute(
                "DELETE FROM chunks WHERE session_id = ?", (session_id,)
            ) as cursor:
                deleted = cursor.rowcount
            await conn.commit()
        except aiosqlite.Error as e:
            raise StorageIOError("delete_chunks", self.db_path, e) from e

        logger.info(f"Deleted {deleted} chunks for session {session_id}")
        return deleted

    async def delete_where(
        self,
        session_id: str,
        keep_status: ChunkStatus = ChunkStatus.UPLOADED,
    ) -> int:
        """Delete a session's chunks whose status is not ``keep_status``."""
        conn = await self._ensure_connection()

        try:
            async with conn.execute(
                "DELETE FROM chunks WHERE session_id = ? AND status != ?",
                (session_id, keep_status.value),
            ) as cursor:
                deleted = cursor.rowcount
            await conn.commit()
        except aiosqlite.Error as e:
            raise StorageIOError("delete_chunks", self.db_path, e) from e

        logger.info(
            f"Deleted {deleted} chunks not {keep_status.value} for session {session_id}"
        )
        return deleted

    async def count_by_session(self, session_id: str) -> dict[str, int]:
        """Count a session's chunks per status value."""
        conn = await self._ensure_connection()

        try:
            async with conn.execute(
                """
                SELECT status, COUNT(*)
                FROM chunks
                WHERE session_id = ?
                GROUP BY status
                """,
                (session_id,),
            ) as cursor:
                rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise StorageIOError("count_chunks", self.db_path, e) from e

        return {row[0]: row[1] for row in rows}

    async def _fetch_one(self, chunk_id: str, include_payload: bool) -> ChunkRecord | None:
        conn = await self._ensure_connection()

        columns = _CHUNK_COLUMNS_SQL + (", payload" if include_payload else "")
        try:
            async with conn.execute(
                f"SELECT {columns} FROM chunks WHERE chunk_id = ?", (chunk_id,)
            ) as cursor:
                row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise StorageIOError("get_chunk", self.db_path, e) from e

        return self._row_to_chunk(row) if row else None

    @staticmethod
    def _row_to_chunk(row: Any) -> ChunkRecord:
        """Build a ChunkRecord from a row in CHUNK_READ_COLUMNS order (+ payload)."""
        events = json.loads(row[10]) if row[10] else []
        payload = bytes(row[13]) if len(row) > 13 and row[13] is not None else b""
        return ChunkRecord(
            chunk_id=row[0],
            session_id=row[1],
            subject_id=row[2],
            chunk_index=row[3],
            start_time=row[4],
            end_time=row[5],
            duration_ms=row[6],
            size_bytes=row[7],
            status=ChunkStatus(row[8]),
            uploaded_ref=row[9],
            events=[RecordingEvent.from_dict(e) for e in events],
            saved_at=row[11],
            updated_at=row[12],
            payload=payload,
        )

    # =========================================================================
    # Session Metadata Operations
    # =========================================================================

    async def upsert_session_metadata(self, metadata: SessionMetadata) -> None:
        """Insert or replace a session's metadata record."""
        conn = await self._ensure_connection()

        metadata.updated_at = utc_now_iso()
        try:
            await conn.execute(
                """
                INSERT INTO sessions (
                    session_id, subject_id, start_time, end_time,
                    status, events, total_chunks, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (session_id) DO UPDATE SET
                    subject_id = excluded.subject_id,
                    start_time = excluded.start_time,
                    end_time = excluded.end_time,
                    status = excluded.status,
                    events = excluded.events,
                    total_chunks = excluded.total_chunks,
                    updated_at = excluded.updated_at
                """,
                (
                    metadata.session_id,
                    metadata.subject_id,
                    metadata.start_time,
                    metadata.end_time,
                    metadata.status.value,
                    json.dumps([event.to_dict() for event in metadata.events]),
                    metadata.total_chunks,
                    metadata.updated_at,
                ),
            )
            await conn.commit()
        except aiosqlite.Error as e:
            raise StorageIOError("upsert_session", self.db_path, e) from e

    async def get_session_metadata(self, session_id: str) -> SessionMetadata | None:
        """Get session metadata by ID."""
        conn = await self._ensure_connection()

        try:
            async with conn.execute(
                """
                SELECT session_id, subject_id, start_time, end_time,
                       status, events, total_chunks, updated_at
                FROM sessions
                WHERE session_id = ?
                """,
                (session_id,),
            ) as cursor:
                row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise StorageIOError("get_session", self.db_path, e) from e

        if row is None:
            return None

        return SessionMetadata.from_dict(
            {
                "session_id": row[0],
                "subject_id": row[1],
                "start_time": row[2],
                "end_time": row[3],
                "status": row[4],
                "events": json.loads(row[5]) if row[5] else [],
                "total_chunks": row[6],
                "updated_at": row[7],
            }
        )


# =============================================================================
# Process-wide store registry
# =============================================================================

_shared_stores: dict[str, SQLiteChunkStore] = {}


def open_shared_store(config: RecordingConfig) -> SQLiteChunkStore:
    """Return the process-wide store for ``config.db_path``.

    The store is created on first request and opened lazily by its first
    operation. Every component should receive this one instance.
    """
    key = config.resolved_db_path
    store = _shared_stores.get(key)
    if store is None:
        store = SQLiteChunkStore(config)
        _shared_stores[key] = store
    return store


async def close_shared_stores() -> None:
    """Close and forget every shared store."""
    stores = list(_shared_stores.values())
    _shared_stores.clear()
    for store in stores:
        await store.close()
