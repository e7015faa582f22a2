"""
Recording Session Storage

Local storage and lifecycle management for chunked session recordings.

Provides:
- Durable chunk storage (SQLite via aiosqlite), keyed by session, subject and index
- Session event timeline bucketed into fixed-duration segment windows
- Per-chunk upload status tracking (stored -> uploading -> uploaded)
- Debounced, cancellable cleanup that keeps uploaded chunks
- Recovery of the active session id after a process restart

Usage:

    >>> from recording_session_storage import RecordingConfig, RecordingManager
    >>> config = RecordingConfig()  # ~/.recording_storage/recordings.db
    >>> async with RecordingManager.create(config) as manager:
    ...     await manager.init_session("examA", "stud1")
    ...     manager.add_event("tab_switch", {"url": "https://example.com"})
    ...     await manager.register_chunk(0, start_ms, end_ms, 600000, payload)
    ...
    ...     package = await manager.chunk_for_upload(0)
    ...     await manager.confirm_uploaded(package.chunk_id, uploaded_url)
    ...
    ...     await manager.end_session()
    ...     manager.schedule_cleanup("examA")
    ...     await manager.cleanup.join()  # close() cancels pending cleanups
"""

from .backends import ChunkStore, SQLiteChunkStore, close_shared_stores, open_shared_store
from .cleanup import CleanupMode, CleanupOutcome, CleanupScheduler, CleanupState
from .config import RecordingConfig
from .coordinator import UploadCoordinator
from .exceptions import (
    ChunkNotFoundError,
    InvalidStateError,
    RecordingStorageError,
    SessionNotFoundError,
    StorageConnectionError,
    StorageIOError,
    ValidationError,
)
from .id_utils import chunk_id, window_bounds, window_index
from .manager import RecordingManager
from .models import (
    ChunkRecord,
    ChunkStatus,
    ChunkSummary,
    RecordingEvent,
    SessionMetadata,
    SessionStatus,
    UploadPackage,
)
from .rehydrator import SessionRehydrator
from .timeline import EventTimeline

__all__ = [
    # Manager and components
    "RecordingManager",
    "RecordingConfig",
    "EventTimeline",
    "UploadCoordinator",
    "CleanupScheduler",
    "CleanupState",
    "CleanupMode",
    "CleanupOutcome",
    "SessionRehydrator",
    # Storage
    "ChunkStore",
    "SQLiteChunkStore",
    "open_shared_store",
    "close_shared_stores",
    # Records
    "ChunkRecord",
    "ChunkStatus",
    "ChunkSummary",
    "RecordingEvent",
    "SessionMetadata",
    "SessionStatus",
    "UploadPackage",
    # IDs and windows
    "chunk_id",
    "window_bounds",
    "window_index",
    # Exceptions
    "RecordingStorageError",
    "ChunkNotFoundError",
    "SessionNotFoundError",
    "InvalidStateError",
    "ValidationError",
    "StorageIOError",
    "StorageConnectionError",
]

__version__ = "0.1.0"
