"""
Recording manager.

Owns the state of the current recording session and wires the timeline,
upload coordinator, cleanup scheduler and session rehydrator around one
injected chunk store. All collaborator-facing operations live here.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from .backends.base import ChunkStore
from .backends.sqlite import open_shared_store
from .cleanup import CleanupScheduler
from .config import RecordingConfig
from .coordinator import UploadCoordinator
from .exceptions import SessionNotFoundError, ValidationError
from .models import (
    ChunkRecord,
    ChunkSummary,
    RecordingEvent,
    SessionMetadata,
    SessionStatus,
    UploadPackage,
)
from .rehydrator import SessionRehydrator
from .timeline import EventTimeline, epoch_ms, start_marker

logger = logging.getLogger(__name__)


class RecordingManager:
    """
    Chunked-recording lifecycle manager.

    Example:
        >>> config = RecordingConfig(db_path="recordings.db")
        >>> manager = RecordingManager.create(config)
        >>> await manager.init_session("examA", "stud1")
        >>> await manager.register_chunk(0, start, end, 600000, payload)
        >>> package = await manager.chunk_for_upload(0)
        >>> await manager.confirm_uploaded(package.chunk_id, "s3://bucket/key")
        >>> await manager.end_session()
        >>> manager.schedule_cleanup("examA")
    """

    def __init__(
        self,
        config: RecordingConfig,
        store: ChunkStore,
        clock: Callable[[], int] = epoch_ms,
    ):
        """
        Args:
            config: Recording configuration
            store: Chunk store shared by every component
            clock: Returns the current time in epoch milliseconds
        """
        self.config = config
        self.store = store
        self.clock = clock
        self.timeline = EventTimeline(config.chunk_duration_ms, clock=clock)
        self.rehydrator = SessionRehydrator(config.resolved_state_path)
        self.uploads = UploadCoordinator(
            store,
            self.timeline,
            self.rehydrator,
            strict_transitions=config.strict_transitions,
        )
        self.cleanup = CleanupScheduler(store, config.cleanup_delay_ms)

    @classmethod
    def create(
        cls,
        config: RecordingConfig | None = None,
        store: ChunkStore | None = None,
        clock: Callable[[], int] = epoch_ms,
    ) -> RecordingManager:
        """Build a manager on the process-wide store for ``config.db_path``."""
        if config is None:
            config = RecordingConfig.from_env()
        return cls(config, store or open_shared_store(config), clock=clock)

    async def close(self) -> None:
        """Cancel pending cleanups and close the store.

        A cleanup scheduled but not yet fired is dropped; await
        ``cleanup.join()`` first to let it run.
        """
        await self.cleanup.shutdown()
        await self.store.close()

    async def __aenter__(self) -> RecordingManager:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # =========================================================================
    # Session lifecycle
    # =========================================================================

    async def init_session(self, session_id: str, subject_id: str) -> dict[str, Any]:
        """Start recording a session.

        Resets the event timeline, persists the session id for restart
        recovery and saves session metadata with status ``recording``.
        """
        if not session_id:
            raise ValidationError("session_id", "must not be empty")
        if not subject_id:
            raise ValidationError("subject_id", "must not be empty")

        # In-memory state changes only once both durable writes succeeded
        start_time = self.clock()
        marker = start_marker()
        await self.store.upsert_session_metadata(
            SessionMetadata(
                session_id=session_id,
                subject_id=subject_id,
                start_time=start_time,
                status=SessionStatus.RECORDING,
                events=[marker],
            )
        )
        await self.rehydrator.remember(session_id, subject_id)

        self.timeline.start(session_id, subject_id, start_time=start_time, marker=marker)
        self.uploads.reset()

        logger.info(f"Recording initialized for session {session_id}, subject {subject_id}")
        return {"start_time": start_time}

    def add_event(self, event_type: str, details: Any = None) -> RecordingEvent | None:
        """Append an event to the active session. No-op when not recording."""
        return self.timeline.append(event_type, details)

    async def end_session(self) -> dict[str, Any]:
        """Stop recording: append session_end and save metadata as ``ended``.

        Safe to call when nothing is recording; the chunk count is still
        returned and nothing is saved.
        """
        total_chunks = self.uploads.registered_count
        if not self.timeline.active or not self.timeline.session_id:
            logger.warning("end_session called with no active recording")
            return {"total_chunks": total_chunks}

        self.timeline.end()
        await self.store.upsert_session_metadata(
            SessionMetadata(
                session_id=self.timeline.session_id,
                subject_id=self.timeline.subject_id or "",
                start_time=self.timeline.start_time or 0,
                end_time=self.clock(),
                status=SessionStatus.ENDED,
                events=self.timeline.snapshot(),
                total_chunks=total_chunks,
            )
        )

        logger.info(f"Recording stopped. Total chunks: {total_chunks}")
        return {"total_chunks": total_chunks}

    async def stop_monitoring(self) -> dict[str, Any]:
        """Forget the persisted session pointer.

        Chunks and session metadata stay in the store; only the
        "current session" used for upload lookups is cleared.
        """
        removed = await self.rehydrator.forget()
        return {"cleared": removed}

    # =========================================================================
    # Chunks and uploads
    # =========================================================================

    async def register_chunk(
        self,
        chunk_index: int,
        start_time: int,
        end_time: int,
        duration_ms: int,
        payload: bytes,
    ) -> ChunkRecord:
        return await self.uploads.register_chunk(
            chunk_index, start_time, end_time, duration_ms, payload
        )

    async def list_summaries(self) -> list[ChunkSummary]:
        return await self.uploads.list_summaries()

    async def chunk_for_upload(self, chunk_index: int) -> UploadPackage:
        return await self.uploads.chunk_for_upload(chunk_index)

    async def confirm_uploaded(self, chunk_id: str, ref: str) -> dict[str, Any]:
        return await self.uploads.confirm_uploaded(chunk_id, ref)

    async def release_chunk(self, chunk_id: str) -> dict[str, Any]:
        return await self.uploads.release_chunk(chunk_id)

    # =========================================================================
    # Cleanup
    # =========================================================================

    def schedule_cleanup(self, session_id: str, delay_ms: int | None = None) -> dict[str, Any]:
        return self.cleanup.schedule(session_id, delay_ms)

    def cancel_cleanup(self, session_id: str) -> dict[str, Any]:
        return {"cancelled": self.cleanup.cancel(session_id)}

    # =========================================================================
    # Introspection
    # =========================================================================

    async def get_session(self, session_id: str) -> SessionMetadata:
        """Load persisted session metadata.

        Raises:
            SessionNotFoundError: If the session was never initialized
        """
        metadata = await self.store.get_session_metadata(session_id)
        if metadata is None:
            raise SessionNotFoundError(session_id)
        return metadata

    def get_config(self) -> dict[str, Any]:
        return self.config.to_dict()

    async def get_state(self) -> dict[str, Any]:
        """Snapshot of recording state.

        ``chunks_count`` counts chunks registered by this process;
        ``stored_counts`` is read from the store and also covers chunks
        written before a restart.
        """
        session_id = self.timeline.session_id or self.rehydrator.current_session_id()
        stored_counts = await self.store.count_by_session(session_id) if session_id else {}
        return {
            "is_recording": self.timeline.active,
            "session_id": session_id,
            "subject_id": self.timeline.subject_id or self.rehydrator.subject_id,
            "start_time": self.timeline.start_time,
            "events_count": len(self.timeline.events),
            "chunks_count": self.uploads.registered_count,
            "stored_counts": stored_counts,
            "cleanup_state": self.cleanup.state(session_id).value if session_id else None,
        }
