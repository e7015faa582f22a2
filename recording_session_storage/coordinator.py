"""
Upload coordination for recorded chunks.

Registers chunks produced by the recorder and drives their upload status:
a consumer fetches a chunk for upload (status becomes ``uploading``), then
confirms it with the location it was uploaded to (status becomes
``uploaded``). Failed uploads are never reverted automatically; a caller
that wants to retry must release the chunk explicitly.
"""

from __future__ import annotations

from typing import Any

from .backends.base import ChunkStore
from .exceptions import ChunkNotFoundError, InvalidStateError, ValidationError
from .id_utils import chunk_id as make_chunk_id
from .logging_utils import StorageLoggerAdapter, get_storage_logger
from .models import ChunkRecord, ChunkStatus, ChunkSummary, UploadPackage
from .rehydrator import SessionRehydrator
from .timeline import EventTimeline

logger = get_storage_logger("coordinator")


class UploadCoordinator:
    """Chunk registration and per-chunk upload state transitions."""

    def __init__(
        self,
        store: ChunkStore,
        timeline: EventTimeline,
        rehydrator: SessionRehydrator,
        strict_transitions: bool = False,
    ):
        self.store = store
        self.timeline = timeline
        self.rehydrator = rehydrator
        self.strict_transitions = strict_transitions
        # chunk_index -> metadata (payload dropped) for chunks registered in this process
        self._ledger: dict[int, ChunkRecord] = {}

    @property
    def registered_count(self) -> int:
        """Distinct chunk indexes registered since the session started."""
        return len(self._ledger)

    def reset(self) -> None:
        """Forget the ledger when a new session starts."""
        self._ledger.clear()

    async def register_chunk(
        self,
        chunk_index: int,
        start_time: int,
        end_time: int,
        duration_ms: int,
        payload: bytes,
    ) -> ChunkRecord:
        """
        Store a new chunk for the current session.

        The chunk is keyed by (session, subject, index); registering the
        same index again replaces the earlier chunk.

        Raises:
            ValidationError: If parameters are malformed
            InvalidStateError: If no session was started in this process
        """
        _validate_registration(chunk_index, start_time, end_time, duration_ms, payload)

        session_id = self.timeline.session_id
        subject_id = self.timeline.subject_id
        if not session_id or not subject_id:
            raise InvalidStateError("No active recording session - cannot register chunk")

        chunk = ChunkRecord(
            chunk_id=make_chunk_id(session_id, subject_id, chunk_index),
            session_id=session_id,
            subject_id=subject_id,
            chunk_index=chunk_index,
            start_time=start_time,
            end_time=end_time,
            duration_ms=duration_ms,
            payload=bytes(payload),
            status=ChunkStatus.STORED,
            events=self.timeline.events_in_window(chunk_index),
        )
        await self.store.put(chunk)

        self._ledger[chunk_index] = _without_payload(chunk)
        self._log(chunk).info(
            f"Registered chunk {chunk.chunk_id} "
            f"({chunk.size_bytes} bytes, {len(chunk.events)} events)"
        )
        return chunk

    async def chunk_for_upload(self, chunk_index: int) -> UploadPackage:
        """
        Hand a chunk to an uploader and mark it ``uploading``.

        The status is overwritten even if the chunk is already uploading or
        uploaded, unless strict transitions are enabled.

        Raises:
            InvalidStateError: If no session id can be resolved
            ChunkNotFoundError: If the session has no chunk with this index
        """
        session_id = await self.rehydrator.resolve()
        if not session_id:
            raise InvalidStateError("No active recording session - cannot upload chunk")

        chunks = await self.store.list_by_session(session_id)
        match = next((c for c in chunks if c.chunk_index == chunk_index), None)
        if match is None:
            raise ChunkNotFoundError(session_id=session_id, chunk_index=chunk_index)

        await self.store.update_status(
            match.chunk_id, ChunkStatus.UPLOADING, strict=self.strict_transitions
        )
        self._track_status(chunk_index, ChunkStatus.UPLOADING)

        chunk = await self.store.get(match.chunk_id)
        return UploadPackage(metadata=chunk.metadata(), payload=chunk.payload)

    async def confirm_uploaded(self, chunk_id: str, ref: str) -> dict[str, Any]:
        """Mark a chunk ``uploaded`` and record where it went.

        Repeated calls overwrite the reference; the last one wins.
        """
        chunk = await self.store.update_status(
            chunk_id, ChunkStatus.UPLOADED, ref=ref, strict=self.strict_transitions
        )
        self._track_status(chunk.chunk_index, ChunkStatus.UPLOADED, ref)
        self._log(chunk).info(f"Chunk {chunk_id} marked as uploaded")
        return {"chunk_id": chunk_id, "status": chunk.status.value, "uploaded_ref": ref}

    async def release_chunk(self, chunk_id: str) -> dict[str, Any]:
        """Return an ``uploading`` chunk to ``stored`` after a failed upload.

        Only explicit callers reach this; nothing releases chunks on its own.

        Raises:
            InvalidStateError: If the chunk is already uploaded
        """
        chunk = await self.store.update_status(chunk_id, ChunkStatus.STORED, strict=True)
        self._track_status(chunk.chunk_index, ChunkStatus.STORED)
        self._log(chunk).info(f"Chunk {chunk_id} released for retry")
        return {"chunk_id": chunk_id, "status": chunk.status.value}

    async def list_summaries(self) -> list[ChunkSummary]:
        """Payload-free listing of the current session's chunks.

        Returns an empty list when no session id can be resolved, since
        this is used for passive polling.
        """
        session_id = await self.rehydrator.resolve()
        if not session_id:
            logger.warning("No active recording session for chunk listing")
            return []

        chunks = await self.store.list_by_session(session_id)
        logger.debug(f"Found {len(chunks)} chunks for session {session_id}")
        return [chunk.summary() for chunk in chunks]

    @staticmethod
    def _log(chunk: ChunkRecord) -> StorageLoggerAdapter:
        return StorageLoggerAdapter(
            logger,
            {
                "session_id": chunk.session_id,
                "subject_id": chunk.subject_id,
                "chunk_id": chunk.chunk_id,
                "chunk_index": chunk.chunk_index,
            },
        )

    def _track_status(
        self, chunk_index: int, status: ChunkStatus, ref: str | None = None
    ) -> None:
        entry = self._ledger.get(chunk_index)
        if entry is None:
            return
        entry.status = status
        if ref is not None:
            entry.uploaded_ref = ref


def _without_payload(chunk: ChunkRecord) -> ChunkRecord:
    return ChunkRecord(
        chunk_id=chunk.chunk_id,
        session_id=chunk.session_id,
        subject_id=chunk.subject_id,
        chunk_index=chunk.chunk_index,
        start_time=chunk.start_time,
        end_time=chunk.end_time,
        duration_ms=chunk.duration_ms,
        size_bytes=chunk.size_bytes,
        status=chunk.status,
        uploaded_ref=chunk.uploaded_ref,
        events=list(chunk.events),
        saved_at=chunk.saved_at,
        updated_at=chunk.updated_at,
    )


def _validate_registration(
    chunk_index: Any,
    start_time: Any,
    end_time: Any,
    duration_ms: Any,
    payload: Any,
) -> None:
    for name, value in (
        ("chunk_index", chunk_index),
        ("start_time", start_time),
        ("end_time", end_time),
        ("duration_ms", duration_ms),
    ):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(name, "must be an integer", repr(value))
        if value < 0:
            raise ValidationError(name, "must not be negative", str(value))

    if end_time < start_time:
        raise ValidationError("end_time", "must not be before start_time", str(end_time))

    if not isinstance(payload, bytes | bytearray | memoryview):
        raise ValidationError("payload", "must be bytes", type(payload).__name__)
