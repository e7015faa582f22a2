"""
Record types for chunked recording storage.

A recording session produces an ordered event log and a sequence of
fixed-duration chunks. Each chunk carries an opaque binary payload, the
subset of session events that fall inside its time window, and an upload
status.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision."""
    return datetime.now(UTC).isoformat(timespec="milliseconds")


class SessionStatus(Enum):
    """Lifecycle status of a recording session."""

    RECORDING = "recording"
    ENDED = "ended"


class ChunkStatus(Enum):
    """Upload status of a stored chunk.

    The observed lifecycle is STORED -> UPLOADING -> UPLOADED. By default any
    status may overwrite any other (a chunk already UPLOADED can be handed out
    for upload again). With strict checking only the transitions in
    ``_STRICT_TRANSITIONS`` are allowed; UPLOADED is then terminal apart from
    re-confirming it.
    """

    STORED = "stored"
    UPLOADING = "uploading"
    UPLOADED = "uploaded"

    def can_transition(self, target: ChunkStatus, strict: bool = False) -> bool:
        """Whether a chunk in this status may move to ``target``."""
        if not strict:
            return True
        return target in _STRICT_TRANSITIONS[self]


_STRICT_TRANSITIONS: dict[ChunkStatus, frozenset[ChunkStatus]] = {
    ChunkStatus.STORED: frozenset(
        {ChunkStatus.STORED, ChunkStatus.UPLOADING, ChunkStatus.UPLOADED}
    ),
    ChunkStatus.UPLOADING: frozenset(
        {ChunkStatus.STORED, ChunkStatus.UPLOADING, ChunkStatus.UPLOADED}
    ),
    ChunkStatus.UPLOADED: frozenset({ChunkStatus.UPLOADED}),
}


@dataclass(frozen=True)
class RecordingEvent:
    """A timestamped marker in a session's event log.

    Attributes:
        type: Event type (session_start, tab_switch, session_end, ...)
        offset_ms: Milliseconds since the session started
        wall_clock: ISO timestamp when the event was recorded
        details: Event-specific payload, JSON-serializable
    """

    type: str
    offset_ms: int
    wall_clock: str
    details: Any = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for storage."""
        return {
            "type": self.type,
            "offset_ms": self.offset_ms,
            "wall_clock": self.wall_clock,
            "details": self.details,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RecordingEvent:
        """Deserialize from dictionary."""
        return cls(
            type=data["type"],
            offset_ms=int(data["offset_ms"]),
            wall_clock=data.get("wall_clock", ""),
            details=data.get("details"),
        )


@dataclass
class ChunkRecord:
    """A stored recording segment.

    Attributes:
        chunk_id: Deterministic key built from session, subject and index
        session_id: Owning session
        subject_id: Recorded subject
        chunk_index: 0-based segment index
        start_time: Segment start, epoch milliseconds
        end_time: Segment end, epoch milliseconds
        duration_ms: Recorded duration reported by the producer
        payload: Opaque binary payload. Empty when loaded without payload.
        size_bytes: Payload size in bytes
        status: Upload status
        uploaded_ref: Location token reported by the uploader
        events: Session events inside this segment's window
        saved_at: When the chunk was first written
        updated_at: When the chunk was last modified
    """

    chunk_id: str
    session_id: str
    subject_id: str
    chunk_index: int
    start_time: int
    end_time: int
    duration_ms: int
    payload: bytes = b""
    size_bytes: int = 0
    status: ChunkStatus = ChunkStatus.STORED
    uploaded_ref: str | None = None
    events: list[RecordingEvent] = field(default_factory=list)
    saved_at: str = field(default_factory=utc_now_iso)
    updated_at: str | None = None

    def metadata(self) -> dict[str, Any]:
        """Chunk metadata without payload or status bookkeeping."""
        return {
            "chunk_id": self.chunk_id,
            "chunk_index": self.chunk_index,
            "session_id": self.session_id,
            "subject_id": self.subject_id,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "duration_ms": self.duration_ms,
            "size_bytes": self.size_bytes,
            "events": [event.to_dict() for event in self.events],
        }

    def summary(self) -> ChunkSummary:
        """Payload-free view including status."""
        return ChunkSummary(
            chunk_id=self.chunk_id,
            chunk_index=self.chunk_index,
            start_time=self.start_time,
            end_time=self.end_time,
            duration_ms=self.duration_ms,
            size_bytes=self.size_bytes,
            status=self.status,
            uploaded_ref=self.uploaded_ref,
            events=list(self.events),
        )


@dataclass
class ChunkSummary:
    """Chunk listing entry, payload excluded."""

    chunk_id: str
    chunk_index: int
    start_time: int
    end_time: int
    duration_ms: int
    size_bytes: int
    status: ChunkStatus
    uploaded_ref: str | None
    events: list[RecordingEvent] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for callers outside the library."""
        return {
            "chunk_id": self.chunk_id,
            "chunk_index": self.chunk_index,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "duration_ms": self.duration_ms,
            "size_bytes": self.size_bytes,
            "status": self.status.value,
            "uploaded_ref": self.uploaded_ref,
            "events": [event.to_dict() for event in self.events],
        }


@dataclass
class UploadPackage:
    """Chunk handed to an uploader: metadata plus payload."""

    metadata: dict[str, Any]
    payload: bytes

    @property
    def chunk_id(self) -> str:
        return self.metadata["chunk_id"]


@dataclass
class SessionMetadata:
    """Persisted record describing one recording session."""

    session_id: str
    subject_id: str
    start_time: int
    status: SessionStatus = SessionStatus.RECORDING
    end_time: int | None = None
    events: list[RecordingEvent] = field(default_factory=list)
    total_chunks: int = 0
    updated_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for storage."""
        return {
            "session_id": self.session_id,
            "subject_id": self.subject_id,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "status": self.status.value,
            "events": [event.to_dict() for event in self.events],
            "total_chunks": self.total_chunks,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionMetadata:
        """Deserialize from dictionary."""
        return cls(
            session_id=data["session_id"],
            subject_id=data["subject_id"],
            start_time=int(data["start_time"]),
            status=SessionStatus(data.get("status", SessionStatus.RECORDING.value)),
            end_time=data.get("end_time"),
            events=[RecordingEvent.from_dict(e) for e in data.get("events") or []],
            total_chunks=data.get("total_chunks", 0),
            updated_at=data.get("updated_at") or utc_now_iso(),
        )
