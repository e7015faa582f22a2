"""
Session event timeline.

Keeps the ordered, in-memory event log of the active session and assigns
events to fixed-duration segment windows. Event ``i`` belongs to chunk
``n`` iff ``n * D <= offset_ms < (n + 1) * D``; the assignment depends only
on the event offset and the segment duration ``D``.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

from .id_utils import window_bounds, window_index
from .models import RecordingEvent, utc_now_iso

logger = logging.getLogger(__name__)

SESSION_START = "session_start"
SESSION_END = "session_end"


def epoch_ms() -> int:
    return int(time.time() * 1000)


def start_marker() -> RecordingEvent:
    """The session_start event every timeline begins with."""
    return RecordingEvent(SESSION_START, 0, utc_now_iso())


class EventTimeline:
    """Ordered event log for one recording session at a time."""

    def __init__(
        self,
        chunk_duration_ms: int,
        clock: Callable[[], int] = epoch_ms,
    ):
        """
        Args:
            chunk_duration_ms: Segment window size ``D``
            clock: Returns the current time in epoch milliseconds
        """
        self.chunk_duration_ms = chunk_duration_ms
        self.clock = clock
        self.session_id: str | None = None
        self.subject_id: str | None = None
        self.start_time: int | None = None
        self.active = False
        self._events: list[RecordingEvent] = []

    @property
    def events(self) -> list[RecordingEvent]:
        return list(self._events)

    def start(
        self,
        session_id: str,
        subject_id: str,
        start_time: int | None = None,
        marker: RecordingEvent | None = None,
    ) -> int:
        """Reset the log to a single session_start marker and go active.

        Args:
            start_time: Session start in epoch ms; defaults to the clock
            marker: Opening event to use, when it was already persisted

        Returns:
            Session start time in epoch milliseconds
        """
        self.session_id = session_id
        self.subject_id = subject_id
        self.start_time = self.clock() if start_time is None else start_time
        self._events = [marker or start_marker()]
        self.active = True
        return self.start_time

    def append(self, event_type: str, details: Any = None) -> RecordingEvent | None:
        """Record an event at the current offset. No-op when inactive."""
        if not self.active or self.start_time is None:
            return None

        # Clock adjustments must not produce negative offsets
        offset_ms = max(0, self.clock() - self.start_time)
        event = RecordingEvent(event_type, offset_ms, utc_now_iso(), details)
        self._events.append(event)
        logger.debug(f"Event recorded: {event_type} at {offset_ms / 1000:.1f}s")
        return event

    def end(self) -> RecordingEvent | None:
        """Append the session_end marker, then go inactive."""
        event = self.append(SESSION_END)
        self.active = False
        return event

    def window_for(self, chunk_index: int) -> tuple[int, int]:
        """Half-open ``[start, end)`` offset window of a chunk, in ms."""
        return window_bounds(chunk_index, self.chunk_duration_ms)

    def events_in_window(self, chunk_index: int) -> list[RecordingEvent]:
        """Events whose offset falls inside the chunk's window, in log order."""
        return [
            e
            for e in self._events
            if window_index(e.offset_ms, self.chunk_duration_ms) == chunk_index
        ]

    def snapshot(self) -> list[RecordingEvent]:
        """Copy of the log for persisting with session metadata."""
        return list(self._events)
