"""
Deferred cleanup of recorded chunks.

After a session ends, chunks are kept for a grace period so late upload
requests can still be served. A sweep then removes what is no longer
needed:

- no chunks left: nothing to do
- no chunk was ever uploaded: delete every chunk of the session
- otherwise: delete only chunks that are not ``uploaded``; the uploaded
  ones stay as the audit record

Scheduling is debounced per session (a new schedule replaces the pending
one) and cancellation is exact: once ``cancel`` returns True the sweep
will not run.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .backends.base import ChunkStore
from .exceptions import ValidationError
from .logging_utils import StorageLoggerAdapter, get_storage_logger
from .models import ChunkStatus, utc_now_iso

logger = get_storage_logger("cleanup")


class CleanupState(Enum):
    """Per-session cleanup timer state."""

    UNSCHEDULED = "unscheduled"
    SCHEDULED = "scheduled"
    FIRED = "fired"


class CleanupMode(Enum):
    """What a sweep did."""

    NOTHING = "nothing"
    FULL = "full"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass
class CleanupOutcome:
    """Result of one cleanup sweep."""

    session_id: str
    mode: CleanupMode
    deleted: int = 0
    error: str | None = None
    finished_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "mode": self.mode.value,
            "deleted": self.deleted,
            "error": self.error,
            "finished_at": self.finished_at,
        }


class CleanupScheduler:
    """Debounced, cancellable cleanup timers keyed by session id."""

    def __init__(self, store: ChunkStore, default_delay_ms: int):
        """
        Args:
            store: Chunk store to sweep
            default_delay_ms: Delay used when schedule() is given none
        """
        self.store = store
        self.default_delay_ms = default_delay_ms
        self._timers: dict[str, asyncio.Task[None]] = {}
        self._states: dict[str, CleanupState] = {}
        self._outcomes: dict[str, CleanupOutcome] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    def schedule(self, session_id: str, delay_ms: int | None = None) -> dict[str, Any]:
        """
        Schedule a sweep for a session, replacing any pending one.

        Must be called from within a running event loop.
        """
        if delay_ms is None:
            delay_ms = self.default_delay_ms
        if isinstance(delay_ms, bool) or not isinstance(delay_ms, int) or delay_ms < 0:
            raise ValidationError("delay_ms", "must be a non-negative integer", repr(delay_ms))

        if self._cancel_timer(session_id):
            logger.debug(f"Replaced pending cleanup for session {session_id}")

        task = asyncio.get_running_loop().create_task(
            self._fire_after(session_id, delay_ms), name=f"cleanup:{session_id}"
        )
        self._timers[session_id] = task
        self._states[session_id] = CleanupState.SCHEDULED
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        logger.info(f"Scheduling cleanup for session {session_id} in {delay_ms / 1000}s")
        return {"scheduled": True, "delay_ms": delay_ms}

    def cancel(self, session_id: str) -> bool:
        """Cancel a pending sweep. Returns False if none was pending."""
        if not self._cancel_timer(session_id):
            return False
        self._states[session_id] = CleanupState.UNSCHEDULED
        logger.info(f"Cleanup cancelled for session {session_id}")
        return True

    def state(self, session_id: str) -> CleanupState:
        return self._states.get(session_id, CleanupState.UNSCHEDULED)

    def last_outcome(self, session_id: str) -> CleanupOutcome | None:
        return self._outcomes.get(session_id)

    def pending_sessions(self) -> list[str]:
        return sorted(self._timers)

    async def sweep(self, session_id: str) -> CleanupOutcome:
        """
        Apply the cleanup policy to a session now.

        Storage errors are logged and reported in the outcome, never raised,
        so a failing session cannot disturb other sessions' cleanup.
        """
        log = StorageLoggerAdapter(logger, {"session_id": session_id})
        try:
            chunks = await self.store.list_by_session(session_id)

            if not chunks:
                log.info(f"No chunks to clean for session {session_id}")
                outcome = CleanupOutcome(session_id, CleanupMode.NOTHING)
            elif not any(c.status is ChunkStatus.UPLOADED for c in chunks):
                deleted = await self.store.delete_all_by_session(session_id)
                log.info(f"Cleanup completed for session {session_id} - deleted {deleted} chunks")
                outcome = CleanupOutcome(session_id, CleanupMode.FULL, deleted)
            else:
                deleted = await self.store.delete_where(session_id, ChunkStatus.UPLOADED)
                log.info(
                    f"Partial cleanup for session {session_id} - "
                    f"deleted {deleted} chunks never uploaded"
                )
                outcome = CleanupOutcome(session_id, CleanupMode.PARTIAL, deleted)

        except Exception as e:
            log.error(f"Cleanup failed for session {session_id}: {e}", exc_info=True)
            outcome = CleanupOutcome(session_id, CleanupMode.FAILED, error=str(e))

        self._outcomes[session_id] = outcome
        return outcome

    async def join(self) -> None:
        """Wait until every scheduled and running sweep has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel every pending timer and wait for running sweeps to stop."""
        for session_id in self.pending_sessions():
            self.cancel(session_id)
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _fire_after(self, session_id: str, delay_ms: int) -> None:
        await asyncio.sleep(delay_ms / 1000)

        # Drop the handle before the sweep's first await so cancel() can no
        # longer report a sweep that is already running.
        if self._timers.get(session_id) is asyncio.current_task():
            del self._timers[session_id]
        self._states[session_id] = CleanupState.FIRED

        await self.sweep(session_id)

    def _cancel_timer(self, session_id: str) -> bool:
        task = self._timers.pop(session_id, None)
        if task is None:
            return False
        task.cancel()
        return True
