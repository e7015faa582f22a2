"""
Active-session pointer that survives process restarts.

The host may evict and restart the recording process at any time. Chunks
are durable, but the in-memory "current session" is not, so the session id
is written to a small state file as soon as a session starts. After a
restart, ``resolve()`` adopts the persisted id so existing chunks remain
addressable. Only the identity is recovered: the event timeline and the
session start time stay process-local.
"""

from __future__ import annotations

import logging
from pathlib import Path

from .local.file_ops import read_json, remove_file, write_json_atomic
from .models import utc_now_iso

logger = logging.getLogger(__name__)


class SessionRehydrator:
    """Holds the current session id in memory, backed by a JSON state file."""

    def __init__(self, state_path: Path):
        """
        Args:
            state_path: File that stores the last active session id
        """
        self.state_path = Path(state_path)
        self._session_id: str | None = None
        self._subject_id: str | None = None

    def current_session_id(self) -> str | None:
        """In-memory session id, without touching durable state."""
        return self._session_id

    @property
    def subject_id(self) -> str | None:
        return self._subject_id

    async def remember(self, session_id: str, subject_id: str) -> None:
        """Persist a session id, then adopt it.

        If the write fails the previous pointer stays in effect.
        """
        await write_json_atomic(
            self.state_path,
            {
                "session_id": session_id,
                "subject_id": subject_id,
                "updated_at": utc_now_iso(),
            },
        )
        self._session_id = session_id
        self._subject_id = subject_id
        logger.debug(f"Persisted active session {session_id} to {self.state_path}")

    async def resolve(self) -> str | None:
        """Return the session id, recovering it from the state file if needed.

        Raises:
            StorageIOError: If the state file exists but cannot be read
        """
        if self._session_id:
            return self._session_id

        state = await read_json(self.state_path)
        if not state or not state.get("session_id"):
            return None

        self._session_id = state["session_id"]
        self._subject_id = state.get("subject_id")
        logger.info(f"Restored session {self._session_id} from {self.state_path}")
        return self._session_id

    async def forget(self) -> bool:
        """Clear the in-memory pointer and remove the state file.

        Returns:
            True if a state file was removed
        """
        self._session_id = None
        self._subject_id = None
        return await remove_file(self.state_path)
