"""
Abstract base class for chunk storage backends.

Every durable store used by the recording manager implements this
interface, so components depend on ``ChunkStore`` and receive a concrete
store by injection.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from ..models import ChunkRecord, ChunkStatus, SessionMetadata


class ChunkStore(ABC):
    """
    Abstract base for chunk stores.

    Implementations must support:
    - Upsert of chunk records (metadata and payload written together)
    - Lookup by chunk id and listing by session, ordered by chunk index
    - Status updates that are atomic per chunk id
    - Bulk and filtered deletion by session
    - One session-metadata record per session id

    Implementations open their underlying storage lazily: any operation on
    a store that has not been initialized opens it first.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Open the store and ensure its schema exists."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close connections and release resources."""
        pass

    async def __aenter__(self) -> ChunkStore:
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    # =========================================================================
    # Chunk Operations
    # =========================================================================

    @abstractmethod
    async def put(self, chunk: ChunkRecord) -> ChunkRecord:
        """
        Insert or replace a chunk record.

        Re-putting an existing chunk id overwrites it (last write wins).

        Returns:
            The stored chunk
        """
        pass

    @abstractmethod
    async def get(self, chunk_id: str) -> ChunkRecord:
        """
        Get a chunk with its payload.

        Raises:
            ChunkNotFoundError: If no chunk has this id
        """
        pass

    @abstractmethod
    async def list_by_session(
        self,
        session_id: str,
        include_payload: bool = False,
    ) -> list[ChunkRecord]:
        """
        List a session's chunks ordered by chunk index ascending.

        Args:
            session_id: Session identifier
            include_payload: Load payloads too. Listings should leave this off.
        """
        pass

    @abstractmethod
    async def update_status(
        self,
        chunk_id: str,
        status: ChunkStatus,
        ref: str | None = None,
        strict: bool = False,
    ) -> ChunkRecord:
        """
        Change a chunk's status, optionally recording an upload reference.

        Atomic with respect to other updates of the same chunk id. A ``ref``
        of None keeps any previously recorded reference.

        Raises:
            ChunkNotFoundError: If no chunk has this id
            InvalidStateError: If ``strict`` and the transition is not allowed
        """
        pass

    @abstractmethod
    async def delete_all_by_session(self, session_id: str) -> int:
        """Delete every chunk of a session. Returns the number deleted."""
        pass

    @abstractmethod
    async def delete_where(
        self,
        session_id: str,
        keep_status: ChunkStatus = ChunkStatus.UPLOADED,
    ) -> int:
        """Delete a session's chunks whose status is not ``keep_status``."""
        pass

    @abstractmethod
    async def count_by_session(self, session_id: str) -> dict[str, int]:
        """Count a session's chunks per status value."""
        pass

    # =========================================================================
    # Session Metadata Operations
    # =========================================================================

    @abstractmethod
    async def upsert_session_metadata(self, metadata: SessionMetadata) -> None:
        """Insert or replace the metadata record for a session."""
        pass

    @abstractmethod
    async def get_session_metadata(self, session_id: str) -> SessionMetadata | None:
        """Get session metadata, or None if the session is unknown."""
        pass
