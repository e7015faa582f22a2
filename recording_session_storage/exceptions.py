"""
Custom exceptions for recording storage.

All components raise these exceptions so callers can handle
storage, lookup and state failures consistently.
"""


class RecordingStorageError(Exception):
    """Base exception for all recording storage errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ChunkNotFoundError(RecordingStorageError):
    """Raised when a chunk is not found."""

    def __init__(
        self,
        chunk_id: str | None = None,
        *,
        session_id: str | None = None,
        chunk_index: int | None = None,
    ):
        details: dict = {}
        if chunk_id:
            details["chunk_id"] = chunk_id
        if session_id:
            details["session_id"] = session_id
        if chunk_index is not None:
            details["chunk_index"] = chunk_index

        if chunk_id:
            message = f"Chunk not found: {chunk_id}"
        else:
            message = f"Chunk {chunk_index} not found in session {session_id}"
        super().__init__(message, details)
        self.chunk_id = chunk_id
        self.session_id = session_id
        self.chunk_index = chunk_index


class SessionNotFoundError(RecordingStorageError):
    """Raised when session metadata is not found."""

    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}", {"session_id": session_id})
        self.session_id = session_id


class InvalidStateError(RecordingStorageError):
    """Raised when an operation is not allowed in the current state.

    Covers operations that need an active session when none exists, and
    chunk status transitions refused by strict transition checking.
    """

    def __init__(self, message: str, state: str | None = None):
        details = {}
        if state:
            details["state"] = state
        super().__init__(message, details)
        self.state = state


class ValidationError(RecordingStorageError):
    """Raised when input validation fails."""

    def __init__(self, field: str, reason: str, value: str | None = None):
        details = {"field": field, "reason": reason}
        if value is not None:
            details["value"] = value
        super().__init__(f"Validation failed for {field}: {reason}", details)
        self.field = field
        self.reason = reason
        self.value = value


class StorageIOError(RecordingStorageError):
    """Raised when a storage I/O operation fails."""

    def __init__(self, operation: str, path: str | None = None, cause: Exception | None = None):
        details = {"operation": operation}
        if path:
            details["path"] = path
        if cause:
            details["cause"] = str(cause)
        message = f"Storage I/O error during {operation}"
        if path:
            message += f": {path}"
        super().__init__(message, details)
        self.operation = operation
        self.path = path
        self.cause = cause


class StorageConnectionError(RecordingStorageError):
    """Raised when the durable store cannot be opened.

    Note: Named StorageConnectionError to avoid shadowing the builtin ConnectionError.
    """

    def __init__(self, endpoint: str, cause: Exception | None = None):
        details = {"endpoint": endpoint}
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Connection failed to {endpoint}", details)
        self.endpoint = endpoint
        self.cause = cause
