"""
Tool module exposing recording operations to collaborators.

Collaborators (the recorder front end, the uploader, the session
controller) talk to the core through one ``execute`` call taking a dict:

    {"operation": "register_chunk", "chunk_index": 0, ..., "payload": "<base64>"}

and receive a ``ToolResult``. Binary payloads cross this boundary as
base64 strings; inside the core they are plain bytes.
"""

from __future__ import annotations

import base64
import binascii
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from ..config import RecordingConfig
from ..exceptions import RecordingStorageError, ValidationError
from ..logging_utils import configure_structured_logging
from ..manager import RecordingManager

OPERATIONS = (
    "init_session",
    "add_event",
    "register_chunk",
    "end_session",
    "list_summaries",
    "chunk_for_upload",
    "confirm_uploaded",
    "release_chunk",
    "schedule_cleanup",
    "cancel_cleanup",
    "get_session",
    "get_state",
    "get_config",
    "stop_monitoring",
)


@dataclass
class ToolResult:
    """Result from tool execution."""

    success: bool
    output: dict[str, Any] = field(default_factory=dict)
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        result: dict[str, Any] = {"success": self.success}
        if self.success:
            result["output"] = self.output
        if self.error:
            result["error"] = self.error
        return result


class RecordingToolModule:
    """
    Dispatches operation dicts to a RecordingManager.

    Errors raised by the core are returned as failed results carrying the
    error message and the exception's details.
    """

    def __init__(self, manager: RecordingManager):
        self.manager = manager
        self._handlers: dict[str, Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]] = {
            "init_session": self._init_session,
            "add_event": self._add_event,
            "register_chunk": self._register_chunk,
            "end_session": self._end_session,
            "list_summaries": self._list_summaries,
            "chunk_for_upload": self._chunk_for_upload,
            "confirm_uploaded": self._confirm_uploaded,
            "release_chunk": self._release_chunk,
            "schedule_cleanup": self._schedule_cleanup,
            "cancel_cleanup": self._cancel_cleanup,
            "get_session": self._get_session,
            "get_state": self._get_state,
            "get_config": self._get_config,
            "stop_monitoring": self._stop_monitoring,
        }

    @property
    def name(self) -> str:
        return "recording"

    @property
    def description(self) -> str:
        return (
            "Chunked recording storage: register recorded segments, hand them "
            "out for upload, confirm uploads and schedule cleanup."
        )

    @property
    def schema(self) -> dict[str, Any]:
        """JSON Schema for the tool's input parameters."""
        return {
            "type": "object",
            "properties": {
                "operation": {
                    "type": "string",
                    "description": "Operation to perform",
                    "enum": list(OPERATIONS),
                },
                "session_id": {"type": "string"},
                "subject_id": {"type": "string"},
                "type": {"type": "string", "description": "Event type for add_event"},
                "details": {"description": "Event payload for add_event"},
                "chunk_index": {"type": "integer", "minimum": 0},
                "start_time": {"type": "integer", "description": "Epoch milliseconds"},
                "end_time": {"type": "integer", "description": "Epoch milliseconds"},
                "duration_ms": {"type": "integer", "minimum": 0},
                "payload": {"type": "string", "description": "Base64 chunk payload"},
                "chunk_id": {"type": "string"},
                "ref": {"type": "string", "description": "Uploaded location"},
                "delay_ms": {"type": "integer", "minimum": 0},
            },
            "required": ["operation"],
        }

    async def execute(self, input: dict[str, Any]) -> ToolResult:
        """Execute one recording operation."""
        operation = input.get("operation")
        handler = self._handlers.get(operation or "")
        if handler is None:
            return ToolResult(
                success=False,
                error=f"Unknown operation: {operation}",
                output={"available_operations": list(OPERATIONS)},
            )

        try:
            output = await handler(input)
        except RecordingStorageError as e:
            return ToolResult(
                success=False,
                error=e.message,
                output={"operation": operation, "details": e.details},
            )

        output["operation"] = operation
        return ToolResult(success=True, output=output)

    async def _init_session(self, params: dict[str, Any]) -> dict[str, Any]:
        return await self.manager.init_session(
            _required(params, "session_id"), _required(params, "subject_id")
        )

    async def _add_event(self, params: dict[str, Any]) -> dict[str, Any]:
        event = self.manager.add_event(_required(params, "type"), params.get("details"))
        return {"event": event.to_dict() if event else None}

    async def _register_chunk(self, params: dict[str, Any]) -> dict[str, Any]:
        chunk = await self.manager.register_chunk(
            _required(params, "chunk_index"),
            _required(params, "start_time"),
            _required(params, "end_time"),
            _required(params, "duration_ms"),
            _decode_payload(_required(params, "payload")),
        )
        return {"chunk": chunk.summary().to_dict()}

    async def _end_session(self, params: dict[str, Any]) -> dict[str, Any]:
        return await self.manager.end_session()

    async def _list_summaries(self, params: dict[str, Any]) -> dict[str, Any]:
        summaries = await self.manager.list_summaries()
        return {
            "count": len(summaries),
            "chunks": [summary.to_dict() for summary in summaries],
        }

    async def _chunk_for_upload(self, params: dict[str, Any]) -> dict[str, Any]:
        package = await self.manager.chunk_for_upload(_required(params, "chunk_index"))
        return {
            "metadata": package.metadata,
            "payload": base64.b64encode(package.payload).decode("ascii"),
        }

    async def _confirm_uploaded(self, params: dict[str, Any]) -> dict[str, Any]:
        return await self.manager.confirm_uploaded(
            _required(params, "chunk_id"), _required(params, "ref")
        )

    async def _release_chunk(self, params: dict[str, Any]) -> dict[str, Any]:
        return await self.manager.release_chunk(_required(params, "chunk_id"))

    async def _schedule_cleanup(self, params: dict[str, Any]) -> dict[str, Any]:
        return self.manager.schedule_cleanup(
            _required(params, "session_id"), params.get("delay_ms")
        )

    async def _cancel_cleanup(self, params: dict[str, Any]) -> dict[str, Any]:
        return self.manager.cancel_cleanup(_required(params, "session_id"))

    async def _get_session(self, params: dict[str, Any]) -> dict[str, Any]:
        metadata = await self.manager.get_session(_required(params, "session_id"))
        return {"session": metadata.to_dict()}

    async def _get_state(self, params: dict[str, Any]) -> dict[str, Any]:
        return {"state": await self.manager.get_state()}

    async def _get_config(self, params: dict[str, Any]) -> dict[str, Any]:
        return {"config": self.manager.get_config()}

    async def _stop_monitoring(self, params: dict[str, Any]) -> dict[str, Any]:
        return await self.manager.stop_monitoring()


def _required(params: dict[str, Any], key: str) -> Any:
    value = params.get(key)
    if value is None or value == "":
        raise ValidationError(key, "is required")
    return value


def _decode_payload(encoded: Any) -> bytes:
    if not isinstance(encoded, str):
        raise ValidationError("payload", "must be a base64 string", type(encoded).__name__)
    try:
        return base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError("payload", f"invalid base64: {e}") from e


def create_tool(**config: Any) -> RecordingToolModule:
    """Factory function for creating the recording tool.

    Args:
        **config: RecordingConfig fields. With none given, the whole
            configuration is read from the environment.

    Returns:
        Configured RecordingToolModule instance.
    """
    recording_config = RecordingConfig(**config) if config else RecordingConfig.from_env()
    if recording_config.structured_logging:
        configure_structured_logging()
    return RecordingToolModule(RecordingManager.create(recording_config))


def mount(coordinator: Any = None, config: dict[str, Any] | None = None) -> RecordingToolModule:
    """Module entry point.

    Args:
        coordinator: Host coordinator instance (unused).
        config: Tool configuration dictionary.

    Returns:
        Configured RecordingToolModule instance.
    """
    config = config or {}
    return create_tool(**config)
