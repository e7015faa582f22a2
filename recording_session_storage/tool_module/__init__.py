"""
Tool module for recording operations.

Exposes the recording manager's operations through a single
dict-in / result-out ``execute`` call for transport adapters.
"""

from .tool import OPERATIONS, RecordingToolModule, ToolResult, create_tool, mount

__all__ = [
    "OPERATIONS",
    "RecordingToolModule",
    "ToolResult",
    "create_tool",
    "mount",
]
