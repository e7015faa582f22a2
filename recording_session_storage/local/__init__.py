"""
Local file helpers.

Small JSON state files (such as the active-session pointer) are written
atomically so a process killed mid-write never leaves a torn file.
"""

from .file_ops import ensure_directory, read_json, remove_file, write_json_atomic

__all__ = [
    "ensure_directory",
    "read_json",
    "write_json_atomic",
    "remove_file",
]
