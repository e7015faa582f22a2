"""
Active-session state file I/O.

The pointer file is tiny and rewritten on every ``init_session``, so it is
replaced in one step: a process killed mid-write leaves either the old
pointer or the new one, never a torn file.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os

from ..exceptions import StorageIOError


async def ensure_directory(path: Path) -> None:
    try:
        await aiofiles.os.makedirs(path, exist_ok=True)
    except OSError as e:
        raise StorageIOError("create_directory", str(path), e) from e


async def read_json(path: Path) -> dict[str, Any] | None:
    """Load a state file. A missing or blank file reads as None."""
    if not await aiofiles.os.path.isfile(path):
        return None
    try:
        async with aiofiles.open(path, encoding="utf-8") as f:
            content = (await f.read()).strip()
    except OSError as e:
        raise StorageIOError("read_state", str(path), e) from e
    if not content:
        return None
    try:
        return json.loads(content)
    except json.JSONDecodeError as e:
        raise StorageIOError("parse_state", str(path), e) from e


async def write_json_atomic(path: Path, data: dict[str, Any]) -> None:
    """Replace a state file with ``data``, fsynced before the swap."""
    await ensure_directory(path.parent)

    fd, temp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    os.close(fd)
    try:
        async with aiofiles.open(temp_name, "w", encoding="utf-8") as f:
            await f.write(json.dumps(data, indent=2))
            await f.flush()
            os.fsync(f.fileno())
        await aiofiles.os.replace(temp_name, path)
    except (OSError, TypeError, ValueError) as e:
        if await aiofiles.os.path.exists(temp_name):
            await aiofiles.os.remove(temp_name)
        raise StorageIOError("write_state", str(path), e) from e


async def remove_file(path: Path) -> bool:
    """Delete a state file. Returns False if there was none."""
    try:
        await aiofiles.os.remove(path)
    except FileNotFoundError:
        return False
    except OSError as e:
        raise StorageIOError("remove_state", str(path), e) from e
    return True
