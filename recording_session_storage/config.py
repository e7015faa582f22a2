"""
Configuration for recording storage.

Configuration can be provided directly, via environment variables, or
from the ``recording`` section of a YAML settings file:

```yaml
recording:
  db_path: ~/.recording_storage/recordings.db
  state_path: ~/.recording_storage/active_session.json
  chunk_duration_ms: 600000
  cleanup_delay_ms: 300000
  strict_transitions: false
  structured_logging: false
```
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ValidationError

MEMORY_DB = ":memory:"
DEFAULT_DB_PATH = "~/.recording_storage/recordings.db"
DEFAULT_STATE_PATH = "~/.recording_storage/active_session.json"
DEFAULT_CHUNK_DURATION_MS = 10 * 60 * 1000
DEFAULT_CLEANUP_DELAY_MS = 5 * 60 * 1000

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "false").strip().lower() in _TRUE_VALUES


@dataclass
class RecordingConfig:
    """Configuration for the recording store and lifecycle manager.

    Environment Variables:
        RECORDING_STORAGE_DB_PATH: SQLite database path
            (default: ~/.recording_storage/recordings.db)
        RECORDING_STORAGE_STATE_PATH: Active-session pointer file
            (default: ~/.recording_storage/active_session.json)
        RECORDING_STORAGE_CHUNK_DURATION_MS: Segment window size (default: 600000)
        RECORDING_STORAGE_CLEANUP_DELAY_MS: Cleanup grace period (default: 300000)
        RECORDING_STORAGE_STRICT_TRANSITIONS: Refuse status regressions (default: false)
        RECORDING_STORAGE_STRUCTURED_LOGS: Emit JSON log lines (default: false)

    Attributes:
        db_path: SQLite database file. ":memory:" keeps nothing across
            restarts and is meant for tests.
        state_path: File holding the last active session id. None uses
            the default under the home directory.
        chunk_duration_ms: Fixed segment duration used to bucket events
        cleanup_delay_ms: Default delay before a scheduled cleanup sweep
        strict_transitions: When true, chunk status changes are checked
            against the strict transition table instead of overwriting
        structured_logging: When true, the tool entry point installs the
            JSON log formatter on the package logger
    """

    db_path: str | Path = DEFAULT_DB_PATH
    state_path: str | Path | None = None
    chunk_duration_ms: int = DEFAULT_CHUNK_DURATION_MS
    cleanup_delay_ms: int = DEFAULT_CLEANUP_DELAY_MS
    strict_transitions: bool = False
    structured_logging: bool = False

    def __post_init__(self) -> None:
        if self.chunk_duration_ms <= 0:
            raise ValidationError(
                "chunk_duration_ms", "must be positive", str(self.chunk_duration_ms)
            )
        if self.cleanup_delay_ms < 0:
            raise ValidationError(
                "cleanup_delay_ms", "must not be negative", str(self.cleanup_delay_ms)
            )

    @property
    def resolved_db_path(self) -> str:
        """Database path with ``~`` expanded; ":memory:" is passed through."""
        if str(self.db_path) == MEMORY_DB:
            return MEMORY_DB
        return str(Path(self.db_path).expanduser())

    @property
    def resolved_state_path(self) -> Path:
        """Pointer file path with the default applied."""
        return Path(self.state_path or DEFAULT_STATE_PATH).expanduser()

    @classmethod
    def from_env(cls) -> RecordingConfig:
        """Create config from environment variables."""
        return cls(
            db_path=os.environ.get("RECORDING_STORAGE_DB_PATH") or DEFAULT_DB_PATH,
            state_path=os.environ.get("RECORDING_STORAGE_STATE_PATH") or None,
            chunk_duration_ms=int(
                os.environ.get(
                    "RECORDING_STORAGE_CHUNK_DURATION_MS", str(DEFAULT_CHUNK_DURATION_MS)
                )
            ),
            cleanup_delay_ms=int(
                os.environ.get(
                    "RECORDING_STORAGE_CLEANUP_DELAY_MS", str(DEFAULT_CLEANUP_DELAY_MS)
                )
            ),
            strict_transitions=_env_flag("RECORDING_STORAGE_STRICT_TRANSITIONS"),
            structured_logging=_env_flag("RECORDING_STORAGE_STRUCTURED_LOGS"),
        )

    @classmethod
    def from_yaml(cls, path: str | Path) -> RecordingConfig:
        """Create config from the ``recording`` section of a YAML file.

        Missing files and missing keys fall back to defaults; unknown keys
        are ignored.
        """
        config_path = Path(path).expanduser()
        if not config_path.exists():
            return cls()

        data = yaml.safe_load(config_path.read_text()) or {}
        section = data.get("recording") or {}
        known = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in section.items() if key in known})

    def to_dict(self) -> dict[str, Any]:
        """Effective configuration as plain values."""
        return {
            "db_path": self.resolved_db_path,
            "state_path": str(self.resolved_state_path),
            "chunk_duration_ms": self.chunk_duration_ms,
            "cleanup_delay_ms": self.cleanup_delay_ms,
            "strict_transitions": self.strict_transitions,
            "structured_logging": self.structured_logging,
        }
