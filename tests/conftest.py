"""
Shared test configuration and fixtures.

Stores use real SQLite (in-memory unless a test needs a file on disk) and
the active-session pointer is written under pytest's tmp_path. Time is
driven by a FakeClock so event offsets are deterministic.
"""

import logging

import pytest

from recording_session_storage import (
    RecordingConfig,
    RecordingManager,
    SQLiteChunkStore,
    close_shared_stores,
)

logger = logging.getLogger(__name__)

CHUNK_DURATION_MS = 600_000
T0 = 1_700_000_000_000


class FakeClock:
    """Manually advanced clock returning epoch milliseconds."""

    def __init__(self, start_ms: int = T0):
        self.now_ms = start_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> int:
        self.now_ms += ms
        return self.now_ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config(tmp_path):
    """In-memory database, pointer file under tmp_path."""
    return RecordingConfig(
        db_path=":memory:",
        state_path=tmp_path / "state" / "active_session.json",
        chunk_duration_ms=CHUNK_DURATION_MS,
        cleanup_delay_ms=50,
    )


@pytest.fixture
async def store(config):
    """Initialized in-memory SQLite chunk store."""
    store = await SQLiteChunkStore.create(config)
    yield store
    await store.close()


@pytest.fixture
async def manager(config, store, clock):
    """Recording manager over the shared in-memory store."""
    manager = RecordingManager(config, store, clock=clock)
    yield manager
    await manager.cleanup.shutdown()


@pytest.fixture(autouse=True)
async def reset_shared_stores():
    """Shared stores are bound to one event loop; drop them after each test."""
    yield
    await close_shared_stores()
