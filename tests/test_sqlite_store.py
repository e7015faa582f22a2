"""
Tests for the SQLite chunk store.

Uses real SQLite (in-memory, or a file under tmp_path for durability tests).
"""

import asyncio

import pytest

from recording_session_storage import (
    ChunkNotFoundError,
    ChunkRecord,
    ChunkStatus,
    InvalidStateError,
    RecordingConfig,
    RecordingEvent,
    SessionMetadata,
    SessionStatus,
    SQLiteChunkStore,
    StorageConnectionError,
    chunk_id,
    open_shared_store,
)


def make_chunk(index: int, session_id: str = "examA", subject_id: str = "stud1", **kwargs):
    payload = kwargs.pop("payload", f"chunk-{index}".encode())
    return ChunkRecord(
        chunk_id=chunk_id(session_id, subject_id, index),
        session_id=session_id,
        subject_id=subject_id,
        chunk_index=index,
        start_time=1000 * index,
        end_time=1000 * (index + 1),
        duration_ms=1000,
        payload=payload,
        **kwargs,
    )


class TestSQLiteInitialization:
    """Tests for store initialization."""

    @pytest.mark.asyncio
    async def test_create_in_memory(self):
        """Store creates and initializes its schema."""
        store = await SQLiteChunkStore.create(RecordingConfig(db_path=":memory:"))
        assert store._initialized is True
        await store.close()

    @pytest.mark.asyncio
    async def test_lazy_open_on_first_use(self):
        """Operations open the connection when none exists."""
        store = SQLiteChunkStore(RecordingConfig(db_path=":memory:"))
        assert store.conn is None

        assert await store.list_by_session("examA") == []
        assert store._initialized is True
        await store.close()

    @pytest.mark.asyncio
    async def test_reopens_after_close(self, store):
        """A closed store is reopened by the next operation."""
        await store.close()
        assert store.conn is None

        await store.put(make_chunk(0))
        assert store.conn is not None

    @pytest.mark.asyncio
    async def test_concurrent_first_use_opens_once(self):
        """Concurrent first callers share a single connection."""
        store = SQLiteChunkStore(RecordingConfig(db_path=":memory:"))
        await asyncio.gather(*(store.put(make_chunk(i)) for i in range(5)))

        chunks = await store.list_by_session("examA")
        assert [c.chunk_index for c in chunks] == [0, 1, 2, 3, 4]
        await store.close()

    @pytest.mark.asyncio
    async def test_unopenable_path_raises_connection_error(self, tmp_path):
        """Open failures surface as StorageConnectionError."""
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        store = SQLiteChunkStore(RecordingConfig(db_path=blocker / "sub" / "db.sqlite"))

        with pytest.raises(StorageConnectionError):
            await store.initialize()

    @pytest.mark.asyncio
    async def test_shared_store_is_reused(self, tmp_path):
        """One store per database path."""
        config = RecordingConfig(db_path=tmp_path / "shared.db")
        assert open_shared_store(config) is open_shared_store(config)


class TestChunkOperations:
    """Tests for chunk put/get/list."""

    @pytest.mark.asyncio
    async def test_put_and_get(self, store):
        """Stored chunk comes back with payload and metadata."""
        events = [RecordingEvent("tab_switch", 1500, "2024-01-15T10:00:01.500+00:00", {"n": 1})]
        await store.put(make_chunk(1, payload=b"\x00\x01binary", events=events))

        chunk = await store.get("examA_stud1_1")

        assert chunk.payload == b"\x00\x01binary"
        assert chunk.size_bytes == 8
        assert chunk.status is ChunkStatus.STORED
        assert chunk.events == events
        assert chunk.start_time == 1000
        assert chunk.end_time == 2000

    @pytest.mark.asyncio
    async def test_get_missing_raises(self, store):
        """Getting an unknown chunk raises ChunkNotFoundError."""
        with pytest.raises(ChunkNotFoundError) as exc_info:
            await store.get("examA_stud1_9")
        assert exc_info.value.chunk_id == "examA_stud1_9"

    @pytest.mark.asyncio
    async def test_put_same_key_overwrites(self, store):
        """Re-putting a chunk id replaces it instead of duplicating."""
        await store.put(make_chunk(0, payload=b"first"))
        await store.put(make_chunk(0, payload=b"second"))

        chunks = await store.list_by_session("examA", include_payload=True)
        assert len(chunks) == 1
        assert chunks[0].payload == b"second"

    @pytest.mark.asyncio
    async def test_list_ordered_by_index(self, store):
        """Listing is ordered by chunk index regardless of insert order."""
        for index in (3, 0, 2, 1):
            await store.put(make_chunk(index))

        chunks = await store.list_by_session("examA")
        assert [c.chunk_index for c in chunks] == [0, 1, 2, 3]

    @pytest.mark.asyncio
    async def test_list_omits_payload_by_default(self, store):
        """Listings leave payloads out unless asked."""
        await store.put(make_chunk(0, payload=b"abc"))

        listed = await store.list_by_session("examA")
        assert listed[0].payload == b""
        assert listed[0].size_bytes == 3

        with_payload = await store.list_by_session("examA", include_payload=True)
        assert with_payload[0].payload == b"abc"

    @pytest.mark.asyncio
    async def test_list_scoped_to_session(self, store):
        """Chunks of other sessions are not listed."""
        await store.put(make_chunk(0, session_id="examA"))
        await store.put(make_chunk(0, session_id="examB"))

        chunks = await store.list_by_session("examA")
        assert [c.session_id for c in chunks] == ["examA"]

    @pytest.mark.asyncio
    async def test_underscored_ids_keep_separate_chunks(self, store):
        """("a_b", "c") and ("a", "b_c") never share a chunk row."""
        await store.put(make_chunk(0, session_id="a_b", subject_id="c", payload=b"first"))
        await store.put(make_chunk(0, session_id="a", subject_id="b_c", payload=b"second"))

        first = await store.list_by_session("a_b", include_payload=True)
        second = await store.list_by_session("a", include_payload=True)
        assert [(c.subject_id, c.payload) for c in first] == [("c", b"first")]
        assert [(c.subject_id, c.payload) for c in second] == [("b_c", b"second")]

    @pytest.mark.asyncio
    async def test_survives_reopen(self, tmp_path):
        """Chunks written to a file database survive closing the store."""
        config = RecordingConfig(db_path=tmp_path / "recordings.db")
        first = await SQLiteChunkStore.create(config)
        await first.put(make_chunk(0, payload=b"durable"))
        await first.close()

        second = await SQLiteChunkStore.create(config)
        chunk = await second.get("examA_stud1_0")
        assert chunk.payload == b"durable"
        await second.close()


class TestStatusUpdates:
    """Tests for update_status."""

    @pytest.mark.asyncio
    async def test_update_status_and_ref(self, store):
        """Status and ref are recorded."""
        await store.put(make_chunk(0))

        chunk = await store.update_status("examA_stud1_0", ChunkStatus.UPLOADED, ref="s3://a")

        assert chunk.status is ChunkStatus.UPLOADED
        assert chunk.uploaded_ref == "s3://a"
        assert chunk.updated_at is not None

    @pytest.mark.asyncio
    async def test_ref_kept_when_not_given(self, store):
        """A status change without ref keeps the previous ref."""
        await store.put(make_chunk(0))
        await store.update_status("examA_stud1_0", ChunkStatus.UPLOADED, ref="s3://a")

        chunk = await store.update_status("examA_stud1_0", ChunkStatus.UPLOADING)

        assert chunk.status is ChunkStatus.UPLOADING
        assert chunk.uploaded_ref == "s3://a"

    @pytest.mark.asyncio
    async def test_update_missing_raises(self, store):
        """Updating an unknown chunk raises ChunkNotFoundError."""
        with pytest.raises(ChunkNotFoundError):
            await store.update_status("missing_x_0", ChunkStatus.UPLOADING)

    @pytest.mark.asyncio
    async def test_strict_refuses_regression(self, store):
        """Strict mode refuses uploaded -> uploading."""
        await store.put(make_chunk(0))
        await store.update_status("examA_stud1_0", ChunkStatus.UPLOADED, ref="s3://a")

        with pytest.raises(InvalidStateError):
            await store.update_status("examA_stud1_0", ChunkStatus.UPLOADING, strict=True)

        chunk = await store.get("examA_stud1_0")
        assert chunk.status is ChunkStatus.UPLOADED

    @pytest.mark.asyncio
    async def test_concurrent_updates_same_key(self, store):
        """Concurrent updates to one key all apply; the record stays consistent."""
        await store.put(make_chunk(0))

        refs = [f"s3://bucket/{i}" for i in range(10)]
        results = await asyncio.gather(
            *(store.update_status("examA_stud1_0", ChunkStatus.UPLOADED, ref=r) for r in refs)
        )

        assert all(r.status is ChunkStatus.UPLOADED for r in results)
        final = await store.get("examA_stud1_0")
        assert final.uploaded_ref in refs
        assert final.payload == b"chunk-0"


class TestDeletion:
    """Tests for bulk and filtered deletion."""

    @pytest.mark.asyncio
    async def test_delete_all_by_session(self, store):
        """All chunks of a session are removed, others are kept."""
        for index in range(3):
            await store.put(make_chunk(index))
        await store.put(make_chunk(0, session_id="examB"))

        assert await store.delete_all_by_session("examA") == 3
        assert await store.list_by_session("examA") == []
        assert len(await store.list_by_session("examB")) == 1

    @pytest.mark.asyncio
    async def test_delete_where_keeps_uploaded(self, store):
        """Only chunks not uploaded are removed."""
        for index in range(3):
            await store.put(make_chunk(index))
        await store.update_status("examA_stud1_1", ChunkStatus.UPLOADED, ref="s3://1")
        await store.update_status("examA_stud1_2", ChunkStatus.UPLOADING)

        assert await store.delete_where("examA") == 2

        remaining = await store.list_by_session("examA")
        assert [(c.chunk_index, c.uploaded_ref) for c in remaining] == [(1, "s3://1")]

    @pytest.mark.asyncio
    async def test_count_by_session(self, store):
        """Counts are grouped by status."""
        for index in range(3):
            await store.put(make_chunk(index))
        await store.update_status("examA_stud1_0", ChunkStatus.UPLOADED, ref="s3://0")

        assert await store.count_by_session("examA") == {"stored": 2, "uploaded": 1}


class TestSessionMetadata:
    """Tests for session metadata records."""

    @pytest.mark.asyncio
    async def test_upsert_and_get(self, store):
        """Metadata round-trips including events."""
        events = [RecordingEvent("session_start", 0, "2024-01-15T10:00:00.000+00:00")]
        await store.upsert_session_metadata(
            SessionMetadata("examA", "stud1", start_time=1000, events=events)
        )

        metadata = await store.get_session_metadata("examA")

        assert metadata is not None
        assert metadata.subject_id == "stud1"
        assert metadata.status is SessionStatus.RECORDING
        assert metadata.events == events
        assert metadata.end_time is None

    @pytest.mark.asyncio
    async def test_upsert_replaces(self, store):
        """Saving again replaces the record for the session."""
        await store.upsert_session_metadata(SessionMetadata("examA", "stud1", start_time=1000))
        await store.upsert_session_metadata(
            SessionMetadata(
                "examA",
                "stud1",
                start_time=1000,
                end_time=5000,
                status=SessionStatus.ENDED,
                total_chunks=4,
            )
        )

        metadata = await store.get_session_metadata("examA")
        assert metadata.status is SessionStatus.ENDED
        assert metadata.end_time == 5000
        assert metadata.total_chunks == 4

    @pytest.mark.asyncio
    async def test_get_nonexistent(self, store):
        """Unknown sessions return None."""
        assert await store.get_session_metadata("nonexistent") is None
