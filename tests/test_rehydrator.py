"""Tests for the persisted active-session pointer."""

import json

import pytest

from recording_session_storage import SessionRehydrator, StorageIOError


class TestSessionRehydrator:
    @pytest.mark.asyncio
    async def test_remember_writes_state_file(self, tmp_path):
        path = tmp_path / "nested" / "active_session.json"
        rehydrator = SessionRehydrator(path)

        await rehydrator.remember("examA", "stud1")

        data = json.loads(path.read_text())
        assert data["session_id"] == "examA"
        assert data["subject_id"] == "stud1"
        assert "updated_at" in data
        assert rehydrator.current_session_id() == "examA"

    @pytest.mark.asyncio
    async def test_resolve_from_file_in_new_instance(self, tmp_path):
        path = tmp_path / "active_session.json"
        await SessionRehydrator(path).remember("examA", "stud1")

        restarted = SessionRehydrator(path)
        assert restarted.current_session_id() is None

        assert await restarted.resolve() == "examA"
        assert restarted.current_session_id() == "examA"
        assert restarted.subject_id == "stud1"

    @pytest.mark.asyncio
    async def test_resolve_prefers_memory(self, tmp_path):
        path = tmp_path / "active_session.json"
        rehydrator = SessionRehydrator(path)
        await rehydrator.remember("examA", "stud1")
        path.write_text(json.dumps({"session_id": "other"}))

        assert await rehydrator.resolve() == "examA"

    @pytest.mark.asyncio
    async def test_resolve_missing_file(self, tmp_path):
        assert await SessionRehydrator(tmp_path / "missing.json").resolve() is None

    @pytest.mark.asyncio
    async def test_resolve_empty_file(self, tmp_path):
        path = tmp_path / "active_session.json"
        path.write_text("")

        assert await SessionRehydrator(path).resolve() is None

    @pytest.mark.asyncio
    async def test_resolve_corrupt_file_raises(self, tmp_path):
        path = tmp_path / "active_session.json"
        path.write_text("{not json")

        with pytest.raises(StorageIOError):
            await SessionRehydrator(path).resolve()

    @pytest.mark.asyncio
    async def test_forget(self, tmp_path):
        path = tmp_path / "active_session.json"
        rehydrator = SessionRehydrator(path)
        await rehydrator.remember("examA", "stud1")

        assert await rehydrator.forget() is True
        assert not path.exists()
        assert rehydrator.current_session_id() is None
        assert await rehydrator.resolve() is None
        assert await rehydrator.forget() is False

    @pytest.mark.asyncio
    async def test_remember_replaces_previous(self, tmp_path):
        path = tmp_path / "active_session.json"
        rehydrator = SessionRehydrator(path)
        await rehydrator.remember("examA", "stud1")
        await rehydrator.remember("examB", "stud2")

        assert await SessionRehydrator(path).resolve() == "examB"
        assert [p.name for p in tmp_path.iterdir()] == ["active_session.json"]

    @pytest.mark.asyncio
    async def test_failed_remember_keeps_previous_session(self, tmp_path):
        rehydrator = SessionRehydrator(tmp_path / "active_session.json")
        await rehydrator.remember("examA", "stud1")
        (tmp_path / "blocker").write_text("")
        rehydrator.state_path = tmp_path / "blocker" / "active_session.json"

        with pytest.raises(StorageIOError):
            await rehydrator.remember("examB", "stud2")

        assert rehydrator.current_session_id() == "examA"
        assert rehydrator.subject_id == "stud1"
