"""Tests for the memory and JSON-file stores."""

import asyncio
import json
from unittest.mock import patch

import pytest

from webcheck.errors import SessionNotFoundError
from webcheck.models.session import ActionLogEntry, Session, UnitResult
from webcheck.models.test_config import TestConfiguration
from webcheck.storage.json_store import JsonFileStore
from webcheck.storage.memory import MemoryStore

SID = "session_store_1"


def _session(session_id=SID, start_time=""):
    return Session(id=session_id, url="https://example.com", test_kind="deterministic",
                   start_time=start_time)


def _config(pattern="example.com"):
    return TestConfiguration(url_pattern=pattern, name="Example", instructions={"steps": []},
                             test_kind="traditional")


@pytest.mark.asyncio
class TestConfigurations:
    """Configuration CRUD."""

    async def test_create_assigns_id_and_timestamps(self, memory_store):
        config_id = await memory_store.create_configuration(_config())
        stored = await memory_store.get_configuration(config_id)
        assert config_id == 1
        assert stored.created_at and stored.updated_at
        assert stored.test_kind == "deterministic"

    async def test_list_active_only(self, memory_store):
        first = await memory_store.create_configuration(_config("a"))
        await memory_store.create_configuration(_config("b"))
        await memory_store.deactivate_configuration(first)

        active = await memory_store.list_configurations(active_only=True)
        everything = await memory_store.list_configurations()

        assert [c.url_pattern for c in active] == ["b"]
        assert [c.url_pattern for c in everything] == ["a", "b"]

    async def test_update(self, memory_store):
        config_id = await memory_store.create_configuration(_config())
        assert await memory_store.update_configuration(config_id, name="Renamed")
        assert (await memory_store.get_configuration(config_id)).name == "Renamed"

    async def test_update_unknown(self, memory_store):
        assert await memory_store.update_configuration(99, name="x") is False


@pytest.mark.asyncio
class TestSessions:
    """Session records."""

    async def test_create_sets_start_time(self, memory_store):
        await memory_store.create_test_session(_session())
        stored = await memory_store.get_test_session(SID)
        assert stored.status == "running"
        assert stored.start_time.endswith("Z")

    async def test_duplicate_id_is_rejected(self, memory_store):
        await memory_store.create_test_session(_session())
        with pytest.raises(ValueError):
            await memory_store.create_test_session(_session())

    async def test_partial_update(self, memory_store):
        await memory_store.create_test_session(_session())
        await memory_store.update_test_session(SID, status="completed", error_summary=None)
        stored = await memory_store.get_test_session(SID)
        assert stored.status == "completed"
        assert stored.url == "https://example.com"

    async def test_update_unknown_session(self, memory_store):
        with pytest.raises(SessionNotFoundError):
            await memory_store.update_test_session("nope", status="failed")

    async def test_finish_sets_status_of_running_session(self, memory_store):
        await memory_store.create_test_session(_session())
        stored = await memory_store.finish_test_session(
            SID, "failed", end_time="2024-01-01T00:00:05Z", error_summary="boom")
        assert stored.status == "failed"
        assert stored.error_summary == "boom"

    async def test_finish_keeps_cancellation(self, memory_store):
        await memory_store.create_test_session(_session())
        await memory_store.update_test_session(SID, status="cancelled")

        stored = await memory_store.finish_test_session(
            SID, "completed", result_payload={"success": True})

        assert stored.status == "cancelled"
        assert stored.result_payload == {"success": True}

    async def test_finish_queued_behind_cancel_keeps_cancellation(self, memory_store):
        await memory_store.create_test_session(_session())
        async with memory_store._lock:
            cancel = asyncio.ensure_future(
                memory_store.update_test_session(SID, status="cancelled"))
            await asyncio.sleep(0)
            finish = asyncio.ensure_future(
                memory_store.finish_test_session(SID, "completed", end_time="done"))
            await asyncio.sleep(0)
        await asyncio.gather(cancel, finish)

        stored = await memory_store.get_test_session(SID)
        assert stored.status == "cancelled"
        assert stored.end_time == "done"

    async def test_finish_unknown_session(self, memory_store):
        with pytest.raises(SessionNotFoundError):
            await memory_store.finish_test_session("nope", "failed")

    async def test_list_newest_first(self, memory_store):
        await memory_store.create_test_session(_session("old", "2024-01-01T00:00:00Z"))
        await memory_store.create_test_session(_session("new", "2024-06-01T00:00:00Z"))
        sessions = await memory_store.list_test_sessions(limit=1)
        assert [s.id for s in sessions] == ["new"]


@pytest.mark.asyncio
class TestActionLogs:
    """Append-only log entries."""

    async def test_insertion_order_and_ids(self, memory_store):
        for kind in ("navigate", "click", "assertion_exists"):
            await memory_store.log_action(ActionLogEntry(session_id=SID, action_type=kind))
        await memory_store.log_action(ActionLogEntry(session_id="other", action_type="navigate"))

        logs = await memory_store.get_action_logs(SID)

        assert [e.action_type for e in logs] == ["navigate", "click", "assertion_exists"]
        assert [e.id for e in logs] == [1, 2, 3]
        assert all(e.timestamp for e in logs)

    async def test_repeated_reads_are_identical(self, memory_store):
        for kind in ("navigate", "click"):
            await memory_store.log_action(ActionLogEntry(session_id=SID, action_type=kind))

        first = await memory_store.get_action_logs(SID)
        first[0].action_type = "tampered"
        second = await memory_store.get_action_logs(SID)
        third = await memory_store.get_action_logs(SID)

        assert [e.action_type for e in second] == ["navigate", "click"]
        assert second == third


@pytest.mark.asyncio
class TestStatsAndCleanup:
    """Analytics and housekeeping."""

    async def test_session_stats(self, memory_store):
        await memory_store.log_action(ActionLogEntry(
            session_id=SID, action_type="navigate", execution_time_ms=100))
        await memory_store.log_action(ActionLogEntry(
            session_id=SID, action_type="click", execution_time_ms=50, error="boom"))
        await memory_store.log_action(ActionLogEntry(session_id=SID, action_type="info"))
        for status in ("passed", "failed", "skipped", "skipped"):
            await memory_store.save_test_result(UnitResult(
                session_id=SID, test_name="t", status=status))

        stats = await memory_store.get_session_stats(SID)

        assert stats.total_actions == 3
        assert stats.total_errors == 1
        assert stats.avg_execution_time == 75.0
        assert stats.results_summary == {"passed": 1, "failed": 1, "skipped": 2}

    async def test_stats_for_empty_session(self, memory_store):
        stats = await memory_store.get_session_stats("unknown")
        assert stats.total_actions == 0
        assert stats.avg_execution_time == 0.0

    async def test_cleanup_removes_old_sessions_with_children(self, memory_store):
        await memory_store.create_test_session(_session("old", "2000-01-01T00:00:00Z"))
        await memory_store.create_test_session(_session("fresh"))
        for sid in ("old", "fresh"):
            await memory_store.log_action(ActionLogEntry(session_id=sid, action_type="navigate"))
            await memory_store.save_test_result(UnitResult(
                session_id=sid, test_name="t", status="passed"))

        removed = await memory_store.cleanup_old_sessions(days_old=30)

        assert removed == 1
        assert await memory_store.get_test_session("old") is None
        assert await memory_store.get_action_logs("old") == []
        assert await memory_store.get_test_results("old") == []
        assert len(await memory_store.get_action_logs("fresh")) == 1

    async def test_cleanup_nothing_to_do(self, memory_store):
        await memory_store.create_test_session(_session())
        assert await memory_store.cleanup_old_sessions(30) == 0


@pytest.mark.asyncio
class TestJsonFileStore:
    """Durable store."""

    async def test_persists_across_instances(self, tmp_path):
        path = tmp_path / "store.json"
        store = JsonFileStore(path)
        config_id = await store.create_configuration(_config())
        await store.create_test_session(_session())
        await store.log_action(ActionLogEntry(session_id=SID, action_type="navigate",
                                              action_data={"url": "https://example.com"}))
        await store.save_test_result(UnitResult(session_id=SID, test_name="t", status="passed"))

        reopened = JsonFileStore(path)

        assert (await reopened.get_configuration(config_id)).name == "Example"
        assert (await reopened.get_test_session(SID)).status == "running"
        assert [e.action_type for e in await reopened.get_action_logs(SID)] == ["navigate"]
        assert len(await reopened.get_test_results(SID)) == 1

    async def test_ids_continue_after_reload(self, tmp_path):
        path = tmp_path / "store.json"
        await JsonFileStore(path).create_configuration(_config("a"))
        assert await JsonFileStore(path).create_configuration(_config("b")) == 2

    async def test_writes_json_document(self, tmp_path):
        path = tmp_path / "store.json"
        await JsonFileStore(path).create_test_session(_session())
        data = json.loads(path.read_text())
        assert data["sessions"][0]["id"] == SID
        assert not (tmp_path / "store.json.tmp").exists()

    async def test_corrupt_file_starts_empty(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("{not json")
        store = JsonFileStore(path)
        assert await store.list_configurations() == []

    async def test_is_a_memory_store(self, tmp_path):
        assert isinstance(JsonFileStore(tmp_path / "s.json"), MemoryStore)

    async def test_history_is_appended_as_json_lines(self, tmp_path):
        path = tmp_path / "store.json"
        store = JsonFileStore(path)
        await store.create_test_session(_session())
        document = path.read_text()

        for i in range(3):
            await store.log_action(ActionLogEntry(session_id=SID, action_type=f"step_{i}"))
        await store.save_test_result(UnitResult(session_id=SID, test_name="t", status="passed"))

        assert path.read_text() == document
        lines = (tmp_path / "store.logs.jsonl").read_text().splitlines()
        assert [json.loads(line)["action_type"] for line in lines] == [
            "step_0", "step_1", "step_2"]
        assert len((tmp_path / "store.results.jsonl").read_text().splitlines()) == 1

    async def test_log_ids_continue_after_reload(self, tmp_path):
        path = tmp_path / "store.json"
        store = JsonFileStore(path)
        await store.log_action(ActionLogEntry(session_id=SID, action_type="a"))
        await store.log_action(ActionLogEntry(session_id=SID, action_type="b"))

        reopened = JsonFileStore(path)
        await reopened.log_action(ActionLogEntry(session_id=SID, action_type="c"))

        assert [e.id for e in await reopened.get_action_logs(SID)] == [1, 2, 3]

    async def test_unreadable_log_line_is_skipped(self, tmp_path):
        path = tmp_path / "store.json"
        await JsonFileStore(path).log_action(ActionLogEntry(session_id=SID, action_type="a"))
        with open(tmp_path / "store.logs.jsonl", "a") as f:
            f.write("{truncated\n")

        assert len(await JsonFileStore(path).get_action_logs(SID)) == 1

    async def test_cleanup_rewrites_history(self, tmp_path):
        path = tmp_path / "store.json"
        store = JsonFileStore(path)
        await store.create_test_session(_session("old", "2020-01-01T00:00:00Z"))
        await store.create_test_session(_session("new"))
        await store.log_action(ActionLogEntry(session_id="old", action_type="a"))
        await store.log_action(ActionLogEntry(session_id="new", action_type="b"))

        assert await store.cleanup_old_sessions(30) == 1

        reopened = JsonFileStore(path)
        assert list(reopened.sessions) == ["new"]
        assert [e.session_id for e in reopened.action_logs] == ["new"]

    async def test_file_writes_run_in_worker_thread(self, tmp_path):
        store = JsonFileStore(tmp_path / "store.json")
        with patch("webcheck.storage.json_store.asyncio.to_thread",
                   wraps=asyncio.to_thread) as to_thread:
            await store.log_action(ActionLogEntry(session_id=SID, action_type="a"))
        to_thread.assert_called_once()
