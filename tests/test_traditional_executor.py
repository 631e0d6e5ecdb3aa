"""Tests for the deterministic executor."""

from unittest.mock import AsyncMock

import pytest

from webcheck.executor.traditional import TraditionalExecutor
from webcheck.models.test_plan import Assertion, Step, TestCase

from conftest import SESSION_ID

STEP_TYPES = {"navigate", "click", "type", "select", "wait", "screenshot", "custom"}


def _executor(automation, store, action_logger, **kwargs):
    return TraditionalExecutor(automation, store, action_logger, sleep=AsyncMock(), **kwargs)


def _step_entries(logs):
    return [e for e in logs if e.action_type in STEP_TYPES]


def _assertion_entries(logs):
    return [e for e in logs if e.action_type.startswith("assertion_")]


@pytest.mark.asyncio
class TestTraditionalExecutor:
    """Tests for TraditionalExecutor."""

    async def test_all_steps_and_assertions_pass(
        self, fake_automation, memory_store, action_logger, login_test_case,
    ):
        executor = _executor(fake_automation, memory_store, action_logger)

        result = await executor.execute(SESSION_ID, login_test_case)

        assert result.success is True
        assert result.error_summary is None
        assert [r.status for r in result.results] == ["passed"] * 6
        assert result.results[0].test_name == "Login form - Open login"
        assert result.results[1].test_name == "Login form - type"
        assert [e.action_type for e in result.logs] == [
            "test_start", "navigate", "type", "type", "click",
            "assertion_exists", "assertion_text", "test_end",
        ]
        assert fake_automation.dispose_count == 1

    async def test_failing_step_aborts_run(
        self, make_automation, memory_store, action_logger,
    ):
        automation = make_automation(
            elements={"#submit": {"visible": True}},
            fail_on={"click": RuntimeError("element is detached")},
        )
        test_case = TestCase(
            name="Scenario",
            steps=[
                Step(action="navigate", url="https://example.com"),
                Step(action="click", selector="#submit"),
            ],
            assertions=[Assertion(type="exists", selector="#submit")],
        )

        result = await _executor(automation, memory_store, action_logger).execute(
            SESSION_ID, test_case)

        assert result.success is False
        assert result.error_summary == "click failed: element is detached"
        steps = _step_entries(result.logs)
        assert [(e.action_type, e.error is None) for e in steps] == [
            ("navigate", True), ("click", False),
        ]
        assert _assertion_entries(result.logs) == []
        assert "element_exists" not in automation.operations
        assert automation.dispose_count == 1

    @pytest.mark.parametrize("failing_index", [0, 1, 3])
    async def test_no_step_after_failure_is_attempted(
        self, make_automation, memory_store, action_logger, failing_index,
    ):
        steps = [Step(action="click", selector=f"#b{i}") for i in range(5)]
        steps[failing_index] = Step(action="navigate")  # missing url
        test_case = TestCase(name="Chain", steps=steps,
                             assertions=[Assertion(type="exists", selector="#b0")])
        automation = make_automation()

        result = await _executor(automation, memory_store, action_logger).execute(
            SESSION_ID, test_case)

        entries = _step_entries(result.logs)
        assert len(entries) == failing_index + 1
        assert all(e.error is None for e in entries[:-1])
        assert entries[-1].error == "Missing url for navigate action"
        assert automation.operations == ["click"] * failing_index
        assert _assertion_entries(result.logs) == []

    async def test_later_units_are_skipped(self, make_automation, memory_store, action_logger):
        test_case = TestCase(
            name="Skip",
            steps=[Step(action="navigate"), Step(action="click", selector="#a",
                                                 description="Press A")],
            assertions=[Assertion(type="exists", selector="#a", description="A exists")],
        )

        result = await _executor(make_automation(), memory_store, action_logger).execute(
            SESSION_ID, test_case)

        assert [(r.test_name, r.status) for r in result.results] == [
            ("Skip - navigate", "failed"),
            ("Skip - Press A", "skipped"),
            ("Skip - A exists", "skipped"),
        ]
        stats = await memory_store.get_session_stats(SESSION_ID)
        assert stats.results_summary == {"passed": 0, "failed": 1, "skipped": 2}

    async def test_every_assertion_is_attempted(
        self, fake_automation, memory_store, action_logger,
    ):
        test_case = TestCase(
            name="Assertions",
            steps=[Step(action="navigate", url="https://example.com")],
            assertions=[
                Assertion(type="exists", selector="#missing", description="Missing exists"),
                Assertion(type="count", selector="li.item", expected="many"),
                Assertion(type="visible", selector="#submit"),
                Assertion(type="text", selector="#submit", expected="Nope"),
            ],
        )

        result = await _executor(fake_automation, memory_store, action_logger).execute(
            SESSION_ID, test_case)

        assert result.success is False
        entries = _assertion_entries(result.logs)
        assert [e.action_type for e in entries] == [
            "assertion_exists", "assertion_count", "assertion_visible", "assertion_text",
        ]
        assert [e.error is None for e in entries] == [False, False, True, False]
        assert result.error_summary.startswith("Missing exists: Element #missing does not exist; ")
        assert result.error_summary.count("; ") == 2
        assert fake_automation.dispose_count == 1

    async def test_empty_test_case_succeeds(self, fake_automation, memory_store, action_logger):
        result = await _executor(fake_automation, memory_store, action_logger).execute(
            SESSION_ID, TestCase())
        assert result.success is True
        assert result.results == []
        assert fake_automation.dispose_count == 1

    async def test_screenshots_are_returned(self, fake_automation, memory_store, action_logger,
                                            temp_evidence_dir):
        test_case = TestCase(steps=[Step(action="screenshot"), Step(action="screenshot")])
        executor = _executor(fake_automation, memory_store, action_logger,
                             evidence_dir=temp_evidence_dir)

        result = await executor.execute(SESSION_ID, test_case)

        assert len(result.screenshots) == 2
        assert all(path.endswith(".png") for path in result.screenshots)

    async def test_action_logs_are_stable_after_run(
        self, fake_automation, memory_store, action_logger, login_test_case,
    ):
        result = await _executor(fake_automation, memory_store, action_logger).execute(
            SESSION_ID, login_test_case)

        first = await memory_store.get_action_logs(SESSION_ID)
        second = await memory_store.get_action_logs(SESSION_ID)

        assert first == second == result.logs
        assert [e.id for e in first] == sorted(e.id for e in first)

    async def test_store_failure_still_returns_result(
        self, fake_automation, memory_store, action_logger, login_test_case,
    ):
        memory_store.save_test_result = AsyncMock(side_effect=OSError("disk full"))

        result = await _executor(fake_automation, memory_store, action_logger).execute(
            SESSION_ID, login_test_case)

        assert result.success is False
        assert "disk full" in result.error_summary
        assert fake_automation.dispose_count == 1
