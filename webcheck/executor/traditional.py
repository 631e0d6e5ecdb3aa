"""Deterministic executor: ordered steps, then ordered assertions."""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

from webcheck.models.session import ActionLogEntry, UnitResult
from webcheck.models.test_plan import TestCase
from webcheck.models.test_result import ExecutionResult

from .action_log import ActionLogger
from .assertion_checker import check_assertion
from .automation import AutomationCapability, AutomationLease
from .evidence import EvidenceCollector
from .step_runner import DEFAULT_WAIT_MS, StepContext, run_step

logger = logging.getLogger(__name__)


def _ms_since(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class TraditionalExecutor:
    """Runs a :class:`TestCase` against one automation capability.

    Steps are fail-fast: the first failing step aborts the run and no
    assertion is attempted. Assertions are independent: every one is
    attempted and logged, and any failure marks the run failed.
    """

    def __init__(
        self,
        automation: AutomationCapability,
        store,
        action_logger: ActionLogger,
        evidence_dir: Optional[Path] = None,
        default_wait_ms: int = DEFAULT_WAIT_MS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.automation = automation
        self.store = store
        self.log = action_logger
        self.evidence_dir = evidence_dir
        self.default_wait_ms = default_wait_ms
        self.sleep = sleep

    async def execute(self, session_id: str, test_case: TestCase) -> ExecutionResult:
        start = time.monotonic()
        lease = AutomationLease(self.automation)
        evidence = EvidenceCollector(session_id, self.evidence_dir)
        ctx = StepContext(
            lease=lease, log=self.log, evidence=evidence,
            default_wait_ms=self.default_wait_ms, sleep=self.sleep,
        )
        results: list[UnitResult] = []
        success = True
        error_summary: Optional[str] = None

        logger.info("Running test case '%s' (%d steps, %d assertions)",
                    test_case.name, len(test_case.steps), len(test_case.assertions))
        try:
            await self.log.log_test_start(test_case.name)

            failed_step = await self._run_steps(ctx, session_id, test_case, start, results)
            if failed_step is not None:
                index, message = failed_step
                success = False
                error_summary = message
                await self._skip_remaining(session_id, test_case, index, results)
            else:
                failures = await self._run_assertions(ctx, session_id, test_case, start, results)
                if failures:
                    success = False
                    error_summary = "; ".join(failures)
        except Exception as e:
            logger.error("Test case '%s' crashed: %s", test_case.name, e)
            success = False
            error_summary = str(e) or type(e).__name__
        finally:
            await lease.release()

        execution_time = _ms_since(start)
        logs = await self._finish(test_case.name, success, execution_time)
        logger.info("[%s] %s (%dms)", "PASS" if success else "FAIL",
                    test_case.name, execution_time)
        return ExecutionResult(
            session_id=session_id,
            success=success,
            results=results,
            logs=logs,
            screenshots=list(evidence.screenshots),
            error_summary=error_summary,
            execution_time_ms=execution_time,
        )

    async def _run_steps(
        self, ctx: StepContext, session_id: str, test_case: TestCase,
        start: float, results: list[UnitResult],
    ) -> Optional[tuple[int, str]]:
        """Run steps in order. Returns (index, message) of the first failure."""
        total = len(test_case.steps)
        for index, step in enumerate(test_case.steps):
            logger.debug("  Step %d/%d: %s %s", index + 1, total, step.action,
                         step.description or step.selector or step.url or "")
            name = f"{test_case.name} - {step.description or step.action}"
            try:
                await run_step(ctx, step)
            except Exception as e:
                message = str(e) or type(e).__name__
                logger.warning("Step %d (%s) failed: %s", index + 1, step.action, message)
                await self._save(results, session_id, name, "failed", start, message)
                return index, message
            await self._save(results, session_id, name, "passed", start)
        return None

    async def _run_assertions(
        self, ctx: StepContext, session_id: str, test_case: TestCase,
        start: float, results: list[UnitResult],
    ) -> list[str]:
        """Run every assertion. Returns one message per failed assertion."""
        failures: list[str] = []
        total = len(test_case.assertions)
        for index, assertion in enumerate(test_case.assertions):
            label = assertion.description or assertion.type
            name = f"{test_case.name} - {label}"
            try:
                await check_assertion(ctx, assertion)
            except Exception as e:
                message = str(e) or type(e).__name__
                logger.debug("  Assertion %d/%d: FAILED: %s", index + 1, total, message)
                failures.append(f"{label}: {message}")
                await self._save(results, session_id, name, "failed", start, message)
                continue
            logger.debug("  Assertion %d/%d: PASSED", index + 1, total)
            await self._save(results, session_id, name, "passed", start)
        return failures

    async def _skip_remaining(
        self, session_id: str, test_case: TestCase, failed_index: int,
        results: list[UnitResult],
    ) -> None:
        skipped = [s.description or s.action for s in test_case.steps[failed_index + 1:]]
        skipped += [a.description or a.type for a in test_case.assertions]
        for label in skipped:
            result = UnitResult(
                session_id=session_id,
                test_name=f"{test_case.name} - {label}",
                status="skipped",
                error_message="Skipped due to earlier step failure",
            )
            await self.store.save_test_result(result)
            results.append(result)

    async def _save(
        self, results: list[UnitResult], session_id: str, name: str, status: str,
        start: float, error: Optional[str] = None,
    ) -> None:
        result = UnitResult(
            session_id=session_id, test_name=name, status=status,
            error_message=error, execution_time_ms=_ms_since(start),
        )
        await self.store.save_test_result(result)
        results.append(result)

    async def _finish(self, name: str, success: bool, execution_time: int) -> list[ActionLogEntry]:
        try:
            await self.log.log_test_end(name, "passed" if success else "failed", execution_time)
            return await self.store.get_action_logs(self.log.session_id)
        except Exception as e:
            logger.error("Could not finalize action log for %s: %s", self.log.session_id, e)
            return []
