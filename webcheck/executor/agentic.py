"""Goal-directed executor: bounded attempts toward natural-language criteria."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Optional

from webcheck.agent.brain import AgentBrain, CriteriaCheck, KeywordBrain
from webcheck.errors import ExecutionTimeoutError, ValidationError
from webcheck.models.session import ActionLogEntry, UnitResult
from webcheck.models.test_plan import GoalDescriptor
from webcheck.models.test_result import ExecutionResult

from .action_log import ActionLogger
from .agent_actions import DEFAULT_ELEMENT_TIMEOUT_MS, AgentContext, run_agent_action
from .automation import AutomationCapability, AutomationLease
from .deadline import Deadline
from .evidence import EvidenceCollector

logger = logging.getLogger(__name__)


class AgenticExecutor:
    """Runs a :class:`GoalDescriptor` within ``max_attempts`` and ``timeout_ms``.

    When the goal names a ``start_url`` it is opened once before the first
    attempt. Each attempt snapshots the page, asks the brain for an analysis
    and a plan, then executes the plan one action at a time, re-checking the
    success criteria after every action. A failed attempt is logged and the
    next one starts; the deadline ends the run wherever it is reached.
    """

    def __init__(
        self,
        automation: AutomationCapability,
        store,
        action_logger: ActionLogger,
        brain: Optional[AgentBrain] = None,
        evidence_dir: Optional[Path] = None,
        element_timeout_ms: int = DEFAULT_ELEMENT_TIMEOUT_MS,
    ):
        self.automation = automation
        self.store = store
        self.log = action_logger
        self.brain = brain or KeywordBrain()
        self.evidence_dir = evidence_dir
        self.element_timeout_ms = element_timeout_ms

    async def execute(self, session_id: str, goal: GoalDescriptor) -> ExecutionResult:
        start = time.monotonic()
        test_name = f"Agentic Test: {goal.goal}"
        deadline = Deadline(goal.timeout_ms)
        lease = AutomationLease(self.automation, deadline)
        evidence = EvidenceCollector(session_id, self.evidence_dir)
        ctx = AgentContext(
            lease=lease, log=self.log, evidence=evidence, brain=self.brain,
            criteria=list(goal.success_criteria),
            element_timeout_ms=self.element_timeout_ms,
        )

        success = False
        attempts = 0
        last_error: Optional[Exception] = None

        logger.info("Running goal '%s' (max_attempts=%d, timeout=%dms)",
                    goal.goal, goal.max_attempts, goal.timeout_ms)
        try:
            await self.log.log_test_start(test_name)
            await self.log.log_info("Starting agentic test execution", {
                "goal": goal.goal,
                "context": goal.context,
                "success_criteria": goal.success_criteria,
                "max_attempts": goal.max_attempts,
                "timeout_ms": goal.timeout_ms,
            })
            if not goal.success_criteria:
                raise ValidationError("At least one success criterion is required")
            if goal.start_url:
                await self.log.timed(
                    "navigate", {"url": goal.start_url},
                    lambda: lease.call("navigate", goal.start_url),
                )

            while attempts < goal.max_attempts and not success:
                deadline.check()
                attempts += 1
                await self.log.log_action("attempt_start", {
                    "attempt": attempts, "max_attempts": goal.max_attempts,
                })
                try:
                    success = await self._run_attempt(ctx, goal, deadline, attempts)
                    last_error = None
                except ExecutionTimeoutError:
                    raise
                except Exception as e:
                    last_error = e
                    logger.warning("Attempt %d/%d failed: %s", attempts, goal.max_attempts, e)
                    await self.log.log_error(e, {
                        "attempt": attempts,
                        "elapsed_ms": int((time.monotonic() - start) * 1000),
                    })
        except ExecutionTimeoutError as e:
            last_error = e
            logger.warning("Goal '%s' timed out after %d attempt(s)", goal.goal, attempts)
            await self._log_quietly(e, attempts)
        except Exception as e:
            last_error = e
            logger.error("Goal '%s' crashed: %s", goal.goal, e)
            await self._log_quietly(e, attempts)
        finally:
            await lease.release()

        if success:
            error_summary = None
        elif last_error is not None:
            error_summary = str(last_error) or type(last_error).__name__
        else:
            error_summary = f"Failed to achieve goal: {goal.goal}"

        execution_time = int((time.monotonic() - start) * 1000)
        result = UnitResult(
            session_id=session_id,
            test_name=test_name,
            status="passed" if success else "failed",
            error_message=error_summary,
            execution_time_ms=execution_time,
        )
        logs = await self._finish(result, test_name, success, execution_time)
        logger.info("[%s] %s after %d attempt(s) (%dms)", "PASS" if success else "FAIL",
                    test_name, attempts, execution_time)
        return ExecutionResult(
            session_id=session_id,
            success=success,
            results=[result],
            logs=logs,
            screenshots=list(evidence.screenshots),
            error_summary=error_summary,
            execution_time_ms=execution_time,
            attempts=attempts,
        )

    async def _run_attempt(
        self, ctx: AgentContext, goal: GoalDescriptor, deadline: Deadline, attempt: int,
    ) -> bool:
        """One snapshot -> analyze -> plan -> act loop. Returns True once criteria hold."""
        snapshot = await self._snapshot(ctx)
        analysis = await self.log.timed(
            "analyze_state", {"attempt": attempt},
            lambda: deadline.bound(self.brain.analyze(snapshot, goal)),
        )
        plan = await self.log.timed(
            "plan_actions", {"attempt": attempt},
            lambda: deadline.bound(self.brain.plan(analysis, goal)),
        )
        await self.log.log_info("Generated action plan", {
            "attempt": attempt, "actions": [a.type for a in plan],
        })

        for action in plan:
            deadline.check()
            await run_agent_action(ctx, action)

            snapshot = await self._snapshot(ctx)
            check: CriteriaCheck = await self.log.timed(
                "check_criteria", {"attempt": attempt, "after": action.type},
                lambda: deadline.bound(self.brain.check_criteria(
                    snapshot, ctx.criteria, ctx.evidence.latest_encoded)),
            )
            if check.satisfied:
                await self.log.log_info("Success criteria met", check.summary())
                return True
        return False

    async def _snapshot(self, ctx: AgentContext) -> str:
        async def _take() -> str:
            return await ctx.lease.call("snapshot")

        snapshot = await self.log.timed("take_snapshot", None, _take)
        return snapshot

    async def _log_quietly(self, error: Exception, attempts: int) -> None:
        try:
            await self.log.log_error(error, {"attempt": attempts})
        except Exception as log_err:
            logger.error("Could not log failure: %s", log_err)

    async def _finish(
        self, result: UnitResult, test_name: str, success: bool, execution_time: int,
    ) -> list[ActionLogEntry]:
        try:
            await self.store.save_test_result(result)
            await self.log.log_test_end(test_name, "passed" if success else "failed", execution_time)
            return await self.store.get_action_logs(self.log.session_id)
        except Exception as e:
            logger.error("Could not finalize action log for %s: %s", self.log.session_id, e)
            return []
