"""Session orchestrator: resolve a configuration, run it, persist the outcome."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Callable, Optional

import pydantic
from pydantic import BaseModel, field_validator

from webcheck.agent.brain import AgentBrain, AIAgentBrain, KeywordBrain
from webcheck.ai.client import AIClient, set_debug_dir
from webcheck.errors import (
    ConfigurationNotFoundError,
    SessionNotFoundError,
    ValidationError,
)
from webcheck.executor.action_log import ActionLogger
from webcheck.executor.agentic import AgenticExecutor
from webcheck.executor.automation import AutomationCapability
from webcheck.executor.playwright_automation import PlaywrightAutomation
from webcheck.executor.traditional import TraditionalExecutor
from webcheck.models.config import WebcheckConfig
from webcheck.models.session import Session
from webcheck.models.test_config import TestConfiguration, TestKind, normalize_test_kind
from webcheck.models.test_plan import GoalDescriptor, TestCase
from webcheck.models.test_result import ExecutionResult
from webcheck.resolver import ConfigResolver
from webcheck.storage.json_store import JsonFileStore
from webcheck.storage.memory import utc_now
from webcheck.url_utils import generate_session_id

logger = logging.getLogger(__name__)

AutomationFactory = Callable[[], AutomationCapability]


class RunRequest(BaseModel):
    """One test run as requested by a caller."""

    url: str
    test_kind: TestKind
    instructions: Any = None  # inline test case / goal, dict or JSON text
    use_stored_config: bool = True

    @field_validator("test_kind", mode="before")
    @classmethod
    def accept_legacy_kind(cls, v: Any) -> Any:
        return normalize_test_kind(v)


def parse_instructions(
    test_kind: str, payload: Any, goal_defaults: Optional[dict[str, Any]] = None,
) -> TestCase | GoalDescriptor:
    """Turn an opaque instruction document into the executor's input model.

    ``goal_defaults`` fills ``max_attempts``/``timeout_ms`` when a goal omits them.
    """
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Instructions are not valid JSON: {e}") from e
    if not isinstance(payload, dict):
        raise ValidationError("Instructions must be a JSON object")
    try:
        if normalize_test_kind(test_kind) == "goal_directed":
            return GoalDescriptor.model_validate(payload, context=goal_defaults)
        return TestCase.model_validate(payload)
    except pydantic.ValidationError as e:
        raise ValidationError(f"Invalid {test_kind} instructions: {e}") from e


class Orchestrator:
    """Caller side of the execution core.

    Owns the store, hands each session a fresh automation capability and
    drives the session record through running -> completed | failed.
    """

    def __init__(
        self,
        config: WebcheckConfig,
        store=None,
        automation_factory: Optional[AutomationFactory] = None,
        brain: Optional[AgentBrain] = None,
    ):
        self.config = config
        self.store = store if store is not None else JsonFileStore(config.store_path)
        self.resolver = ConfigResolver(self.store)
        self.automation_factory = automation_factory or (
            lambda: PlaywrightAutomation(config.browser)
        )
        self.evidence_dir = Path(config.evidence_dir) if config.evidence_dir else None
        self.goal_defaults = {
            "max_attempts": config.default_max_attempts,
            "timeout_ms": config.default_goal_timeout_ms,
        }
        self.brain = brain or self._default_brain()

    def _default_brain(self) -> AgentBrain:
        # The AI brain is optional; without an API key goals are judged offline
        try:
            ai_client = AIClient(
                model=self.config.ai_model,
                max_tokens=self.config.ai_max_tokens,
                api_key=self.config.ai_api_key,
            )
        except EnvironmentError as e:
            logger.warning("AI client unavailable: %s. Using keyword brain.", e)
            return KeywordBrain()
        set_debug_dir(Path(self.config.store_path).parent / "debug")
        return AIAgentBrain(ai_client)

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    async def run_test(
        self,
        url: str,
        test_kind: str,
        instructions: Any = None,
        use_stored_config: bool = True,
    ) -> ExecutionResult:
        request = RunRequest(
            url=url, test_kind=test_kind, instructions=instructions,
            use_stored_config=use_stored_config,
        )
        return await self.run_request(request)

    async def run_request(self, request: RunRequest) -> ExecutionResult:
        config, payload = await self._select_instructions(request)
        if isinstance(payload, GoalDescriptor) and not payload.start_url:
            payload = payload.model_copy(update={"start_url": request.url})

        session_id = generate_session_id()
        config_id = config.id if config else None
        await self.store.create_test_session(Session(
            id=session_id, url=request.url, test_kind=request.test_kind,
            status="running", config_id=config_id,
        ))
        action_logger = ActionLogger(self.store, session_id, config_id)
        await action_logger.log_session_start(request.url, request.test_kind)
        logger.info("Session %s started: %s test of %s%s", session_id, request.test_kind,
                    request.url, f" (config #{config_id})" if config_id else "")

        automation = self.automation_factory()
        if request.test_kind == "goal_directed":
            executor = AgenticExecutor(
                automation, self.store, action_logger,
                brain=self.brain,
                evidence_dir=self.evidence_dir,
                element_timeout_ms=self.config.wait_for_element_timeout_ms,
            )
        else:
            executor = TraditionalExecutor(
                automation, self.store, action_logger,
                evidence_dir=self.evidence_dir,
                default_wait_ms=self.config.default_wait_ms,
            )
        result = await executor.execute(session_id, payload)

        await self._finish_session(session_id, result)
        await action_logger.log_session_end(result.final_status, {
            "success": result.success,
            "error_summary": result.error_summary,
            "execution_time_ms": result.execution_time_ms,
        })
        return result

    async def run_many(self, requests: list[RunRequest]) -> list[ExecutionResult | BaseException]:
        """Run several sessions concurrently, each with its own capability."""
        semaphore = asyncio.Semaphore(self.config.max_parallel_sessions)

        async def _bounded(request: RunRequest) -> ExecutionResult:
            async with semaphore:
                return await self.run_request(request)

        return await asyncio.gather(*(_bounded(r) for r in requests), return_exceptions=True)

    async def _select_instructions(
        self, request: RunRequest,
    ) -> tuple[Optional[TestConfiguration], TestCase | GoalDescriptor]:
        """Stored configuration first, inline instructions as the fallback."""
        if request.use_stored_config:
            config = await self.resolver.resolve(request.url, request.test_kind)
            if config is not None:
                try:
                    payload = parse_instructions(
                        request.test_kind, config.instructions, self.goal_defaults)
                    logger.info("Using stored configuration #%s (%s) for %s",
                                config.id, config.name, request.url)
                    return config, payload
                except ValidationError as e:
                    logger.warning("Stored configuration #%s is unusable (%s). "
                                   "Falling back to request instructions.", config.id, e)

        if request.instructions is None:
            raise ConfigurationNotFoundError(
                f"No {request.test_kind} configuration found for {request.url} "
                "and no instructions provided"
            )
        return None, parse_instructions(
            request.test_kind, request.instructions, self.goal_defaults)

    async def _finish_session(self, session_id: str, result: ExecutionResult) -> None:
        # Logs are stored once, in the action log, not again inside the payload
        session = await self.store.finish_test_session(
            session_id, result.final_status,
            end_time=utc_now(),
            result_payload=result.model_dump(exclude={"logs"}),
            error_summary=result.error_summary,
        )
        if session.status != result.final_status:
            logger.info("Session %s was %s during execution; keeping status",
                        session_id, session.status)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def cancel_session(self, session_id: str) -> Session:
        session = await self.store.get_test_session(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session not found: {session_id}")
        await self.store.update_test_session(
            session_id, status="cancelled", end_time=session.end_time or utc_now(),
        )
        logger.info("Session %s cancelled (was %s)", session_id, session.status)
        return await self.store.get_test_session(session_id)

    async def get_session_detail(self, session_id: str) -> dict[str, Any]:
        session = await self.store.get_test_session(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session not found: {session_id}")
        return {
            "session": session,
            "results": await self.store.get_test_results(session_id),
            "logs": await self.store.get_action_logs(session_id),
            "stats": await self.store.get_session_stats(session_id),
        }

    async def list_sessions(self, limit: Optional[int] = None) -> list[Session]:
        return await self.store.list_test_sessions(limit or self.config.session_list_limit)

    async def cleanup_sessions(self, days_old: Optional[int] = None) -> int:
        return await self.store.cleanup_old_sessions(
            days_old if days_old is not None else self.config.session_retention_days
        )

    # ------------------------------------------------------------------
    # Configurations
    # ------------------------------------------------------------------

    async def add_configuration(
        self, url_pattern: str, name: str, instructions: Any, test_kind: str,
    ) -> int:
        # Reject payloads the executor could never run
        parse_instructions(test_kind, instructions)
        config = TestConfiguration(
            url_pattern=url_pattern, name=name,
            instructions=instructions, test_kind=test_kind,
        )
        return await self.store.create_configuration(config)

    async def list_configurations(self, active_only: bool = False) -> list[TestConfiguration]:
        return await self.store.list_configurations(active_only=active_only)

    async def find_configuration(
        self, url: str, test_kind: Optional[str] = None,
    ) -> Optional[TestConfiguration]:
        return await self.resolver.resolve(url, test_kind)

    async def disable_configuration(self, config_id: int) -> bool:
        return await self.store.deactivate_configuration(config_id)
