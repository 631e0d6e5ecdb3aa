"""Plan-action handlers for the goal-directed executor."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from webcheck.agent.brain import AgentBrain
from webcheck.errors import ValidationError
from webcheck.models.test_plan import AgentAction

from .action_log import ActionLogger
from .automation import AutomationLease
from .evidence import EvidenceCollector

logger = logging.getLogger(__name__)

DEFAULT_ELEMENT_TIMEOUT_MS = 10000


@dataclass
class AgentContext:
    lease: AutomationLease
    log: ActionLogger
    evidence: EvidenceCollector
    brain: AgentBrain
    criteria: list[str] = field(default_factory=list)
    element_timeout_ms: int = DEFAULT_ELEMENT_TIMEOUT_MS


AgentActionHandler = Callable[[AgentContext, AgentAction], Awaitable[Any]]

AGENT_ACTION_HANDLERS: dict[str, AgentActionHandler] = {}


def register_agent_action(kind: str) -> Callable[[AgentActionHandler], AgentActionHandler]:
    """Register a handler for a planned action ``type``."""
    def decorator(handler: AgentActionHandler) -> AgentActionHandler:
        AGENT_ACTION_HANDLERS[kind] = handler
        return handler
    return decorator


def _param(action: AgentAction, name: str) -> Any:
    value = action.params.get(name)
    if value in (None, ""):
        raise ValidationError(f"{name} is required for {action.type} action")
    return value


async def run_agent_action(ctx: AgentContext, action: AgentAction) -> Any:
    """Validate and dispatch one planned action, logged under its type."""
    logger.debug("Executing agentic action: %s (%s)", action.type, action.description)

    async def _execute() -> Any:
        handler = AGENT_ACTION_HANDLERS.get(action.type)
        if handler is None:
            raise ValidationError(f"Unknown agentic action type: {action.type}")
        return await handler(ctx, action)

    return await ctx.log.timed(action.type or "unknown", dict(action.params), _execute)


@register_agent_action("analyze_page")
async def _analyze_page(ctx: AgentContext, action: AgentAction) -> Any:
    snapshot = await ctx.lease.call("snapshot")
    return {"analyzed": True, "snapshot_chars": len(snapshot)}


@register_agent_action("take_screenshot")
async def _take_screenshot(ctx: AgentContext, action: AgentAction) -> Any:
    data = await ctx.lease.call("take_screenshot")
    path = ctx.evidence.record_screenshot(data, "agentic_screenshot")
    return {"path": path, "bytes": len(data)}


@register_agent_action("click_element")
async def _click_element(ctx: AgentContext, action: AgentAction) -> Any:
    selector = str(_param(action, "selector"))
    await ctx.lease.call("click", selector)
    return {"clicked": selector}


@register_agent_action("type_text")
async def _type_text(ctx: AgentContext, action: AgentAction) -> Any:
    selector = str(_param(action, "selector"))
    text = str(_param(action, "text"))
    await ctx.lease.call("type", selector, text)
    return {"typed": len(text)}


@register_agent_action("navigate_to")
async def _navigate_to(ctx: AgentContext, action: AgentAction) -> Any:
    url = str(_param(action, "url"))
    await ctx.lease.call("navigate", url)
    return {"url": url}


@register_agent_action("wait_for_element")
async def _wait_for_element(ctx: AgentContext, action: AgentAction) -> Any:
    selector = str(_param(action, "selector"))
    try:
        timeout = int(action.params.get("timeout") or ctx.element_timeout_ms)
    except (TypeError, ValueError):
        timeout = ctx.element_timeout_ms
    await ctx.lease.call("wait_for_element", selector, timeout)
    return {"element_appeared": True}


@register_agent_action("verify_success")
async def _verify_success(ctx: AgentContext, action: AgentAction) -> Any:
    snapshot = await ctx.lease.call("snapshot")
    check = await ctx.brain.check_criteria(snapshot, ctx.criteria, ctx.evidence.latest_encoded)
    return {"verification": check.summary()}
