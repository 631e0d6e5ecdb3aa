"""Step runner: dispatches deterministic steps to registered handlers."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from webcheck.errors import ValidationError
from webcheck.models.test_plan import Step

from .action_log import ActionLogger
from .automation import AutomationLease
from .evidence import EvidenceCollector

logger = logging.getLogger(__name__)

DEFAULT_WAIT_MS = 5000


@dataclass
class StepContext:
    lease: AutomationLease
    log: ActionLogger
    evidence: EvidenceCollector
    default_wait_ms: int = DEFAULT_WAIT_MS
    sleep: Callable[[float], Awaitable[Any]] = field(default=asyncio.sleep)


StepHandler = Callable[[StepContext, Step], Awaitable[Any]]

STEP_HANDLERS: dict[str, StepHandler] = {}


def register_step(action: str) -> Callable[[StepHandler], StepHandler]:
    """Register a handler for a step ``action`` tag."""
    def decorator(handler: StepHandler) -> StepHandler:
        STEP_HANDLERS[action] = handler
        return handler
    return decorator


def _require(step: Step, *fields: str) -> None:
    missing = [f for f in fields if getattr(step, f) in (None, "")]
    if missing:
        raise ValidationError(f"Missing {' and '.join(missing)} for {step.action} action")


def _masked(step: Step) -> dict[str, Any]:
    """Loggable step data with password values hidden."""
    data = step.model_dump(exclude_none=True, exclude={"description"})
    if "value" in data and "password" in (step.selector or "").lower():
        data["value"] = "***"
    return data


async def run_step(ctx: StepContext, step: Step) -> Any:
    """Execute a single step; always produces exactly one log entry."""
    logger.debug("Running step: %s | selector=%s | %s",
                 step.action, step.selector, step.description or "")

    async def _execute() -> Any:
        handler = STEP_HANDLERS.get(step.action)
        if handler is None:
            raise ValidationError(f"Unknown action type: {step.action}")
        return await handler(ctx, step)

    return await ctx.log.timed(step.action or "unknown", _masked(step), _execute)


@register_step("navigate")
async def _navigate(ctx: StepContext, step: Step) -> Any:
    _require(step, "url")
    await ctx.lease.call("navigate", step.url)
    return {"url": step.url}


@register_step("click")
async def _click(ctx: StepContext, step: Step) -> Any:
    _require(step, "selector")
    await ctx.lease.call("click", step.selector)
    return {"clicked": step.selector}


@register_step("type")
async def _type(ctx: StepContext, step: Step) -> Any:
    _require(step, "selector", "value")
    await ctx.lease.call("type", step.selector, step.value)
    return {"typed": len(step.value)}


@register_step("select")
async def _select(ctx: StepContext, step: Step) -> Any:
    _require(step, "selector", "value")
    await ctx.lease.call("select_option", step.selector, step.value)
    return {"selected": step.value}


@register_step("wait")
async def _wait(ctx: StepContext, step: Step) -> Any:
    timeout = step.timeout or ctx.default_wait_ms
    await ctx.sleep(timeout / 1000)
    return {"waited_ms": timeout}


@register_step("screenshot")
async def _screenshot(ctx: StepContext, step: Step) -> Any:
    data = await ctx.lease.call("take_screenshot")
    path = ctx.evidence.record_screenshot(data, "screenshot")
    return {"path": path, "bytes": len(data)}


@register_step("custom")
async def _custom(ctx: StepContext, step: Step) -> Any:
    # Executed outside the core; recorded for the audit trail only
    return {"info": f"Custom step: {step.description}", "delegated": True}
