"""Assertion checker: evaluates assertions against page state."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from webcheck.errors import AssertionFailedError, ValidationError
from webcheck.models.test_plan import Assertion

from .step_runner import StepContext

logger = logging.getLogger(__name__)

AssertionHandler = Callable[[StepContext, Assertion], Awaitable[Any]]

ASSERTION_HANDLERS: dict[str, AssertionHandler] = {}


def register_assertion(kind: str) -> Callable[[AssertionHandler], AssertionHandler]:
    """Register a handler for an assertion ``type`` tag."""
    def decorator(handler: AssertionHandler) -> AssertionHandler:
        ASSERTION_HANDLERS[kind] = handler
        return handler
    return decorator


async def check_assertion(ctx: StepContext, assertion: Assertion) -> Any:
    """Evaluate one assertion, logging it as ``assertion_<type>``.

    Raises AssertionFailedError on mismatch and ValidationError when the
    assertion is incomplete.
    """
    logger.debug("Checking assertion: %s | selector=%s", assertion.type, assertion.selector)

    async def _execute() -> Any:
        handler = ASSERTION_HANDLERS.get(assertion.type)
        if handler is None:
            raise ValidationError(f"Unknown assertion type: {assertion.type}")
        return await handler(ctx, assertion)

    data = assertion.model_dump(exclude_none=True, exclude={"description", "type"})
    return await ctx.log.timed(f"assertion_{assertion.type or 'unknown'}", data, _execute)


def _require_selector(assertion: Assertion) -> str:
    if not assertion.selector:
        raise ValidationError(f"Selector is required for {assertion.type} assertion")
    return assertion.selector


def _require_expected(assertion: Assertion) -> Any:
    if assertion.expected is None:
        raise ValidationError(f"Expected value is required for {assertion.type} assertion")
    return assertion.expected


@register_assertion("exists")
async def _check_exists(ctx: StepContext, assertion: Assertion) -> Any:
    selector = _require_selector(assertion)
    exists = await ctx.lease.call("element_exists", selector)
    if not exists:
        raise AssertionFailedError(f"Element {selector} does not exist")
    return {"exists": True}


@register_assertion("visible")
async def _check_visible(ctx: StepContext, assertion: Assertion) -> Any:
    selector = _require_selector(assertion)
    visible = await ctx.lease.call("element_visible", selector)
    if not visible:
        raise AssertionFailedError(f"Element {selector} is not visible")
    return {"visible": True}


@register_assertion("text")
async def _check_text(ctx: StepContext, assertion: Assertion) -> Any:
    selector = _require_selector(assertion)
    # Surrounding whitespace is ignored on both sides
    expected = str(_require_expected(assertion)).strip()
    actual = (await ctx.lease.call("element_text", selector)).strip()
    if actual != expected:
        raise AssertionFailedError(f'Expected text "{expected}", got "{actual}"')
    return {"actual": actual, "expected": expected}


@register_assertion("value")
async def _check_value(ctx: StepContext, assertion: Assertion) -> Any:
    selector = _require_selector(assertion)
    expected = str(_require_expected(assertion))
    actual = await ctx.lease.call("element_value", selector)
    if actual != expected:
        raise AssertionFailedError(f'Expected value "{expected}", got "{actual}"')
    return {"actual": actual, "expected": expected}


@register_assertion("count")
async def _check_count(ctx: StepContext, assertion: Assertion) -> Any:
    selector = _require_selector(assertion)
    raw = _require_expected(assertion)
    if isinstance(raw, bool) or (isinstance(raw, float) and not raw.is_integer()):
        raise ValidationError(f"Expected count must be an integer, got {raw!r}")
    try:
        expected = int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"Expected count must be an integer, got {raw!r}") from None
    actual = await ctx.lease.call("element_count", selector)
    if actual != expected:
        raise AssertionFailedError(f"Expected {expected} elements, found {actual}")
    return {"actual": actual, "expected": expected}


@register_assertion("custom")
async def _check_custom(ctx: StepContext, assertion: Assertion) -> Any:
    # Not verified in-core
    return {"info": f"Custom assertion: {assertion.description}", "verified": False}
