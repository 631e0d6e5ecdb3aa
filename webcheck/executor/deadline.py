"""Deadline token threaded through a goal-directed run."""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, TypeVar

from webcheck.errors import ExecutionTimeoutError

T = TypeVar("T")


class Deadline:
    """Wall-clock budget armed once at the start of a run."""

    def __init__(self, timeout_ms: int, clock: Callable[[], float] = time.monotonic):
        self.timeout_ms = timeout_ms
        self._clock = clock
        self._expires_at = clock() + timeout_ms / 1000

    def remaining(self) -> float:
        """Seconds left, never negative."""
        return max(0.0, self._expires_at - self._clock())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0

    def check(self) -> None:
        if self.expired:
            raise ExecutionTimeoutError(self.timeout_ms)

    async def bound(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` but give up when the deadline passes.

        A ``TimeoutError`` raised by the awaited call itself is passed on
        unchanged; only the deadline cutting the call short becomes an
        :class:`ExecutionTimeoutError`.
        """
        if self.expired:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise ExecutionTimeoutError(self.timeout_ms)
        inner = asyncio.ensure_future(awaitable)
        try:
            return await asyncio.wait_for(inner, timeout=self.remaining())
        except asyncio.TimeoutError:
            if inner.cancelled() or self.expired:
                raise ExecutionTimeoutError(self.timeout_ms) from None
            raise
