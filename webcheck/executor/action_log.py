"""Action logger: the durable per-session audit trail."""

from __future__ import annotations

import logging
import time
from typing import Any, Awaitable, Callable, Optional, TypeVar

from pydantic import BaseModel

from webcheck.models.session import ActionLogEntry

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _loggable(value: Any) -> Any:
    """Make a handler result safe to store in a log entry."""
    if value is None:
        return None
    if isinstance(value, BaseModel):
        return value.model_dump()
    if isinstance(value, (bytes, bytearray)):
        return {"bytes": len(value)}
    if isinstance(value, dict):
        return {k: _loggable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_loggable(v) for v in value]
    return value


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class ActionLogger:
    """Writes one entry per attempted operation and mirrors it to ``logging``."""

    def __init__(self, store, session_id: str, config_id: Optional[int] = None):
        self.store = store
        self.session_id = session_id
        self.config_id = config_id

    async def log_action(
        self,
        action_type: str,
        action_data: Optional[dict[str, Any]] = None,
        result: Any = None,
        error: BaseException | str | None = None,
        execution_time_ms: Optional[int] = None,
    ) -> None:
        message = None
        if error is not None:
            message = error if isinstance(error, str) else (str(error) or type(error).__name__)
        entry = ActionLogEntry(
            session_id=self.session_id,
            config_id=self.config_id,
            action_type=action_type,
            action_data=_loggable(action_data) or None,
            result=_loggable(result),
            error=message,
            execution_time_ms=execution_time_ms,
        )
        await self.store.log_action(entry)

        if message:
            logger.warning("[%s] %s failed: %s", self.session_id, action_type, message)
        else:
            logger.info("[%s] %s%s", self.session_id, action_type,
                        f" ({execution_time_ms}ms)" if execution_time_ms is not None else "")

    async def timed(
        self,
        action_type: str,
        action_data: Optional[dict[str, Any]],
        execution: Callable[[], Awaitable[T]],
    ) -> T:
        """Run ``execution`` and log its duration and outcome either way."""
        start = time.monotonic()
        try:
            result = await execution()
        except Exception as e:
            await self.log_action(action_type, action_data, error=e,
                                  execution_time_ms=_elapsed_ms(start))
            raise
        await self.log_action(action_type, action_data, result=result,
                              execution_time_ms=_elapsed_ms(start))
        return result

    async def log_info(self, message: str, data: Optional[dict[str, Any]] = None) -> None:
        await self.log_action("info", {"message": message, **(data or {})})

    async def log_warning(self, message: str, data: Optional[dict[str, Any]] = None) -> None:
        await self.log_action("warning", {"message": message, **(data or {})})

    async def log_error(self, error: BaseException | str, context: Optional[dict[str, Any]] = None) -> None:
        await self.log_action("error", context, error=error)

    async def log_test_start(self, test_name: str) -> None:
        await self.log_action("test_start", {"test_name": test_name})

    async def log_test_end(self, test_name: str, status: str, execution_time_ms: int) -> None:
        await self.log_action("test_end", {"test_name": test_name, "status": status},
                              execution_time_ms=execution_time_ms)

    async def log_session_start(self, url: str, test_kind: str) -> None:
        await self.log_action("session_start", {"url": url, "test_kind": test_kind})

    async def log_session_end(self, status: str, summary: Optional[dict[str, Any]] = None) -> None:
        await self.log_action("session_end", {"status": status, "summary": summary})
