"""Automation capability interface and the single-owner lease executors use."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from webcheck.errors import AutomationError, WebcheckError

from .deadline import Deadline

logger = logging.getLogger(__name__)


class AutomationCapability(ABC):
    """Remote browser control. Any failed call invalidates the browser session."""

    @abstractmethod
    async def navigate(self, url: str) -> None: ...

    @abstractmethod
    async def click(self, selector: str) -> None: ...

    @abstractmethod
    async def type(self, selector: str, text: str) -> None: ...

    @abstractmethod
    async def select_option(self, selector: str, value: str) -> None: ...

    @abstractmethod
    async def take_screenshot(self) -> bytes:
        """Return PNG bytes of the current viewport."""

    @abstractmethod
    async def snapshot(self) -> str:
        """Return a textual representation (HTML) of the current page."""

    @abstractmethod
    async def element_exists(self, selector: str) -> bool: ...

    @abstractmethod
    async def element_visible(self, selector: str) -> bool: ...

    @abstractmethod
    async def element_text(self, selector: str) -> str: ...

    @abstractmethod
    async def element_value(self, selector: str) -> str: ...

    @abstractmethod
    async def element_count(self, selector: str) -> int: ...

    @abstractmethod
    async def wait_for_element(self, selector: str, timeout_ms: int) -> None: ...

    @abstractmethod
    async def dispose(self) -> None:
        """Release the browser, context and page."""


class AutomationLease:
    """Exclusive handle on a capability for the lifetime of one executor run.

    Every automation call goes through :meth:`call`. A failed call releases
    the capability at once; :meth:`release` is idempotent, so the capability
    is disposed exactly once per live browser session.
    """

    def __init__(self, automation: AutomationCapability, deadline: Optional[Deadline] = None):
        self.automation = automation
        self.deadline = deadline
        self.dispose_count = 0
        # Treat the capability as live from the start so the final release
        # always disposes, even when no call was made.
        self._live = True

    async def call(self, operation: str, *args: Any) -> Any:
        method = getattr(self.automation, operation)
        self._live = True
        try:
            if self.deadline is not None:
                return await self.deadline.bound(method(*args))
            return await method(*args)
        except WebcheckError:
            await self.release()
            raise
        except Exception as e:
            logger.debug("Automation call %s%r failed: %s", operation, args, e)
            await self.release()
            raise AutomationError(operation, str(e) or type(e).__name__) from e

    async def release(self) -> None:
        if not self._live:
            return
        self._live = False
        self.dispose_count += 1
        try:
            await self.automation.dispose()
        except Exception as e:
            logger.warning("Failed to dispose automation capability: %s", e)
