"""Error kinds raised inside the execution core."""

from __future__ import annotations


class WebcheckError(Exception):
    """Base class for all framework errors."""


class ValidationError(WebcheckError):
    """A step, assertion, goal or plan action is missing a required field."""


class AutomationError(WebcheckError):
    """An automation capability call failed."""

    def __init__(self, operation: str, message: str):
        super().__init__(f"{operation} failed: {message}")
        self.operation = operation


class ExecutionTimeoutError(WebcheckError, TimeoutError):
    """A goal-directed run exceeded its deadline."""

    def __init__(self, timeout_ms: int):
        super().__init__(f"Test execution timeout after {timeout_ms}ms")
        self.timeout_ms = timeout_ms


class AssertionFailedError(WebcheckError, AssertionError):
    """An assertion's expectation did not match the page state."""


class ConfigurationNotFoundError(WebcheckError):
    """No stored configuration matched and no inline instructions were given."""


class SessionNotFoundError(WebcheckError):
    """The requested session id does not exist."""
