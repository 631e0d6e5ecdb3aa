"""Session, action log and per-unit result records."""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from .test_config import TestKind, normalize_test_kind

SessionStatus = Literal["running", "completed", "failed", "cancelled"]
TERMINAL_STATUSES = frozenset({"completed", "failed", "cancelled"})


class Session(BaseModel):
    id: str
    url: str
    test_kind: TestKind
    status: SessionStatus = "running"
    config_id: Optional[int] = None
    start_time: str = ""
    end_time: Optional[str] = None
    result_payload: Optional[dict[str, Any]] = None
    error_summary: Optional[str] = None

    @field_validator("test_kind", mode="before")
    @classmethod
    def accept_legacy_kind(cls, v: Any) -> Any:
        return normalize_test_kind(v)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class ActionLogEntry(BaseModel):
    """One attempted operation. Written once, never updated."""

    id: Optional[int] = None
    session_id: str
    config_id: Optional[int] = None
    action_type: str
    action_data: Optional[dict[str, Any]] = None
    result: Optional[Any] = None
    error: Optional[str] = None
    execution_time_ms: Optional[int] = None
    timestamp: str = ""


class UnitResult(BaseModel):
    """Outcome of a single step, assertion or goal."""

    id: Optional[int] = None
    session_id: str
    test_name: str
    status: str  # passed, failed, skipped
    error_message: Optional[str] = None
    screenshot_path: Optional[str] = None
    execution_time_ms: int = 0
    timestamp: str = ""


class SessionStats(BaseModel):
    total_actions: int = 0
    total_errors: int = 0
    avg_execution_time: float = 0.0
    results_summary: dict[str, int] = Field(
        default_factory=lambda: {"passed": 0, "failed": 0, "skipped": 0}
    )
