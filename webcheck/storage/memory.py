"""In-process store for configurations, sessions, action logs and results."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from pydantic import BaseModel

from webcheck.errors import SessionNotFoundError
from webcheck.models.session import ActionLogEntry, Session, SessionStats, UnitResult
from webcheck.models.test_config import TestConfiguration

logger = logging.getLogger(__name__)

_TIME_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def utc_now() -> str:
    return time.strftime(_TIME_FORMAT, time.gmtime())


def _parse_time(value: str) -> Optional[datetime]:
    try:
        return datetime.strptime(value, _TIME_FORMAT).replace(tzinfo=timezone.utc)
    except (TypeError, ValueError):
        return None


class MemoryStore:
    """Keeps everything in dicts and lists. All methods are coroutines.

    Action log entries and unit results are append-only; readers always
    receive copies.
    """

    def __init__(self) -> None:
        self.configurations: dict[int, TestConfiguration] = {}
        self.sessions: dict[str, Session] = {}
        self.action_logs: list[ActionLogEntry] = []
        self.test_results: list[UnitResult] = []
        self._next_config_id = 1
        self._next_log_id = 1
        self._next_result_id = 1
        self._lock = asyncio.Lock()

    # Persistence hooks, called with the lock held. The in-process store keeps
    # nothing outside memory.

    async def _document_changed(self) -> None:
        """Configurations, sessions or id counters changed."""

    async def _appended(self, collection: str, item: BaseModel) -> None:
        """One entry was appended to ``action_logs`` or ``test_results``."""

    async def _history_rewritten(self) -> None:
        """Entries were removed from the append-only collections."""

    # ------------------------------------------------------------------
    # Configurations
    # ------------------------------------------------------------------

    async def create_configuration(self, config: TestConfiguration) -> int:
        async with self._lock:
            now = utc_now()
            stored = config.model_copy(update={
                "id": self._next_config_id, "created_at": now, "updated_at": now,
            })
            self.configurations[stored.id] = stored
            self._next_config_id += 1
            await self._document_changed()
        logger.debug("Created configuration #%d (%s)", stored.id, stored.name)
        return stored.id

    async def get_configuration(self, config_id: int) -> Optional[TestConfiguration]:
        config = self.configurations.get(config_id)
        return config.model_copy(deep=True) if config else None

    async def list_configurations(self, active_only: bool = False) -> list[TestConfiguration]:
        """Return configurations in creation order."""
        return [
            c.model_copy(deep=True)
            for c in sorted(self.configurations.values(), key=lambda c: c.id)
            if c.is_active or not active_only
        ]

    async def update_configuration(self, config_id: int, **fields: Any) -> bool:
        async with self._lock:
            current = self.configurations.get(config_id)
            if current is None:
                return False
            data = current.model_dump()
            data.update(fields)
            data["id"] = config_id
            data["updated_at"] = utc_now()
            self.configurations[config_id] = TestConfiguration(**data)
            await self._document_changed()
        return True

    async def deactivate_configuration(self, config_id: int) -> bool:
        return await self.update_configuration(config_id, is_active=False)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def create_test_session(self, session: Session) -> None:
        async with self._lock:
            if session.id in self.sessions:
                raise ValueError(f"Session {session.id} already exists")
            stored = session.model_copy(deep=True)
            if not stored.start_time:
                stored.start_time = utc_now()
            self.sessions[stored.id] = stored
            await self._document_changed()

    async def update_test_session(self, session_id: str, **fields: Any) -> None:
        async with self._lock:
            current = self.sessions.get(session_id)
            if current is None:
                raise SessionNotFoundError(f"Session not found: {session_id}")
            data = current.model_dump()
            data.update(fields)
            self.sessions[session_id] = Session(**data)
            await self._document_changed()

    async def finish_test_session(self, session_id: str, status: str, **fields: Any) -> Session:
        """Record the outcome of a run.

        ``fields`` are always applied; ``status`` only while the session is
        still running, so a cancellation that arrived first is kept. The
        check and the write happen under one lock acquisition.
        """
        async with self._lock:
            current = self.sessions.get(session_id)
            if current is None:
                raise SessionNotFoundError(f"Session not found: {session_id}")
            data = current.model_dump()
            data.update(fields)
            if current.status == "running":
                data["status"] = status
            stored = Session(**data)
            self.sessions[session_id] = stored
            await self._document_changed()
        return stored.model_copy(deep=True)

    async def get_test_session(self, session_id: str) -> Optional[Session]:
        session = self.sessions.get(session_id)
        return session.model_copy(deep=True) if session else None

    async def list_test_sessions(self, limit: int = 50) -> list[Session]:
        """Newest first."""
        ordered = sorted(
            self.sessions.values(), key=lambda s: (s.start_time, s.id), reverse=True,
        )
        return [s.model_copy(deep=True) for s in ordered[:limit]]

    # ------------------------------------------------------------------
    # Action logs
    # ------------------------------------------------------------------

    async def log_action(self, entry: ActionLogEntry) -> None:
        async with self._lock:
            stored = entry.model_copy(deep=True)
            stored.id = self._next_log_id
            if not stored.timestamp:
                stored.timestamp = utc_now()
            self._next_log_id += 1
            self.action_logs.append(stored)
            await self._appended("action_logs", stored)

    async def get_action_logs(self, session_id: str) -> list[ActionLogEntry]:
        return [e.model_copy(deep=True) for e in self.action_logs if e.session_id == session_id]

    # ------------------------------------------------------------------
    # Unit results
    # ------------------------------------------------------------------

    async def save_test_result(self, result: UnitResult) -> None:
        async with self._lock:
            stored = result.model_copy(deep=True)
            stored.id = self._next_result_id
            if not stored.timestamp:
                stored.timestamp = utc_now()
            self._next_result_id += 1
            self.test_results.append(stored)
            await self._appended("test_results", stored)

    async def get_test_results(self, session_id: str) -> list[UnitResult]:
        return [r.model_copy(deep=True) for r in self.test_results if r.session_id == session_id]

    # ------------------------------------------------------------------
    # Analytics and cleanup
    # ------------------------------------------------------------------

    async def get_session_stats(self, session_id: str) -> SessionStats:
        logs = [e for e in self.action_logs if e.session_id == session_id]
        timed = [e.execution_time_ms for e in logs if e.execution_time_ms is not None]
        summary = {"passed": 0, "failed": 0, "skipped": 0}
        for r in self.test_results:
            if r.session_id == session_id and r.status in summary:
                summary[r.status] += 1
        return SessionStats(
            total_actions=len(logs),
            total_errors=sum(1 for e in logs if e.error),
            avg_execution_time=round(sum(timed) / len(timed), 2) if timed else 0.0,
            results_summary=summary,
        )

    async def cleanup_old_sessions(self, days_old: int = 30) -> int:
        """Delete sessions (with their logs and results) older than ``days_old``."""
        cutoff = datetime.now(timezone.utc) - timedelta(days=days_old)
        async with self._lock:
            stale = set()
            for sid, session in self.sessions.items():
                started = _parse_time(session.start_time)
                if started is not None and started < cutoff:
                    stale.add(sid)
            if not stale:
                return 0
            for sid in stale:
                del self.sessions[sid]
            self.action_logs = [e for e in self.action_logs if e.session_id not in stale]
            self.test_results = [r for r in self.test_results if r.session_id not in stale]
            await self._history_rewritten()
        logger.info("Removed %d sessions older than %d days", len(stale), days_old)
        return len(stale)
