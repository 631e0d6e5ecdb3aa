"""Durable store: the memory store persisted beside a JSON document."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Type, TypeVar

from pydantic import BaseModel, ValidationError

from webcheck.models.session import ActionLogEntry, Session, UnitResult
from webcheck.models.test_config import TestConfiguration

from .memory import MemoryStore

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def _write_json(path: Path, data: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    with open(tmp_path, "w") as f:
        json.dump(data, f, indent=2, default=str)
    tmp_path.replace(path)


def _append_line(path: Path, line: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a") as f:
        f.write(line + "\n")


def _write_lines(path: Path, lines: list[str]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    with open(tmp_path, "w") as f:
        f.writelines(line + "\n" for line in lines)
    tmp_path.replace(path)


def _to_line(item: BaseModel) -> str:
    return json.dumps(item.model_dump(), default=str)


def _read_lines(path: Path, model: Type[M]) -> list[M]:
    if not path.exists():
        return []
    items = []
    with open(path) as f:
        for number, line in enumerate(f, 1):
            if not line.strip():
                continue
            try:
                items.append(model(**json.loads(line)))
            except (json.JSONDecodeError, TypeError, ValidationError) as e:
                logger.warning("Skipping unreadable line %d of %s: %s", number, path, e)
    return items


class JsonFileStore(MemoryStore):
    """Persists configurations and sessions to ``path`` and history beside it.

    The JSON document at ``path`` holds configurations, sessions and id
    counters and is rewritten when one of them changes. Action log entries
    and unit results are appended to JSON-lines files next to it
    (``store.logs.jsonl``, ``store.results.jsonl``), so a log write costs one
    line. All file I/O runs in a worker thread.
    """

    def __init__(self, path: str | Path):
        super().__init__()
        self.path = Path(path)
        self.logs_path = self.path.with_suffix(".logs.jsonl")
        self.results_path = self.path.with_suffix(".results.jsonl")
        self._load()

    def _load(self) -> None:
        data: dict[str, Any] = {}
        if self.path.exists():
            try:
                with open(self.path) as f:
                    data = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                logger.warning("Failed to load store from %s: %s. Starting empty.", self.path, e)
                data = {}

        for raw in data.get("configurations", []):
            config = TestConfiguration(**raw)
            self.configurations[config.id] = config
        for raw in data.get("sessions", []):
            session = Session(**raw)
            self.sessions[session.id] = session
        self.action_logs = _read_lines(self.logs_path, ActionLogEntry)
        self.test_results = _read_lines(self.results_path, UnitResult)

        # Appends do not rewrite the document, so its counters can lag behind
        counters = data.get("counters", {})
        self._next_config_id = max(counters.get("config", 1),
                                   max(self.configurations, default=0) + 1)
        self._next_log_id = max(counters.get("log", 1),
                                max((e.id or 0 for e in self.action_logs), default=0) + 1)
        self._next_result_id = max(counters.get("result", 1),
                                   max((r.id or 0 for r in self.test_results), default=0) + 1)
        logger.debug("Loaded store from %s (%d configs, %d sessions, %d log entries)",
                     self.path, len(self.configurations), len(self.sessions),
                     len(self.action_logs))

    def _document(self) -> dict[str, Any]:
        return {
            "counters": {
                "config": self._next_config_id,
                "log": self._next_log_id,
                "result": self._next_result_id,
            },
            "configurations": [
                c.model_dump() for c in sorted(self.configurations.values(), key=lambda c: c.id)
            ],
            "sessions": [s.model_dump() for s in self.sessions.values()],
        }

    async def _document_changed(self) -> None:
        await asyncio.to_thread(_write_json, self.path, self._document())

    async def _appended(self, collection: str, item: BaseModel) -> None:
        path = self.logs_path if collection == "action_logs" else self.results_path
        await asyncio.to_thread(_append_line, path, _to_line(item))

    async def _history_rewritten(self) -> None:
        document = self._document()
        logs = [_to_line(e) for e in self.action_logs]
        results = [_to_line(r) for r in self.test_results]
        await asyncio.to_thread(_write_json, self.path, document)
        await asyncio.to_thread(_write_lines, self.logs_path, logs)
        await asyncio.to_thread(_write_lines, self.results_path, results)
