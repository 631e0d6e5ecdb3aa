"""Framework settings."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class ViewportConfig(BaseModel):
    width: int = 1280
    height: int = 720


class BrowserConfig(BaseModel):
    # Remote CDP endpoint; when empty a local Chromium is launched
    ws_endpoint: Optional[str] = None
    headless: bool = True
    navigation_timeout_ms: int = 30000
    selector_timeout_ms: int = 10000
    viewport: ViewportConfig = Field(default_factory=ViewportConfig)
    user_agent: Optional[str] = None


class WebcheckConfig(BaseModel):
    # Storage
    store_path: str = ".webcheck/store.json"
    evidence_dir: Optional[str] = None

    # Browser
    browser: BrowserConfig = Field(default_factory=BrowserConfig)

    # Executor defaults
    default_wait_ms: int = 5000
    default_max_attempts: int = 3
    default_goal_timeout_ms: int = 300000
    wait_for_element_timeout_ms: int = 10000
    max_parallel_sessions: int = 3

    # AI settings
    ai_model: str = "claude-sonnet-4-20250514"
    ai_max_tokens: int = 4000
    ai_api_key: Optional[str] = None

    # Housekeeping
    session_retention_days: int = 30
    session_list_limit: int = 50

    @field_validator("ai_api_key", mode="before")
    @classmethod
    def resolve_env_api_key(cls, v: Optional[str]) -> Optional[str]:
        if isinstance(v, str) and v.startswith("env:"):
            env_var = v[4:]
            resolved = os.environ.get(env_var)
            if resolved is None:
                raise ValueError(f"Environment variable '{env_var}' not set")
            return resolved
        return v

    @field_validator("max_parallel_sessions")
    @classmethod
    def at_least_one_session(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_parallel_sessions must be at least 1")
        return v

    @classmethod
    def load(cls, path: str | Path) -> "WebcheckConfig":
        """Load config from a JSON file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path) as f:
            data = json.load(f)
        return cls(**data)

    @classmethod
    def load_or_default(cls, path: str | Path) -> "WebcheckConfig":
        """Load config if the file exists, otherwise return defaults."""
        path = Path(path)
        if path.exists():
            return cls.load(path)
        return cls()

    def save(self, path: str | Path) -> None:
        """Save config to a JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.model_dump(), f, indent=2)
