"""Claude API client wrapper used by the goal-directed agent."""

from __future__ import annotations

import json
import logging
import os
import re
import time
from pathlib import Path
from typing import Any, Optional

import anthropic

logger = logging.getLogger(__name__)

# Configurable debug directory, set by the orchestrator at startup
_debug_dir: Path | None = None


def set_debug_dir(path: Path) -> None:
    """Set the directory where AI exchanges are dumped."""
    global _debug_dir
    _debug_dir = path
    _debug_dir.mkdir(parents=True, exist_ok=True)


class AIClient:
    """Thin synchronous wrapper around the Anthropic Messages API."""

    def __init__(
        self,
        model: str = "claude-sonnet-4-20250514",
        max_tokens: int = 4000,
        api_key: Optional[str] = None,
    ):
        api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        if not api_key:
            raise EnvironmentError(
                "ANTHROPIC_API_KEY environment variable is not set "
                "and no ai_api_key is configured."
            )
        self.client = anthropic.Anthropic(api_key=api_key, timeout=300.0)
        self.model = model
        self.max_tokens = max_tokens
        self._call_count = 0

    @property
    def call_count(self) -> int:
        return self._call_count

    def complete(
        self,
        system_prompt: str,
        user_message: str,
        image_base64: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: float = 0.2,
    ) -> str:
        """Send a completion request, optionally with a PNG screenshot attached."""
        self._call_count += 1
        tokens = max_tokens or self.max_tokens
        logger.info("Calling AI (call #%d, model=%s, image=%s)...",
                    self._call_count, self.model, image_base64 is not None)

        content: Any = user_message
        if image_base64:
            content = [
                {
                    "type": "image",
                    "source": {"type": "base64", "media_type": "image/png", "data": image_base64},
                },
                {"type": "text", "text": user_message},
            ]

        try:
            call_start = time.time()
            response = self.client.messages.create(
                model=self.model,
                max_tokens=tokens,
                temperature=temperature,
                system=system_prompt,
                messages=[{"role": "user", "content": content}],
            )
        except anthropic.APIError as e:
            logger.error("Claude API error: %s", e)
            self._save_exchange_log(system_prompt, user_message, "", str(e))
            raise

        text = response.content[0].text
        logger.info("AI response received in %.1fs (%d chars)", time.time() - call_start, len(text))
        if response.stop_reason == "max_tokens":
            logger.warning("AI response was truncated at max_tokens=%d", tokens)
        self._save_exchange_log(system_prompt, user_message, text, None)
        return text

    def complete_json(
        self,
        system_prompt: str,
        user_message: str,
        image_base64: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> dict[str, Any]:
        """Send a completion request and parse the response as a JSON object."""
        text = self.complete(system_prompt, user_message, image_base64, max_tokens)
        return self.parse_json_response(text)

    @staticmethod
    def parse_json_response(text: str) -> dict[str, Any]:
        """Parse a model answer as JSON, tolerating fences and trailing commas."""
        text = text.strip()
        fence = re.search(r"```(?:json)?\s*\n(.*?)\n```", text, re.DOTALL)
        if fence:
            text = fence.group(1).strip()

        try:
            data = json.loads(text, strict=False)
        except json.JSONDecodeError:
            cleaned = re.sub(r",\s*([}\]])", r"\1", text)
            first, last = cleaned.find("{"), cleaned.rfind("}")
            if first != -1 and last > first:
                cleaned = cleaned[first:last + 1]
            try:
                data = json.loads(cleaned, strict=False)
            except json.JSONDecodeError as e:
                logger.error("Failed to parse AI response as JSON: %s", e)
                raise ValueError(f"AI returned invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise ValueError("AI returned JSON that is not an object")
        return data

    def _save_exchange_log(
        self, system_prompt: str, user_message: str, response_text: str, error: str | None,
    ) -> None:
        """Dump the exchange when a debug directory is configured."""
        if _debug_dir is None:
            return
        try:
            ts = time.strftime("%Y%m%d_%H%M%S")
            log_file = _debug_dir / f"ai_call_{ts}_{self._call_count:03d}.log"
            with open(log_file, "w", encoding="utf-8") as f:
                f.write(f"=== SYSTEM PROMPT ===\n{system_prompt}\n\n")
                f.write(f"=== USER MESSAGE ===\n{user_message}\n\n")
                f.write(f"=== RESPONSE ===\n{response_text or '(empty)'}\n")
                if error:
                    f.write(f"\n=== ERROR ===\n{error}\n")
        except OSError as log_err:
            logger.debug("Failed to save AI exchange log: %s", log_err)
