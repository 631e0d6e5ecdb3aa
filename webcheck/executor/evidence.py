"""Evidence collector: screenshot identifiers, encoding and optional disk copies."""

from __future__ import annotations

import base64
import logging
import time
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


def encode_screenshot(data: bytes) -> str:
    """Encode raw image bytes to a text-safe form for transport."""
    return base64.b64encode(data).decode("ascii")


class EvidenceCollector:
    """Collects screenshots taken during one session."""

    def __init__(self, session_id: str, evidence_dir: Optional[Path] = None):
        self.session_id = session_id
        self.evidence_dir = Path(evidence_dir) / session_id if evidence_dir else None
        self.screenshots: list[str] = []
        self.encoded: dict[str, str] = {}
        self._screenshot_count = 0

    def record_screenshot(self, data: bytes, label: str = "screenshot") -> str:
        """Store a screenshot and return its identifier (a file path when saved)."""
        self._screenshot_count += 1
        name = f"{label}_{int(time.time() * 1000)}_{self._screenshot_count}.png"
        identifier = name
        if self.evidence_dir is not None:
            path = self.evidence_dir / name
            try:
                self.evidence_dir.mkdir(parents=True, exist_ok=True)
                path.write_bytes(data)
                identifier = str(path)
            except OSError as e:
                logger.warning("Could not write screenshot %s: %s", path, e)
        self.encoded[identifier] = encode_screenshot(data)
        self.screenshots.append(identifier)
        return identifier

    @property
    def latest_encoded(self) -> Optional[str]:
        if not self.screenshots:
            return None
        return self.encoded[self.screenshots[-1]]
