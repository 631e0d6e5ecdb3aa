"""Shared URL utilities: pattern matching and session ids."""

from __future__ import annotations

import re
import time
import uuid

WILDCARD = "*"


def pattern_to_regex(pattern: str) -> re.Pattern:
    """Expand a wildcard URL pattern into a regular expression.

    ``*`` matches any run of characters; everything else is literal.
    """
    parts = [re.escape(p) for p in pattern.split(WILDCARD)]
    return re.compile(".*".join(parts))


def url_matches_pattern(url: str, pattern: str) -> bool:
    """Return True if ``pattern`` applies to ``url``.

    Plain patterns match as substrings; wildcard patterns match as an
    unanchored regular expression.
    """
    if not pattern:
        return False
    if WILDCARD in pattern:
        return pattern_to_regex(pattern).search(url) is not None
    return pattern in url


def generate_session_id() -> str:
    """Generate a unique, roughly time-ordered session id."""
    return f"session_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"
