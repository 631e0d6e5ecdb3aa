"""Configuration resolver: picks the stored configuration for a URL."""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from webcheck.models.test_config import TestConfiguration, normalize_test_kind
from webcheck.url_utils import url_matches_pattern

logger = logging.getLogger(__name__)


def find_best_match(
    url: str,
    configs: Iterable[TestConfiguration],
    test_kind: Optional[str] = None,
) -> Optional[TestConfiguration]:
    """Select the most specific active configuration matching ``url``.

    The longest ``url_pattern`` wins. Ties keep the earlier configuration
    in ``configs`` order.
    """
    kind = normalize_test_kind(test_kind) if test_kind else None
    matches = [
        c for c in configs
        if c.is_active
        and (kind is None or c.test_kind == kind)
        and url_matches_pattern(url, c.url_pattern)
    ]
    if not matches:
        return None
    # sorted() is stable, so equal lengths stay in insertion order
    return sorted(matches, key=lambda c: len(c.url_pattern), reverse=True)[0]


class ConfigResolver:
    """Resolves configurations from a store."""

    def __init__(self, store):
        self.store = store

    async def resolve(
        self, url: str, test_kind: Optional[str] = None,
    ) -> Optional[TestConfiguration]:
        configs = await self.store.list_configurations(active_only=True)
        match = find_best_match(url, configs, test_kind)
        if match:
            logger.debug("Resolved %s -> config #%s (%s, pattern=%r)",
                         url, match.id, match.name, match.url_pattern)
        else:
            logger.debug("No configuration matches %s (kind=%s)", url, test_kind)
        # Copy so later edits to the stored record never reach an in-flight session
        return match.model_copy(deep=True) if match else None
