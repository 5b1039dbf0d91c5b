"""Read-through cache of keyword rules.

The cache favours availability over freshness: when the rule source fails,
whatever was cached before (possibly nothing) keeps being served.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable, Sequence

from orbit_bridge.logging import get_logger
from orbit_bridge.models import KeywordRule

log = get_logger("orbit_bridge.classification.cache")

DEFAULT_TTL_SECONDS = 300.0

RuleSource = Callable[[], Awaitable[Sequence[KeywordRule]]]


class KeywordCache:
    """Holds the current rule set and the time it was last refreshed."""

    def __init__(
        self,
        refresh: RuleSource,
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the cache.

        Args:
            refresh: Coroutine function returning the full current rule set.
            ttl_seconds: How long a non-empty rule set is served before
                the source is asked again.
            clock: Monotonic time source in seconds; injectable for tests.
        """
        self._refresh = refresh
        self._ttl = ttl_seconds
        self._clock = clock
        self._rules: list[KeywordRule] = []
        self._refreshed_at: float | None = None

    @property
    def rules(self) -> list[KeywordRule]:
        """The cached rules without triggering a refresh."""
        return list(self._rules)

    def is_fresh(self) -> bool:
        if not self._rules or self._refreshed_at is None:
            return False
        return self._clock() - self._refreshed_at < self._ttl

    def invalidate(self) -> None:
        """Force the next ``get_rules`` call to hit the rule source."""
        self._refreshed_at = None

    async def get_rules(self) -> list[KeywordRule]:
        """Return rules ordered by descending priority, refreshing when stale."""
        if self.is_fresh():
            return list(self._rules)

        now = self._clock()
        try:
            fetched = await self._refresh()
        except Exception as exc:
            log.warning(
                "keyword_refresh_failed",
                error=str(exc),
                cached_rules=len(self._rules),
            )
            return list(self._rules)

        # sorted() is stable, so equal priorities keep the source's order
        self._rules = sorted(fetched, key=lambda rule: rule.priority, reverse=True)
        self._refreshed_at = now
        log.debug("keyword_cache_refreshed", rule_count=len(self._rules))
        return list(self._rules)
