"""
Analytics Cache

WHY: Sales analytics scan the whole billing history for a window. Repeated
dashboard refreshes within a few minutes ask for the same window, so results
are memoized per (store, window, comparison window, granularity) for a fixed
TTL. Two period names that resolve to the same window share an entry only
when their comparison window and granularity match too.

BEHAVIOR:
- Reads check clock() - inserted_at < ttl; expired entries are dropped on lookup
- Writes never invalidate; staleness is bounded by the TTL
- Values are deep-copied in and out so callers cannot mutate cached results
- Growth is unbounded for the life of the process

No database or model imports here: extensions.py creates the cache before
the models are imported.
"""

from __future__ import annotations

import copy
import time
from datetime import datetime
from typing import Any, Callable, Hashable


DEFAULT_TTL_SECONDS = 300

_MISS = object()


class AnalyticsCache:
    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entries: dict[Hashable, tuple[float, Any]] = {}

    def init_app(self, app) -> None:
        self.ttl_seconds = app.config.get("ANALYTICS_CACHE_TTL_SECONDS", self.ttl_seconds)
        app.extensions["analytics_cache"] = self

    @staticmethod
    def make_key(
        store_email: str,
        start: datetime,
        end: datetime,
        comparison_start: datetime | None = None,
        comparison_end: datetime | None = None,
        granularity: str = "",
    ) -> tuple[str, ...]:
        return (
            store_email,
            start.isoformat(),
            end.isoformat(),
            comparison_start.isoformat() if comparison_start else "",
            comparison_end.isoformat() if comparison_end else "",
            granularity,
        )

    def _is_fresh(self, inserted_at: float) -> bool:
        return self.clock() - inserted_at < self.ttl_seconds

    def get(self, key: Hashable, default: Any = None) -> Any:
        entry = self._entries.get(key, _MISS)
        if entry is _MISS:
            return default
        inserted_at, value = entry
        if not self._is_fresh(inserted_at):
            self._entries.pop(key, None)
            return default
        return copy.deepcopy(value)

    def set(self, key: Hashable, value: Any) -> None:
        self._entries[key] = (self.clock(), copy.deepcopy(value))

    def evict_expired(self) -> int:
        """Drop every expired entry. Returns how many were removed."""
        removed = 0
        for key, (inserted_at, _value) in list(self._entries.items()):
            if not self._is_fresh(inserted_at):
                if self._entries.pop(key, None) is not None:
                    removed += 1
        return removed

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key, _MISS) is not _MISS

    def __len__(self) -> int:
        return len(self._entries)
