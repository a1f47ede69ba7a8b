"""
Short-lived read cache for the list and statistics views.

Each category keeps the last computed value and when it was computed. A value
is served only while it is younger than the cache window; writes invalidate
the categories whose views they change.
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, Iterable, Optional

logger = logging.getLogger(__name__)

STUDENTS = "students"
BOOKS = "books"
TRANSACTIONS = "transactions"
STATISTICS = "statistics"

CATEGORIES = (STUDENTS, BOOKS, TRANSACTIONS, STATISTICS)


class ReadCache:
    """Per-category memo with time-based expiry."""

    def __init__(self, ttl_ms: int = 500, clock: Optional[Callable[[], float]] = None):
        self.ttl = ttl_ms / 1000.0
        self._clock = clock or time.monotonic
        self._lock = threading.RLock()
        self._values: Dict[str, Any] = {c: None for c in CATEGORIES}
        self._computed_at: Dict[str, float] = {c: 0.0 for c in CATEGORIES}
        self.cache_stats = {
            'hits': 0,
            'misses': 0,
        }

    @staticmethod
    def _check(category: str) -> None:
        if category not in CATEGORIES:
            raise KeyError(f"Unknown cache category: {category}")

    def get(self, category: str) -> Optional[Any]:
        """Return the cached value, or None on a miss."""
        self._check(category)
        with self._lock:
            value = self._values[category]
            if value is not None and self._clock() - self._computed_at[category] < self.ttl:
                self.cache_stats['hits'] += 1
                logger.debug("Cache hit: %s", category)
                return value
            self.cache_stats['misses'] += 1
            logger.debug("Cache miss: %s", category)
            return None

    def set(self, category: str, value: Any) -> None:
        self._check(category)
        with self._lock:
            self._values[category] = value
            self._computed_at[category] = self._clock()

    def invalidate(self, categories: Iterable[str]) -> None:
        """Drop the listed categories so the next read recomputes them."""
        with self._lock:
            for category in categories:
                self._check(category)
                self._values[category] = None
                self._computed_at[category] = 0.0

    def clear(self) -> None:
        self.invalidate(CATEGORIES)

    def get_stats(self) -> Dict[str, Any]:
        stats = self.cache_stats.copy()
        total = stats['hits'] + stats['misses']
        stats['hit_ratio'] = stats['hits'] / total if total else 0.0
        stats['cached'] = [c for c in CATEGORIES if self._values[c] is not None]
        return stats
