"""
Process-lifetime hit/miss counters.
"""

import threading
from typing import Tuple


class CacheCounters:
    """Monotonic hit/miss counters shared by whoever holds a reference.

    Not persisted and not shared across processes; they start at zero
    when constructed.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def record_hit(self, count: int = 1) -> None:
        with self._lock:
            self._hits += count

    def record_miss(self, count: int = 1) -> None:
        with self._lock:
            self._misses += count

    def snapshot(self) -> Tuple[int, int]:
        """Consistent (hits, misses) pair."""
        with self._lock:
            return self._hits, self._misses

    @property
    def hits(self) -> int:
        return self.snapshot()[0]

    @property
    def misses(self) -> int:
        return self.snapshot()[1]

    def hit_rate(self) -> float:
        """Hit percentage rounded to two decimals, 0 before any lookup."""
        hits, misses = self.snapshot()
        return calculate_hit_rate(hits, misses)


def calculate_hit_rate(hits: int, misses: int) -> float:
    """Calculate cache hit rate as a percentage."""
    total = hits + misses
    if total == 0:
        return 0.0
    return round(hits / total * 100, 2)
