"""
Cache engine package.

Provides the JSON cache engine (cache-aside, tag index, bulk reads and
writes, warming, stats) and the in-memory hit/miss counters it owns.
"""

from .counters import CacheCounters, calculate_hit_rate
from .engine import CacheEngine, call_fetcher, tag_index_key

__all__ = ["CacheCounters", "CacheEngine", "calculate_hit_rate", "call_fetcher", "tag_index_key"]
