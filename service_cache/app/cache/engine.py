"""
Cache engine: cache-aside orchestration on top of the store adapter.

Every public method absorbs store failures: an unreachable store turns
reads into misses and writes into no-ops. Only caller-supplied fetchers
may raise through ``get_or_set`` and ``get_or_set_multiple``.
"""

import asyncio
import inspect
import json
import re
from contextlib import nullcontext
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from shared.logging import get_logger
from shared.metrics import MetricsCollector
from ..models import (
    CacheItem,
    CacheStatsSnapshot,
    HealthState,
    HealthStatus,
    StoreWrite,
    WarmEntry,
    WarmSummary,
)
from ..store.base import StoreAdapter
from .counters import CacheCounters, calculate_hit_rate


DEFAULT_TTL = 3600
TAG_PREFIX = "tag"
TAG_MARKER = "1"

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


def tag_index_key(tag: str, key: str) -> str:
    """Index key marking ``key`` as a member of ``tag``."""
    return f"{TAG_PREFIX}:{tag}:{key}"


def escape_pattern(text: str) -> str:
    """Escape glob metacharacters so ``text`` matches literally in a key pattern."""
    return _GLOB_SPECIAL.sub(r"\\\1", text)


async def call_fetcher(fetcher: Callable[..., Any], *args: Any) -> Any:
    """Call a sync or async fetcher and return its value."""
    result = fetcher(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class CacheEngine:
    """JSON cache over a store adapter with tags, bulk operations and stats."""

    def __init__(
        self,
        store: StoreAdapter,
        *,
        counters: Optional[CacheCounters] = None,
        metrics: Optional[MetricsCollector] = None,
        default_ttl: int = DEFAULT_TTL,
        warm_concurrency: int = 5,
    ):
        self.store = store
        self.counters = counters if counters is not None else CacheCounters()
        self.metrics = metrics
        self.default_ttl = default_ttl
        self.warm_concurrency = max(1, warm_concurrency)
        self.logger = get_logger("cache.engine")

    # ------------------------------------------------------------------
    # Internal helpers

    def _resolve_ttl(self, ttl: Optional[int]) -> int:
        return self.default_ttl if ttl is None else ttl

    def _timed(self, operation: str):
        if self.metrics is None:
            return nullcontext()
        return self.metrics.time_operation(operation)

    def _record_lookup(self, hit: bool, count: int = 1) -> None:
        if hit:
            self.counters.record_hit(count)
        else:
            self.counters.record_miss(count)

        if self.metrics is not None:
            if hit:
                self.metrics.record_hit(count)
            else:
                self.metrics.record_miss(count)

    def _record_error(self, operation: str, message: str, error: Exception, **context: Any) -> None:
        self.logger.error(message, error=str(error), error_type=type(error).__name__, **context)
        if self.metrics is not None:
            self.metrics.record_error(operation)

    def _decode(self, key: str, raw: Optional[str]) -> Any:
        """Deserialize a raw store value, recording the lookup as hit or miss."""
        if raw is None:
            self._record_lookup(False)
            return None

        try:
            value = json.loads(raw)
        except (TypeError, ValueError) as e:
            self.logger.warning("Cache value could not be deserialized", key=key, error=str(e))
            self._record_lookup(False)
            return None

        self._record_lookup(True)
        return value

    async def _write(self, key: str, payload: str, ttl: int) -> None:
        if ttl > 0:
            await self.store.set_with_ttl(key, payload, ttl)
        else:
            await self.store.set_no_expiry(key, payload)

    @staticmethod
    def _tag_writes(key: str, ttl: Optional[int], tags: Iterable[str]) -> List[StoreWrite]:
        return [StoreWrite(tag_index_key(tag, key), TAG_MARKER, ttl) for tag in dict.fromkeys(tags)]

    # ------------------------------------------------------------------
    # Single-key operations

    async def get(self, key: str) -> Any:
        """Get a cached value, or None on miss or any cache failure."""
        with self._timed("get"):
            try:
                raw = await self.store.get(key)
            except Exception as e:
                self._record_error("get", "Cache get error", e, key=key)
                self._record_lookup(False)
                return None

            return self._decode(key, raw)

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Cache a value; ``ttl <= 0`` stores it without expiry."""
        ttl = self._resolve_ttl(ttl)
        with self._timed("set"):
            try:
                payload = json.dumps(value)
                await self._write(key, payload, ttl)
                return True
            except Exception as e:
                self._record_error("set", "Cache set error", e, key=key)
                return False

    async def delete(self, key: str) -> bool:
        """Delete a cached value. True when the key existed."""
        try:
            return await self.store.delete(key) > 0
        except Exception as e:
            self._record_error("delete", "Cache delete error", e, key=key)
            return False

    async def exists(self, key: str) -> bool:
        try:
            return await self.store.exists(key)
        except Exception as e:
            self._record_error("exists", "Cache exists error", e, key=key)
            return False

    async def get_ttl(self, key: str) -> int:
        """Remaining seconds to live, -1 when absent, persistent, or on error."""
        try:
            return await self.store.ttl_remaining(key)
        except Exception as e:
            self._record_error("ttl", "Cache TTL error", e, key=key)
            return -1

    async def set_expiry(self, key: str, ttl: int) -> bool:
        try:
            return await self.store.set_expiry(key, ttl)
        except Exception as e:
            self._record_error("expire", "Cache expire error", e, key=key)
            return False

    async def increment(self, key: str, amount: int = 1) -> int:
        try:
            return await self.store.increment_by(key, amount)
        except Exception as e:
            self._record_error("increment", "Cache increment error", e, key=key)
            return 0

    async def decrement(self, key: str, amount: int = 1) -> int:
        try:
            return await self.store.decrement_by(key, amount)
        except Exception as e:
            self._record_error("decrement", "Cache decrement error", e, key=key)
            return 0

    async def get_keys(self, pattern: str = "*") -> List[str]:
        try:
            return await self.store.keys_matching(pattern)
        except Exception as e:
            self._record_error("keys", "Cache get keys error", e, pattern=pattern)
            return []

    async def flush_all(self) -> bool:
        """Remove every key in the store."""
        try:
            await self.store.flush_all()
            self.logger.info("Cache flushed")
            return True
        except Exception as e:
            self._record_error("flush", "Cache flush all error", e)
            return False

    # ------------------------------------------------------------------
    # Invalidation

    async def invalidate_by_pattern(self, pattern: str) -> int:
        """Delete all keys matching a glob pattern; returns how many were removed."""
        with self._timed("invalidate"):
            try:
                keys = await self.store.keys_matching(pattern)
                if not keys:
                    return 0
                removed = await self.store.delete(*keys)
            except Exception as e:
                self._record_error("invalidate", "Cache invalidate pattern error", e, pattern=pattern)
                return 0

        self.logger.info("Invalidated cache pattern", pattern=pattern, count=removed)
        return removed

    async def invalidate_by_prefix(self, prefix: str) -> int:
        return await self.invalidate_by_pattern(f"{prefix}*")

    async def invalidate_by_suffix(self, suffix: str) -> int:
        return await self.invalidate_by_pattern(f"*{suffix}")

    async def set_with_tags(
        self,
        key: str,
        value: Any,
        ttl: Optional[int] = None,
        tags: Sequence[str] = (),
    ) -> bool:
        """Cache a value and register it under each tag.

        The primary entry is written first; index entries are only written
        once it is stored, so an index never points at an entry that was
        never written. Index entries share the primary's TTL.
        """
        ttl = self._resolve_ttl(ttl)
        if not await self.set(key, value, ttl):
            return False

        writes = self._tag_writes(key, ttl if ttl > 0 else None, tags)
        if not writes:
            return True

        try:
            await self.store.pipeline_execute(writes)
            return True
        except Exception as e:
            self._record_error("set_tags", "Cache set with tags error", e, key=key, tags=list(tags))
            return False

    async def invalidate_by_tags(self, tags: Sequence[str]) -> int:
        """Delete every entry registered under any of ``tags``.

        Each index key ``tag:<tag>:<key>`` is resolved back to ``<key>``;
        primary entries are deleted first, then the index keys. Returns
        the number of primary entries removed.
        """
        removed = 0
        with self._timed("invalidate_tags"):
            for tag in dict.fromkeys(tags):
                prefix = tag_index_key(tag, "")
                try:
                    index_keys = await self.store.keys_matching(f"{escape_pattern(prefix)}*")
                    if not index_keys:
                        continue

                    primary_keys = [index_key[len(prefix):] for index_key in index_keys]
                    removed += await self.store.delete(*primary_keys)
                    await self.store.delete(*index_keys)
                except Exception as e:
                    self._record_error("invalidate_tags", "Cache invalidate by tags error", e, tag=tag)
                    continue

                self.logger.info("Invalidated cache tag", tag=tag, count=len(index_keys))

        return removed

    # ------------------------------------------------------------------
    # Bulk operations

    async def get_multiple(self, keys: Sequence[str]) -> List[Any]:
        """Batched read; the result is aligned to ``keys`` with None for misses."""
        keys = list(keys)
        if not keys:
            return []

        with self._timed("get_multiple"):
            try:
                raw_values = await self.store.get_many(keys)
            except Exception as e:
                self._record_error("get_multiple", "Cache get multiple error", e, count=len(keys))
                self._record_lookup(False, len(keys))
                return [None] * len(keys)

            return [self._decode(key, raw) for key, raw in zip(keys, raw_values)]

    async def set_multiple(self, items: Iterable[CacheItem], tags: Sequence[str] = ()) -> bool:
        """Write all items in one pipelined batch.

        Items with no TTL (or ``ttl <= 0``) never expire. When ``tags`` is
        given each item's index entries follow it in the same batch.
        """
        writes: List[StoreWrite] = []
        skipped = 0
        for item in items:
            try:
                payload = json.dumps(item.value)
            except (TypeError, ValueError) as e:
                self.logger.warning("Skipping unserializable cache item", key=item.key, error=str(e))
                skipped += 1
                continue

            ttl = item.ttl if item.ttl is not None and item.ttl > 0 else None
            writes.append(StoreWrite(item.key, payload, ttl))
            writes.extend(self._tag_writes(item.key, ttl, tags))

        if not writes:
            return skipped == 0

        with self._timed("set_multiple"):
            try:
                await self.store.pipeline_execute(writes)
            except Exception as e:
                self._record_error("set_multiple", "Cache set multiple error", e, count=len(writes))
                return False

        return skipped == 0

    # ------------------------------------------------------------------
    # Cache-aside

    async def get_or_set(
        self,
        key: str,
        fetcher: Callable[[], Any],
        ttl: Optional[int] = None,
        tags: Sequence[str] = (),
    ) -> Any:
        """Return the cached value, or fetch, cache and return it.

        Concurrent misses on the same key each call ``fetcher``; wrap the
        call with ``get_or_set_exclusive`` for single-flight behaviour.
        Fetcher errors propagate to the caller.
        """
        cached = await self.get(key)
        if cached is not None:
            return cached

        data = await call_fetcher(fetcher)

        if tags:
            await self.set_with_tags(key, data, ttl, tags)
        else:
            await self.set(key, data, ttl)

        return data

    async def get_or_set_multiple(
        self,
        keys: Sequence[str],
        batch_fetcher: Callable[[List[str]], Any],
        ttl: Optional[int] = None,
        tags: Sequence[str] = (),
    ) -> Dict[str, Any]:
        """Batched cache-aside.

        ``batch_fetcher`` receives the missing keys and returns a mapping
        of key to value; it is called once, and only when something is
        missing. Keys it does not return are absent from the result.
        """
        keys = list(keys)
        ttl = self._resolve_ttl(ttl)
        cached_values = await self.get_multiple(keys)

        result: Dict[str, Any] = {}
        missing: List[str] = []
        for key, value in zip(keys, cached_values):
            if value is not None:
                result[key] = value
            else:
                missing.append(key)

        if not missing:
            return result

        fresh_values = await call_fetcher(batch_fetcher, list(dict.fromkeys(missing)))
        if not fresh_values:
            return result

        result.update(fresh_values)
        await self.set_multiple(
            [CacheItem(key, value, ttl) for key, value in fresh_values.items()],
            tags=tags,
        )
        return result

    # ------------------------------------------------------------------
    # Warming

    async def warm_cache(
        self,
        entries: Iterable[Union[WarmEntry, Tuple[Any, ...]]],
    ) -> WarmSummary:
        """Fetch and cache every entry concurrently.

        A failing fetcher is logged and counted; it never stops the
        other entries.
        """
        plan = [entry if isinstance(entry, WarmEntry) else WarmEntry(*entry) for entry in entries]
        summary = WarmSummary(planned=len(plan))
        if not plan:
            return summary

        semaphore = asyncio.Semaphore(self.warm_concurrency)
        outcomes = await asyncio.gather(*(self._warm_entry(entry, semaphore) for entry in plan))

        for entry, error in zip(plan, outcomes):
            if error is None:
                summary.warmed += 1
            else:
                summary.failed += 1
                summary.errors[entry.key] = error

            if self.metrics is not None:
                self.metrics.increment_counter("cache_warm_total", result="warmed" if error is None else "failed")

        self.logger.info(
            "Cache warm completed",
            planned=summary.planned,
            warmed=summary.warmed,
            failed=summary.failed,
        )
        return summary

    async def _warm_entry(self, entry: WarmEntry, semaphore: asyncio.Semaphore) -> Optional[str]:
        """Warm one entry; returns an error description or None on success."""
        async with semaphore:
            try:
                data = await call_fetcher(entry.fetcher)
            except Exception as e:
                self.logger.error("Cache warming error", key=entry.key, error=str(e))
                return str(e) or type(e).__name__

            if not await self.set(entry.key, data, entry.ttl):
                return "cache write failed"
            return None

    # ------------------------------------------------------------------
    # Introspection

    async def get_stats(self) -> CacheStatsSnapshot:
        """Counters plus live store figures; store figures are 0 if introspection fails."""
        hits, misses = self.counters.snapshot()
        hit_rate = calculate_hit_rate(hits, misses)
        if self.metrics is not None:
            self.metrics.set_gauge("cache_hit_ratio", hit_rate)

        try:
            total_keys, memory_usage = await asyncio.gather(
                self.store.approximate_key_count(),
                self.store.approximate_memory_bytes(),
            )
        except Exception as e:
            self._record_error("stats", "Cache get stats error", e)
            total_keys, memory_usage = 0, 0

        return CacheStatsSnapshot(
            hits=hits,
            misses=misses,
            hit_rate=hit_rate,
            total_keys=total_keys,
            memory_usage_bytes=memory_usage,
        )

    async def health_check(self) -> HealthStatus:
        """Ping the store and classify the result."""
        try:
            latency = await self.store.ping()
            status = HealthStatus(status=HealthState.HEALTHY, latency_ms=latency)
        except Exception as e:
            self.logger.warning("Cache health check failed", error=str(e))
            status = HealthStatus(status=HealthState.UNHEALTHY, error=str(e) or type(e).__name__)

        if self.metrics is not None:
            self.metrics.record_health_check(status.status.value)
        return status

    async def close(self) -> None:
        try:
            await self.store.close()
        except Exception as e:
            self.logger.error("Cache disconnect error", error=str(e))
