"""
Optional single-flight variant of ``CacheEngine.get_or_set``.

Plain ``get_or_set`` lets concurrent cold callers all run the fetcher.
``get_or_set_exclusive`` serializes the fetch behind a per-key
distributed lock: check, lock, recheck, fetch, write, release. Losers of
the race poll the cache with backoff and fall back to fetching on their
own when the wait budget is spent, so nobody blocks indefinitely.
"""

import asyncio
from typing import Any, Callable, Optional, Sequence

from shared.logging import get_logger
from shared.retry import RetryConfig, backoff_delays
from ..cache.engine import CacheEngine, call_fetcher
from .distributed_lock import DistributedLock


logger = get_logger("cache.single_flight")

DEFAULT_WAIT = RetryConfig(max_attempts=10, base_delay=0.05, max_delay=1.0)


async def _fetch_and_store(
    engine: CacheEngine,
    key: str,
    fetcher: Callable[[], Any],
    ttl: Optional[int],
    tags: Sequence[str],
) -> Any:
    data = await call_fetcher(fetcher)
    if tags:
        await engine.set_with_tags(key, data, ttl, tags)
    else:
        await engine.set(key, data, ttl)
    return data


async def get_or_set_exclusive(
    engine: CacheEngine,
    lock: DistributedLock,
    key: str,
    fetcher: Callable[[], Any],
    ttl: Optional[int] = None,
    tags: Sequence[str] = (),
    *,
    lease_seconds: Optional[float] = None,
    wait: Optional[RetryConfig] = None,
) -> Any:
    """Cache-aside where at most one holder of ``lock:<key>`` runs ``fetcher``."""
    cached = await engine.get(key)
    if cached is not None:
        return cached

    wait = wait or DEFAULT_WAIT
    try:
        token = await lock.try_acquire(key, lease_seconds)
    except ValueError:
        raise
    except Exception as e:
        # No store, no lock: behave like plain cache-aside
        logger.warning("Single-flight lock unavailable; fetching directly", key=key, error=str(e))
        return await _fetch_and_store(engine, key, fetcher, ttl, tags)

    if token is None:
        for delay in backoff_delays(wait):
            await asyncio.sleep(delay)
            cached = await engine.get(key)
            if cached is not None:
                return cached
            token = await lock.acquire(key, lease_seconds)
            if token is not None:
                break

    if token is None:
        logger.warning("Single-flight wait exhausted; fetching without lock", key=key, attempts=wait.max_attempts)
        return await _fetch_and_store(engine, key, fetcher, ttl, tags)

    try:
        cached = await engine.get(key)
        if cached is not None:
            return cached
        return await _fetch_and_store(engine, key, fetcher, ttl, tags)
    finally:
        await lock.release(key, token)
