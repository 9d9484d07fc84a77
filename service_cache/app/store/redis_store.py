"""
Redis implementation of the store adapter.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, List, Optional, Sequence

import redis.asyncio as redis
from redis import exceptions as redis_exceptions

from shared.logging import get_logger
from shared.errors import StoreProtocolError, StoreUnavailable
from ..models import StoreWrite
from .base import StoreAdapter


UNAVAILABLE_ERRORS = (
    redis_exceptions.ConnectionError,
    redis_exceptions.TimeoutError,
    asyncio.TimeoutError,
    ConnectionError,
)


class RedisStore(StoreAdapter):
    """Thin redis.asyncio client; translates redis errors into store errors."""

    COMPARE_AND_DELETE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    def __init__(
        self,
        redis_url: str,
        *,
        socket_timeout: float = 5.0,
        socket_connect_timeout: float = 5.0,
        health_check_interval: int = 30,
        max_connections: int = 50,
        client: Optional[redis.Redis] = None,
    ):
        self.redis_url = redis_url
        self.socket_timeout = socket_timeout
        self.socket_connect_timeout = socket_connect_timeout
        self.health_check_interval = health_check_interval
        self.max_connections = max_connections
        self.logger = get_logger("cache.store.redis")

        self._redis: Optional[redis.Redis] = client
        self._compare_and_delete = None

    async def _get_redis(self) -> redis.Redis:
        """Get Redis connection."""
        if self._redis is None:
            try:
                self._redis = redis.from_url(
                    self.redis_url,
                    encoding="utf-8",
                    decode_responses=True,
                    socket_connect_timeout=self.socket_connect_timeout,
                    socket_timeout=self.socket_timeout,
                    retry_on_timeout=False,
                    health_check_interval=self.health_check_interval,
                    max_connections=self.max_connections,
                )
            except ValueError as exc:
                raise StoreProtocolError(f"Invalid store URL: {exc}", {"url": self.redis_url}) from exc
        return self._redis

    async def _run(self, operation: str, call: Callable[[redis.Redis], Awaitable[Any]]) -> Any:
        """Run one store call, mapping redis failures onto the store error types."""
        client = await self._get_redis()
        try:
            return await call(client)
        except UNAVAILABLE_ERRORS as exc:
            raise StoreUnavailable(f"{operation} failed: {exc}", {"operation": operation}) from exc
        except redis_exceptions.RedisError as exc:
            raise StoreProtocolError(f"{operation} failed: {exc}", {"operation": operation}) from exc

    async def start(self) -> None:
        """Connect and verify the store answers."""
        await self.ping()
        self.logger.info("Redis store started", url=self.redis_url)

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            self._compare_and_delete = None
            self.logger.info("Redis store stopped")

    async def get(self, key: str) -> Optional[str]:
        return await self._run("get", lambda r: r.get(key))

    async def get_many(self, keys: Sequence[str]) -> List[Optional[str]]:
        if not keys:
            return []
        values = await self._run("mget", lambda r: r.mget(list(keys)))
        if len(values) != len(keys):
            raise StoreProtocolError(
                "mget returned a misaligned reply",
                {"expected": len(keys), "received": len(values)},
            )
        return list(values)

    async def set_with_ttl(self, key: str, value: str, ttl: int) -> None:
        await self._run("setex", lambda r: r.setex(key, ttl, value))

    async def set_no_expiry(self, key: str, value: str) -> None:
        await self._run("set", lambda r: r.set(key, value))

    async def set_if_absent(self, key: str, value: str, ttl_ms: int) -> bool:
        result = await self._run("set_nx", lambda r: r.set(key, value, nx=True, px=ttl_ms))
        return bool(result)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(await self._run("delete", lambda r: r.delete(*keys)))

    async def exists(self, key: str) -> bool:
        return int(await self._run("exists", lambda r: r.exists(key))) == 1

    async def increment_by(self, key: str, amount: int) -> int:
        return int(await self._run("incrby", lambda r: r.incrby(key, amount)))

    async def decrement_by(self, key: str, amount: int) -> int:
        return int(await self._run("decrby", lambda r: r.decrby(key, amount)))

    async def keys_matching(self, pattern: str) -> List[str]:
        return list(await self._run("keys", lambda r: r.keys(pattern)))

    async def ttl_remaining(self, key: str) -> int:
        ttl = int(await self._run("ttl", lambda r: r.ttl(key)))
        # -2 (absent) and -1 (persistent) collapse to -1
        return ttl if ttl >= 0 else -1

    async def set_expiry(self, key: str, ttl: int) -> bool:
        return bool(await self._run("expire", lambda r: r.expire(key, ttl)))

    async def pipeline_execute(self, writes: Sequence[StoreWrite]) -> None:
        if not writes:
            return

        async def _execute(client: redis.Redis) -> List[Any]:
            async with client.pipeline(transaction=False) as pipe:
                for write in writes:
                    if write.ttl is not None and write.ttl > 0:
                        pipe.setex(write.key, write.ttl, write.value)
                    else:
                        pipe.set(write.key, write.value)
                return await pipe.execute()

        await self._run("pipeline", _execute)

    async def conditional_delete(self, key: str, expected: str) -> int:
        async def _execute(client: redis.Redis) -> Any:
            if self._compare_and_delete is None:
                self._compare_and_delete = client.register_script(self.COMPARE_AND_DELETE_SCRIPT)
            return await self._compare_and_delete(keys=[key], args=[expected])

        return int(await self._run("compare_and_delete", _execute))

    async def ping(self) -> float:
        start = time.perf_counter()
        await self._run("ping", lambda r: r.ping())
        return round((time.perf_counter() - start) * 1000, 2)

    async def approximate_key_count(self) -> int:
        return int(await self._run("dbsize", lambda r: r.dbsize()))

    async def approximate_memory_bytes(self) -> int:
        info = await self._run("info", lambda r: r.info("memory"))
        try:
            return int(info.get("used_memory", 0))
        except (AttributeError, TypeError, ValueError) as exc:
            raise StoreProtocolError("Unreadable memory info", {"info": str(info)[:200]}) from exc

    async def flush_all(self) -> None:
        await self._run("flushall", lambda r: r.flushall())
