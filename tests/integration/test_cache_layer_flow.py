"""
Integration tests for the cache layer against an in-process Redis (fakeredis).
"""

import asyncio
import pytest
import fakeredis

from shared.config import get_settings
from shared.retry import RetryConfig
from shared.test_helpers import FetchCounter, TestDataFactory
from service_cache.app.factory import create_cache_layer
from service_cache.app.locking.single_flight import get_or_set_exclusive
from service_cache.app.models import CacheItem, HealthState
from service_cache.app.store.redis_store import RedisStore


@pytest.fixture
def redis_client():
    """Fresh fake Redis server per test; Lua scripting needs fakeredis[lua]."""
    return fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def layer(redis_client):
    settings = get_settings(redis_url="redis://fake:6379/0", single_flight_base_delay=0.01)
    return create_cache_layer(settings, store=RedisStore(settings.redis_url, client=redis_client))


@pytest.fixture
def users():
    return [user.to_dict() for user in TestDataFactory.create_test_users()]


class TestCacheFlow:
    """Cache engine behaviour end to end."""

    @pytest.mark.asyncio
    async def test_set_then_get_round_trip(self, layer, users):
        engine = layer.engine
        key = TestDataFactory.user_key("user1")

        assert await engine.set(key, users[0], 60) is True

        assert await engine.get(key) == users[0]
        assert 0 < await engine.get_ttl(key) <= 60

    @pytest.mark.asyncio
    async def test_expired_entry_is_a_miss(self, layer):
        engine = layer.engine
        await engine.set("session:abc", {"user": "user1"}, 1)

        await asyncio.sleep(1.2)

        assert await engine.get("session:abc") is None
        assert engine.counters.misses == 1

    @pytest.mark.asyncio
    async def test_no_expiry_entry(self, layer):
        engine = layer.engine
        await engine.set("settings", {"theme": "dark"}, 0)

        assert await engine.get_ttl("settings") == -1
        assert await engine.get("settings") == {"theme": "dark"}

    @pytest.mark.asyncio
    async def test_get_or_set_warm_cache_skips_fetcher(self, layer, users):
        fetcher = FetchCounter(users[1])
        key = TestDataFactory.user_key("user2")

        first = await layer.engine.get_or_set(key, fetcher)
        second = await layer.engine.get_or_set(key, fetcher)

        assert first == second == users[1]
        assert fetcher.calls == 1

    @pytest.mark.asyncio
    async def test_tag_invalidation_removes_primary_entry(self, layer, redis_client):
        engine = layer.engine
        await engine.set_with_tags("A", {"v": 1}, 3600, ["t1"])
        await engine.set_with_tags("B", {"v": 2}, 3600, ["t2"])

        assert await redis_client.exists("tag:t1:A") == 1

        removed = await engine.invalidate_by_tags(["t1"])

        assert removed == 1
        assert await engine.get("A") is None
        assert await redis_client.exists("tag:t1:A") == 0
        assert await engine.get("B") == {"v": 2}

    @pytest.mark.asyncio
    async def test_tag_index_shares_primary_ttl(self, layer, redis_client):
        await layer.engine.set_with_tags("user:9", {"id": 9}, 300, ["users"])

        assert 0 < await redis_client.ttl("tag:users:user:9") <= 300
        assert 0 < await redis_client.ttl("user:9") <= 300

    @pytest.mark.asyncio
    async def test_get_multiple_alignment(self, layer):
        engine = layer.engine
        await engine.set("b", {"name": "b"})

        assert await engine.get_multiple(["a", "b", "c"]) == [None, {"name": "b"}, None]
        assert engine.counters.snapshot() == (1, 2)

    @pytest.mark.asyncio
    async def test_get_or_set_multiple_fetches_only_missing(self, layer):
        engine = layer.engine
        await engine.set_multiple([CacheItem("user:1", {"id": 1}, 60)])
        requested = []

        async def batch_fetcher(missing):
            requested.append(missing)
            return {key: {"id": key} for key in missing if key != "user:3"}

        result = await engine.get_or_set_multiple(["user:1", "user:2", "user:3"], batch_fetcher, 60)

        assert requested == [["user:2", "user:3"]]
        assert result == {"user:1": {"id": 1}, "user:2": {"id": "user:2"}}
        assert await engine.get("user:2") == {"id": "user:2"}
        assert await engine.exists("user:3") is False

    @pytest.mark.asyncio
    async def test_invalidate_by_prefix(self, layer):
        engine = layer.engine
        await engine.set_multiple([
            CacheItem(TestDataFactory.permissions_key("1"), ["a"]),
            CacheItem(TestDataFactory.permissions_key("2"), ["b"]),
            CacheItem("user:1", {"id": 1}),
        ])

        assert await engine.invalidate_by_prefix("user_permissions:") == 2
        assert await engine.get_keys("user*") == ["user:1"]

    @pytest.mark.asyncio
    async def test_counters(self, layer):
        engine = layer.engine

        assert await engine.increment("visits", 5) == 5
        assert await engine.decrement("visits", 2) == 3

    @pytest.mark.asyncio
    async def test_warm_cache(self, layer):
        async def broken():
            raise RuntimeError("db timeout")

        summary = await layer.engine.warm_cache([
            ("user:1", lambda: {"id": 1}),
            ("user:2", broken),
        ])

        assert summary.warmed == 1
        assert summary.failed == 1
        assert await layer.engine.get("user:1") == {"id": 1}

    @pytest.mark.asyncio
    async def test_health_and_hit_rate(self, layer):
        engine = layer.engine
        await engine.set("a", 1)
        await engine.get("a")
        await engine.get("a")
        await engine.get("missing")

        snapshot = await layer.reporter.snapshot()

        assert snapshot["health"]["status"] == "healthy"
        assert snapshot["stats"]["hits"] == 2
        assert snapshot["stats"]["misses"] == 1
        assert snapshot["stats"]["hit_rate"] == 66.67


class TestLockFlow:
    """Distributed lock against the real compare-and-delete script."""

    @pytest.mark.asyncio
    async def test_acquire_release_cycle(self, layer):
        lock = layer.lock

        first = await lock.acquire("res")
        assert first is not None
        assert await lock.acquire("res") is None

        assert await lock.release("res", first) is True
        assert await lock.acquire("res") is not None

    @pytest.mark.asyncio
    async def test_wrong_token_keeps_lock(self, layer, redis_client):
        lock = layer.lock
        token = await lock.acquire("res")

        assert await lock.release("res", "not-the-token") is False
        assert await redis_client.get("lock:res") == token

    @pytest.mark.asyncio
    async def test_lease_expiry_frees_lock(self, layer):
        lock = layer.lock
        stale = await lock.acquire("res", lease_seconds=0.1)

        await asyncio.sleep(0.2)
        fresh = await lock.acquire("res")

        assert fresh is not None
        assert await lock.release("res", stale) is False
        assert await lock.release("res", fresh) is True


class TestSingleFlight:
    """Optional single-flight cache-aside."""

    @pytest.mark.asyncio
    async def test_concurrent_cold_callers_fetch_once(self, layer):
        calls = 0

        async def slow_fetch():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.05)
            return {"report": "ready"}

        wait = RetryConfig(max_attempts=50, base_delay=0.01, max_delay=0.05, jitter=False)
        results = await asyncio.gather(*(
            get_or_set_exclusive(layer.engine, layer.lock, "report:1", slow_fetch, 60, wait=wait)
            for _ in range(5)
        ))

        assert results == [{"report": "ready"}] * 5
        assert calls == 1
        assert await layer.engine.exists("lock:report:1") is False

    @pytest.mark.asyncio
    async def test_layer_helper_uses_settings(self, layer):
        fetcher = FetchCounter("value")

        assert await layer.get_or_set_exclusive("k", fetcher) == "value"
        assert await layer.get_or_set_exclusive("k", fetcher) == "value"
        assert fetcher.calls == 1


class TestUnreachableStore:
    """A store nobody listens on degrades to misses and no-ops."""

    @pytest.fixture
    def layer(self):
        settings = get_settings(
            redis_url="redis://127.0.0.1:1/0",
            socket_timeout=0.5,
            socket_connect_timeout=0.5,
        )
        return create_cache_layer(settings)

    @pytest.mark.asyncio
    async def test_engine_degrades(self, layer):
        engine = layer.engine

        assert await layer.start() is False
        assert await engine.get("k") is None
        assert await engine.set("k", "v") is False
        assert await engine.exists("k") is False
        assert await engine.invalidate_by_pattern("k*") == 0
        assert await layer.lock.acquire("res") is None
        assert (await engine.health_check()).status == HealthState.UNHEALTHY
        assert await engine.get_or_set("k", lambda: "fresh") == "fresh"

        await layer.close()
