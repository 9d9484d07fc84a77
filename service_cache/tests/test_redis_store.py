"""
Unit tests for the Redis store adapter.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from redis import exceptions as redis_exceptions

from shared.errors import StoreProtocolError, StoreUnavailable
from service_cache.app.models import StoreWrite
from service_cache.app.store.redis_store import RedisStore


class TestRedisStore:
    """Test cases for RedisStore against a mocked redis client."""

    @pytest.fixture
    def client(self):
        return MagicMock()

    @pytest.fixture
    def store(self, client):
        return RedisStore("redis://localhost:6379/0", client=client)

    @pytest.mark.asyncio
    async def test_get(self, store, client):
        client.get = AsyncMock(return_value='{"a": 1}')

        assert await store.get("key") == '{"a": 1}'
        client.get.assert_awaited_once_with("key")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        redis_exceptions.ConnectionError("refused"),
        redis_exceptions.TimeoutError("timed out"),
        ConnectionRefusedError("refused"),
    ])
    async def test_transport_errors_become_unavailable(self, store, client, error):
        client.get = AsyncMock(side_effect=error)

        with pytest.raises(StoreUnavailable) as exc_info:
            await store.get("key")

        assert exc_info.value.code == "STORE_UNAVAILABLE"
        assert exc_info.value.__cause__ is error

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        redis_exceptions.ResponseError("WRONGTYPE"),
        redis_exceptions.DataError("bad"),
    ])
    async def test_reply_errors_become_protocol_errors(self, store, client, error):
        client.incrby = AsyncMock(side_effect=error)

        with pytest.raises(StoreProtocolError) as exc_info:
            await store.increment_by("key", 1)

        assert exc_info.value.code == "STORE_PROTOCOL_ERROR"

    @pytest.mark.asyncio
    async def test_get_many(self, store, client):
        client.mget = AsyncMock(return_value=[None, "1"])

        assert await store.get_many(["a", "b"]) == [None, "1"]
        client.mget.assert_awaited_once_with(["a", "b"])

    @pytest.mark.asyncio
    async def test_get_many_empty_skips_round_trip(self, store, client):
        client.mget = AsyncMock()

        assert await store.get_many([]) == []
        client.mget.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_get_many_misaligned_reply(self, store, client):
        client.mget = AsyncMock(return_value=["1"])

        with pytest.raises(StoreProtocolError):
            await store.get_many(["a", "b"])

    @pytest.mark.asyncio
    async def test_writes(self, store, client):
        client.setex = AsyncMock(return_value=True)
        client.set = AsyncMock(return_value=True)

        await store.set_with_ttl("a", "1", 60)
        await store.set_no_expiry("b", "2")

        client.setex.assert_awaited_once_with("a", 60, "1")
        client.set.assert_awaited_once_with("b", "2")

    @pytest.mark.asyncio
    async def test_set_if_absent(self, store, client):
        client.set = AsyncMock(side_effect=[True, None])

        assert await store.set_if_absent("lock:res", "token", 30000) is True
        assert await store.set_if_absent("lock:res", "token", 30000) is False
        client.set.assert_awaited_with("lock:res", "token", nx=True, px=30000)

    @pytest.mark.asyncio
    async def test_delete(self, store, client):
        client.delete = AsyncMock(return_value=2)

        assert await store.delete("a", "b") == 2
        assert await store.delete() == 0
        client.delete.assert_awaited_once_with("a", "b")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("reply, expected", [(120, 120), (-1, -1), (-2, -1)])
    async def test_ttl_remaining(self, store, client, reply, expected):
        client.ttl = AsyncMock(return_value=reply)

        assert await store.ttl_remaining("key") == expected

    @pytest.mark.asyncio
    async def test_exists_and_expire(self, store, client):
        client.exists = AsyncMock(return_value=1)
        client.expire = AsyncMock(return_value=False)

        assert await store.exists("a") is True
        assert await store.set_expiry("a", 10) is False

    @pytest.mark.asyncio
    async def test_pipeline_execute_keeps_order(self, store, client):
        pipe = MagicMock()
        pipe.__aenter__ = AsyncMock(return_value=pipe)
        pipe.__aexit__ = AsyncMock(return_value=None)
        pipe.execute = AsyncMock(return_value=[True, True])
        client.pipeline.return_value = pipe

        await store.pipeline_execute([
            StoreWrite("a", "1", 60),
            StoreWrite("tag:t:a", "1", None),
        ])

        client.pipeline.assert_called_once_with(transaction=False)
        pipe.setex.assert_called_once_with("a", 60, "1")
        pipe.set.assert_called_once_with("tag:t:a", "1")
        pipe.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_pipeline_execute_empty(self, store, client):
        await store.pipeline_execute([])
        client.pipeline.assert_not_called()

    @pytest.mark.asyncio
    async def test_conditional_delete_uses_registered_script(self, store, client):
        script = AsyncMock(side_effect=[1, 0])
        client.register_script.return_value = script

        assert await store.conditional_delete("lock:res", "token") == 1
        assert await store.conditional_delete("lock:res", "other") == 0

        client.register_script.assert_called_once_with(RedisStore.COMPARE_AND_DELETE_SCRIPT)
        script.assert_awaited_with(keys=["lock:res"], args=["other"])

    @pytest.mark.asyncio
    async def test_ping_returns_latency(self, store, client):
        client.ping = AsyncMock(return_value=True)

        latency = await store.ping()

        assert isinstance(latency, float)
        assert latency >= 0

    @pytest.mark.asyncio
    async def test_introspection(self, store, client):
        client.dbsize = AsyncMock(return_value=12)
        client.info = AsyncMock(return_value={"used_memory": "1048576", "used_memory_human": "1.00M"})

        assert await store.approximate_key_count() == 12
        assert await store.approximate_memory_bytes() == 1048576
        client.info.assert_awaited_once_with("memory")

    @pytest.mark.asyncio
    async def test_unreadable_memory_info(self, store, client):
        client.info = AsyncMock(return_value={"used_memory": "lots"})

        with pytest.raises(StoreProtocolError):
            await store.approximate_memory_bytes()

    @pytest.mark.asyncio
    async def test_close(self, store, client):
        client.aclose = AsyncMock()

        await store.close()
        await store.close()

        client.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_invalid_url(self):
        store = RedisStore("not-a-redis-url")

        with pytest.raises(StoreProtocolError):
            await store.get("key")
