import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from limitkeeper.core.backends.memory import InMemoryBackend
from limitkeeper.core.backends.redis import RedisBackend
from limitkeeper.core.exceptions import StoreError
from limitkeeper.testing import FakeClock


# =============================================================================
# InMemoryBackend
# =============================================================================


class TestInMemoryBackend:
    @pytest.mark.asyncio
    async def test_get_missing_key(self) -> None:
        assert await InMemoryBackend().get("nope") is None

    @pytest.mark.asyncio
    async def test_put_and_get(self) -> None:
        backend = InMemoryBackend()

        await backend.put("k", {"tokens": 2.5}, ttl=60)

        assert await backend.get("k") == {"tokens": 2.5}

    @pytest.mark.asyncio
    async def test_values_are_copied(self) -> None:
        backend = InMemoryBackend()
        timestamps = [1.0, 2.0]
        await backend.put("k", timestamps, ttl=60)

        timestamps.append(3.0)
        (await backend.get("k")).append(4.0)

        assert await backend.get("k") == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_ttl_expiry(self) -> None:
        clock = FakeClock()
        backend = InMemoryBackend(clock=clock)
        await backend.put("k", 1, ttl=10)

        clock.advance(9.9)
        assert await backend.get("k") == 1

        clock.advance(0.1)
        assert await backend.get("k") is None
        assert backend.keys() == []

    @pytest.mark.asyncio
    async def test_forget(self) -> None:
        backend = InMemoryBackend()
        await backend.put("k", 1, ttl=10)

        assert await backend.forget("k") is True
        assert await backend.forget("k") is False
        assert await backend.get("k") is None

    @pytest.mark.asyncio
    async def test_forget_expired_key_reports_nothing_removed(self) -> None:
        clock = FakeClock()
        backend = InMemoryBackend(clock=clock)
        await backend.put("k", 1, ttl=1)
        clock.advance(5)

        assert await backend.forget("k") is False

    @pytest.mark.asyncio
    async def test_forget_prefix(self) -> None:
        backend = InMemoryBackend()
        await backend.put("rate_limit:a:1", 1, ttl=10)
        await backend.put("rate_limit:a:2", 1, ttl=10)
        await backend.put("rate_limit:b:1", 1, ttl=10)

        assert await backend.forget_prefix("rate_limit:a:") == 2
        assert backend.keys() == ["rate_limit:b:1"]

    @pytest.mark.asyncio
    async def test_clear(self) -> None:
        backend = InMemoryBackend()
        await backend.put("k", 1, ttl=10)

        backend.clear()

        assert backend.keys() == []


# =============================================================================
# RedisBackend
# =============================================================================


@pytest.fixture
def redis_client():
    client = AsyncMock()
    client.get.return_value = None
    client.delete.return_value = 1
    return client


class TestRedisBackend:
    @pytest.mark.asyncio
    async def test_get_decodes_json(self, redis_client) -> None:
        redis_client.get.return_value = json.dumps([1.5, 2.5])

        assert await RedisBackend(redis_client).get("k") == [1.5, 2.5]

    @pytest.mark.asyncio
    async def test_get_decodes_bytes(self, redis_client) -> None:
        redis_client.get.return_value = b"3"

        assert await RedisBackend(redis_client).get("k") == 3

    @pytest.mark.asyncio
    async def test_get_missing(self, redis_client) -> None:
        assert await RedisBackend(redis_client).get("k") is None

    @pytest.mark.asyncio
    async def test_put_sets_value_with_expiry(self, redis_client) -> None:
        await RedisBackend(redis_client).put("k", {"tokens": 1.0}, ttl=60)

        redis_client.set.assert_awaited_once_with("k", json.dumps({"tokens": 1.0}), ex=60)

    @pytest.mark.asyncio
    async def test_put_never_uses_zero_ttl(self, redis_client) -> None:
        await RedisBackend(redis_client).put("k", 1, ttl=0)

        assert redis_client.set.call_args.kwargs["ex"] == 1

    @pytest.mark.asyncio
    async def test_forget(self, redis_client) -> None:
        backend = RedisBackend(redis_client)

        assert await backend.forget("k") is True
        redis_client.delete.return_value = 0
        assert await backend.forget("k") is False

    @pytest.mark.asyncio
    async def test_forget_prefix_scans_and_deletes(self, redis_client) -> None:
        async def scan_iter(match, count):
            assert match == "rate_limit:*"
            for key in ("rate_limit:a:1", "rate_limit:b:1"):
                yield key

        redis_client.scan_iter = MagicMock(side_effect=scan_iter)
        redis_client.delete.return_value = 2

        assert await RedisBackend(redis_client).forget_prefix("rate_limit:") == 2
        redis_client.delete.assert_awaited_once_with("rate_limit:a:1", "rate_limit:b:1")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("operation", ["get", "put", "forget"])
    async def test_redis_errors_become_store_errors(self, redis_client, operation) -> None:
        error = RedisConnectionError("connection refused")
        redis_client.get.side_effect = error
        redis_client.set.side_effect = error
        redis_client.delete.side_effect = error
        backend = RedisBackend(redis_client)

        with pytest.raises(StoreError) as exc_info:
            if operation == "put":
                await backend.put("k", 1, ttl=10)
            else:
                await getattr(backend, operation)("k")

        assert exc_info.value.key == "k"
        assert exc_info.value.__cause__ is error

    @pytest.mark.asyncio
    async def test_close(self, redis_client) -> None:
        await RedisBackend(redis_client).close()

        redis_client.aclose.assert_awaited_once()
