import json
from typing import Any

from redis.asyncio import Redis
from redis.exceptions import RedisError

from limitkeeper.core.backends.base import StorageBackend
from limitkeeper.core.exceptions import StoreError


class RedisBackend(StorageBackend):
    """
    Redis-backed store. Values are kept as JSON strings with a native TTL.

    Every redis failure surfaces as ``StoreError``; nothing is retried here.
    """

    def __init__(self, redis: Redis, scan_count: int = 500):
        self._redis = redis
        self._scan_count = scan_count

    async def get(self, key: str) -> Any | None:
        try:
            val = await self._redis.get(key)
        except RedisError as exc:
            raise StoreError(f"redis get failed: {exc}", key=key) from exc
        if val is None:
            return None
        if isinstance(val, bytes):
            val = val.decode()
        return json.loads(val)

    async def put(self, key: str, value: Any, ttl: int) -> None:
        try:
            await self._redis.set(key, json.dumps(value), ex=max(1, int(ttl)))
        except RedisError as exc:
            raise StoreError(f"redis put failed: {exc}", key=key) from exc

    async def forget(self, key: str) -> bool:
        try:
            return bool(await self._redis.delete(key))
        except RedisError as exc:
            raise StoreError(f"redis delete failed: {exc}", key=key) from exc

    async def forget_prefix(self, prefix: str) -> int:
        removed = 0
        try:
            batch: list[str] = []
            async for key in self._redis.scan_iter(match=f"{prefix}*", count=self._scan_count):
                batch.append(key)
                if len(batch) >= self._scan_count:
                    removed += await self._redis.delete(*batch)
                    batch = []
            if batch:
                removed += await self._redis.delete(*batch)
        except RedisError as exc:
            raise StoreError(f"redis prefix delete failed: {exc}", key=prefix) from exc
        return removed

    async def close(self) -> None:
        await self._redis.aclose()
