import math
import time
from collections.abc import Callable
from typing import Any

from limitkeeper.core.backends.base import StorageBackend
from limitkeeper.core.strategies.base import AttemptResult, RateLimitStrategy, ttl_seconds


class TokenBucketStrategy(RateLimitStrategy):
    """
    Lazy Token Bucket implementation.
    Tokens are refilled only when the key is accessed.

    Capacity is the policy's ``max_attempts``; ``refill_rate`` is tokens per
    second. Token counts are floats internally and reported floored.

    A stored bucket lives at least as long as a full refill from empty, so a
    drained bucket never reappears full just because its key expired.
    """

    def __init__(
        self,
        backend: StorageBackend,
        refill_rate: float = 1.0,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(backend, clock)
        if refill_rate <= 0:
            raise ValueError("refill_rate must be positive")
        self.refill_rate = refill_rate

    def _refill(self, bucket: dict[str, Any] | None, capacity: int, now: float) -> dict[str, Any]:
        # Initialize if missing
        if not bucket:
            return {"tokens": float(capacity), "last_refill": now, "capacity": capacity}

        # Lazy refill: calculate tokens gained since last visit
        elapsed = max(0.0, now - float(bucket["last_refill"]))
        tokens = min(float(capacity), float(bucket["tokens"]) + elapsed * self.refill_rate)
        return {"tokens": max(0.0, tokens), "last_refill": now, "capacity": capacity}

    async def _bucket(self, key: str, capacity: int, now: float) -> dict[str, Any]:
        return self._refill(await self.backend.get(key), capacity, now)

    def _ttl(self, capacity: int, decay_seconds: float) -> int:
        return max(ttl_seconds(decay_seconds), math.ceil(capacity / self.refill_rate))

    def _seconds_for_next_token(self, tokens: float) -> int:
        return math.ceil((1.0 - tokens) / self.refill_rate)

    async def attempt(self, key: str, max_attempts: int, decay_seconds: float) -> AttemptResult:
        now = self.clock()
        bucket = await self._bucket(key, max_attempts, now)

        if bucket["tokens"] >= 1.0:
            bucket["tokens"] -= 1.0
            await self.backend.put(key, bucket, self._ttl(max_attempts, decay_seconds))
            remaining = math.floor(bucket["tokens"])
            return AttemptResult.accepted(attempts=max_attempts - remaining, limit=max_attempts)

        return AttemptResult.rejected(
            attempts=max_attempts,
            limit=max_attempts,
            retry_after=self._seconds_for_next_token(bucket["tokens"]),
        )

    async def check(self, key: str, max_attempts: int, decay_seconds: float) -> bool:
        bucket = await self._bucket(key, max_attempts, self.clock())
        return bucket["tokens"] >= 1.0

    async def remaining(self, key: str, max_attempts: int, decay_seconds: float) -> int:
        bucket = await self._bucket(key, max_attempts, self.clock())
        return math.floor(bucket["tokens"])

    async def retry_after(self, key: str, decay_seconds: float) -> int:
        bucket = await self.backend.get(key)
        if not bucket:
            return 0

        bucket = self._refill(bucket, int(bucket["capacity"]), self.clock())
        if bucket["tokens"] >= 1.0:
            return 0
        return self._seconds_for_next_token(bucket["tokens"])

    async def reset(self, key: str) -> bool:
        return await self.backend.forget(key)
