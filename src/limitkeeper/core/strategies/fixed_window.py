import math

from limitkeeper.core.strategies.base import AttemptResult, RateLimitStrategy, ttl_seconds


class FixedWindowStrategy(RateLimitStrategy):
    """
    Fixed window counter.

    One integer per key, rewritten with a fresh TTL on every admitted attempt.
    The retry point is tracked in a paired ``<key>:expires_at`` entry that is
    created on the first rejection. Cheap, but bursty at window edges: a
    client can spend a full quota just before and just after the boundary.

    The marker counts from the first rejection while the counter expires
    one window after the last admitted attempt. The counter can therefore
    lapse first: ``check`` turns True while ``retry_after`` still reports
    time left, and the retry value given on rejection is an upper bound.
    """

    EXPIRY_SUFFIX = ":expires_at"

    def _expiry_key(self, key: str) -> str:
        return key + self.EXPIRY_SUFFIX

    async def _attempts(self, key: str) -> int:
        return int(await self.backend.get(key) or 0)

    async def attempt(self, key: str, max_attempts: int, decay_seconds: float) -> AttemptResult:
        stored = await self.backend.get(key)
        attempts = int(stored or 0)

        if attempts >= max_attempts:
            return AttemptResult.rejected(
                attempts=attempts,
                limit=max_attempts,
                retry_after=await self._window_retry_after(key, decay_seconds),
            )

        if stored is None:
            # New window: drop the retry marker left by the previous one
            await self.backend.forget(self._expiry_key(key))

        attempts += 1
        await self.backend.put(key, attempts, ttl_seconds(decay_seconds))
        return AttemptResult.accepted(attempts=attempts, limit=max_attempts)

    async def _window_retry_after(self, key: str, decay_seconds: float) -> int:
        now = self.clock()
        expires_at = await self.backend.get(self._expiry_key(key))

        if expires_at is None:
            expires_at = now + decay_seconds
            await self.backend.put(self._expiry_key(key), expires_at, ttl_seconds(decay_seconds))

        return max(0, math.ceil(expires_at - now))

    async def check(self, key: str, max_attempts: int, decay_seconds: float) -> bool:
        return await self._attempts(key) < max_attempts

    async def remaining(self, key: str, max_attempts: int, decay_seconds: float) -> int:
        return max(0, max_attempts - await self._attempts(key))

    async def retry_after(self, key: str, decay_seconds: float) -> int:
        expires_at = await self.backend.get(self._expiry_key(key))
        if expires_at is None:
            return 0
        return max(0, math.ceil(expires_at - self.clock()))

    async def reset(self, key: str) -> bool:
        await self.backend.forget(key)
        await self.backend.forget(self._expiry_key(key))
        return True
