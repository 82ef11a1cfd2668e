import math

from limitkeeper.core.strategies.base import AttemptResult, RateLimitStrategy, ttl_seconds


class SlidingWindowStrategy(RateLimitStrategy):
    """
    Sliding Window Log algorithm.
    Precise but more expensive than a fixed window (stores one timestamp per
    admitted attempt, at most ``max_attempts`` of them).

    On every call:
    1. Drop timestamps older than (now - window)
    2. Count what is left (current usage)
    3. If count < limit: append now, persist, allow
    4. Else: deny until the oldest surviving timestamp leaves the window
    """

    async def _window(self, key: str, decay_seconds: float, now: float) -> list[float]:
        window_start = now - decay_seconds
        timestamps = await self.backend.get(key) or []
        return sorted(float(ts) for ts in timestamps if float(ts) > window_start)

    async def attempt(self, key: str, max_attempts: int, decay_seconds: float) -> AttemptResult:
        now = self.clock()
        timestamps = await self._window(key, decay_seconds, now)

        if len(timestamps) >= max_attempts:
            retry_after = math.ceil(timestamps[0] + decay_seconds - now)
            return AttemptResult.rejected(
                attempts=len(timestamps),
                limit=max_attempts,
                retry_after=retry_after,
            )

        timestamps.append(now)
        await self.backend.put(key, timestamps, ttl_seconds(decay_seconds))
        return AttemptResult.accepted(attempts=len(timestamps), limit=max_attempts)

    async def check(self, key: str, max_attempts: int, decay_seconds: float) -> bool:
        timestamps = await self._window(key, decay_seconds, self.clock())
        return len(timestamps) < max_attempts

    async def remaining(self, key: str, max_attempts: int, decay_seconds: float) -> int:
        timestamps = await self._window(key, decay_seconds, self.clock())
        return max(0, max_attempts - len(timestamps))

    async def retry_after(self, key: str, decay_seconds: float) -> int:
        now = self.clock()
        timestamps = await self._window(key, decay_seconds, now)

        if not timestamps:
            return 0

        return max(0, math.ceil(timestamps[0] + decay_seconds - now))

    async def reset(self, key: str) -> bool:
        return await self.backend.forget(key)
