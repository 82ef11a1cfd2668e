"""
Helpers for testing code that uses the rate limiter.

    clock = FakeClock()
    manager = make_manager(clock=clock, limiters={"form": LimiterConfig(attempts=3)})
    ...
    clock.advance(61)
"""

from limitkeeper.config import LimiterConfig, Settings
from limitkeeper.core.backends.memory import InMemoryBackend
from limitkeeper.core.manager import RateLimiterManager


class FakeClock:
    """Manually advanced clock; pass it wherever a ``clock`` callable is taken."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_manager(
    clock: FakeClock | None = None,
    limiters: dict[str, LimiterConfig] | None = None,
    **overrides,
) -> RateLimiterManager:
    """
    Manager over a fresh in-memory backend sharing one clock with it.

    ``overrides`` are passed to ``Settings``; anything not given keeps its
    default, except that no ``.env`` file is read.
    """
    clock = clock or FakeClock()
    if limiters is not None:
        overrides["limiters"] = limiters
    settings = Settings(_env_file=None, **overrides)
    return RateLimiterManager(InMemoryBackend(clock=clock), settings, clock=clock)
