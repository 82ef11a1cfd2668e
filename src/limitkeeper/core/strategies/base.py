"""
Abstract base classes for rate limiting strategies.

This module defines the contract that all rate limiting algorithms must follow.
Using the Strategy Pattern allows swapping algorithms at runtime without
changing the client code.
"""

import math
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass

from limitkeeper.core.backends.base import StorageBackend


@dataclass(frozen=True)
class AttemptResult:
    """
    Immutable outcome of a rate limit decision.

    Attributes:
        allowed: Whether the action may proceed.
        attempts: Attempts consumed in the current window (or tokens used).
        remaining: Attempts left before the limit is hit.
        retry_after: Whole seconds until the caller can retry (0 if allowed).
        limit: Maximum attempts for the window.
        bypassed: True when enforcement was skipped for this call.

    The result is truthy exactly when the action was allowed, so
    ``if await manager.attempt(key): ...`` reads naturally.
    """

    allowed: bool
    attempts: int
    remaining: int
    retry_after: int = 0
    limit: int = 0
    bypassed: bool = False

    def __bool__(self) -> bool:
        return self.allowed

    @property
    def is_allowed(self) -> bool:
        """Convenience property to check if request should proceed."""
        return self.allowed

    @classmethod
    def accepted(cls, attempts: int, limit: int) -> "AttemptResult":
        return cls(
            allowed=True,
            attempts=attempts,
            remaining=max(0, limit - attempts),
            retry_after=0,
            limit=limit,
        )

    @classmethod
    def rejected(cls, attempts: int, limit: int, retry_after: int) -> "AttemptResult":
        return cls(
            allowed=False,
            attempts=attempts,
            remaining=0,
            retry_after=max(1, retry_after),
            limit=limit,
        )


def ttl_seconds(decay_seconds: float) -> int:
    """Store TTLs are whole seconds; never round a live window down to zero."""
    return max(1, math.ceil(decay_seconds))


class RateLimitStrategy(ABC):
    """
    Abstract base class for rate limiting algorithms.

    Every strategy keeps its counter state in a ``StorageBackend`` and
    implements the same five operations so they can be used interchangeably.
    Only ``attempt`` consumes quota.

    State updates are read-then-write and NOT atomic: two concurrent
    attempts on the same key can both observe the old state and both be
    admitted. Callers needing strict guarantees must use a store with native
    atomic primitives.
    """

    def __init__(self, backend: StorageBackend, clock: Callable[[], float] = time.time):
        self.backend = backend
        self.clock = clock

    @abstractmethod
    async def attempt(self, key: str, max_attempts: int, decay_seconds: float) -> AttemptResult:
        """
        Consume one attempt for ``key`` if the limit allows it.

        Args:
            key: Fully namespaced cache key.
                 Example: "rate_limit:default:ip:9f86d08..."
            max_attempts: Maximum attempts allowed within the window.
            decay_seconds: Length of the decay window in seconds.

        Returns:
            AttemptResult with the decision and quota metadata.
        """
        pass

    @abstractmethod
    async def check(self, key: str, max_attempts: int, decay_seconds: float) -> bool:
        """Would an attempt be allowed right now? Never mutates state."""
        pass

    @abstractmethod
    async def remaining(self, key: str, max_attempts: int, decay_seconds: float) -> int:
        """Attempts left for ``key``. Never mutates state."""
        pass

    @abstractmethod
    async def retry_after(self, key: str, decay_seconds: float) -> int:
        """Whole seconds until ``key`` can be attempted again, 0 if now."""
        pass

    @abstractmethod
    async def reset(self, key: str) -> bool:
        """
        Reset rate limit state for a specific key.

        Args:
            key: The rate limit key to reset.
        """
        pass
