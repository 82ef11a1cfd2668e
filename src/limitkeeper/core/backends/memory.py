"""
Process-local store for tests and single-worker deployments.

Values live in plain dictionaries and are deep-copied on the way in and out,
so callers never share mutable state with the store (the same guarantee a
serializing store like Redis gives). Expiry is checked lazily on access.

Counters are not shared between processes and vanish on restart; configure
``redis_url`` when more than one worker enforces the same limits.
"""

import copy
import time
from collections.abc import Callable
from typing import Any

from limitkeeper.core.backends.base import StorageBackend


class InMemoryBackend(StorageBackend):
    """
    Dictionary store on an injectable clock, so tests can move time
    forward instead of sleeping.

    Example:
        >>> backend = InMemoryBackend()
        >>> await backend.put("key", 42, ttl=60)
        >>> await backend.get("key")
        42

    Safe under one event loop only; no locking across threads.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock

        # Key-value storage: key -> value
        self._data: dict[str, Any] = {}

        # Expiration times: key -> unix timestamp when key expires
        self._expiry: dict[str, float] = {}

    def _is_expired(self, key: str) -> bool:
        if key in self._expiry:
            return self._clock() >= self._expiry[key]
        return False

    def _cleanup_if_expired(self, key: str) -> bool:
        if self._is_expired(key):
            self._data.pop(key, None)
            self._expiry.pop(key, None)
            return True
        return False

    async def get(self, key: str) -> Any | None:
        if self._cleanup_if_expired(key):
            return None

        # Hand out copies so callers can't mutate stored state in place
        return copy.deepcopy(self._data.get(key))

    async def put(self, key: str, value: Any, ttl: int) -> None:
        self._data[key] = copy.deepcopy(value)
        self._expiry[key] = self._clock() + ttl

    async def forget(self, key: str) -> bool:
        expired = self._cleanup_if_expired(key)
        existed = key in self._data
        self._data.pop(key, None)
        self._expiry.pop(key, None)
        return existed and not expired

    async def forget_prefix(self, prefix: str) -> int:
        matching = [k for k in self.keys() if k.startswith(prefix)]
        for key in matching:
            self._data.pop(key, None)
            self._expiry.pop(key, None)
        return len(matching)

    # =========================================================================
    # Utility Methods (not part of interface, useful for testing)
    # =========================================================================

    def clear(self) -> None:
        """Clear all stored data."""
        self._data.clear()
        self._expiry.clear()

    def keys(self) -> list[str]:
        """Get all non-expired keys."""
        return [k for k in self._data if not self._is_expired(k)]

    def ttl(self, key: str) -> float | None:
        """Seconds until ``key`` expires, or None when absent."""
        if key not in self._data or self._is_expired(key):
            return None
        return self._expiry[key] - self._clock()
