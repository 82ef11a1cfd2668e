"""
Abstract base class for storage backends.

Strategies keep all of their state in a shared key-value store with per-key
expiry. Separating storage from algorithms allows:
- Testing with the in-memory backend (no Redis needed)
- Swapping Redis for another cache with TTL support
- Running locally without external dependencies

Values are JSON-compatible (ints, floats, lists, dicts).
"""

from abc import ABC, abstractmethod
from typing import Any


class StorageBackend(ABC):
    """
    Key-value store with per-key TTL.

    Implementations must raise ``StoreError`` when the underlying store fails;
    strategies and the manager let it propagate to the caller.

    Available implementations:
    - InMemoryBackend: For testing and development (no persistence)
    - RedisBackend: For production (shared across processes)

    Example:
        >>> backend = InMemoryBackend()  # for testing
        >>> strategy = FixedWindowStrategy(backend)

        >>> backend = RedisBackend(redis_client)  # for production
        >>> strategy = FixedWindowStrategy(backend)
    """

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """
        Retrieve a value by key.

        Args:
            key: The key to retrieve.

        Returns:
            The stored value, or None if the key doesn't exist or expired.

        Example:
            >>> await backend.get("rate_limit:default:ip:abc")
            3
        """
        pass

    @abstractmethod
    async def put(self, key: str, value: Any, ttl: int) -> None:
        """
        Store a value with expiration time.

        Args:
            key: The key to store under.
            value: JSON-serializable value.
            ttl: Time-to-live in seconds. Key auto-deletes after this.

        Example:
            >>> await backend.put("rate_limit:default:ip:abc", 4, ttl=60)
        """
        pass

    @abstractmethod
    async def forget(self, key: str) -> bool:
        """
        Delete a key from storage.

        Args:
            key: The key to delete. No error if key doesn't exist.

        Returns:
            True if a key was removed.
        """
        pass

    async def forget_prefix(self, prefix: str) -> int:
        """
        Delete every key starting with ``prefix``.

        Bulk deletion is optional: stores without key scanning keep this
        default, which raises ``NotImplementedError``.

        Returns:
            Number of keys removed.
        """
        raise NotImplementedError(f"{type(self).__name__} does not support prefix deletion")
