from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from redis.asyncio import from_url

from limitkeeper.config import Settings, get_settings
from limitkeeper.core.backends.base import StorageBackend
from limitkeeper.core.backends.memory import InMemoryBackend
from limitkeeper.core.backends.redis import RedisBackend
from limitkeeper.core.manager import RateLimiterManager

logger = structlog.get_logger(__name__)


def build_backend(settings: Settings) -> StorageBackend:
    """Redis when ``redis_url`` is configured, in-process memory otherwise."""
    if settings.redis_url:
        redis_client = from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        return RedisBackend(redis_client)
    return InMemoryBackend()


def build_manager(settings: Settings | None = None, **kwargs) -> RateLimiterManager:
    settings = settings or get_settings()
    return RateLimiterManager(build_backend(settings), settings, **kwargs)


@asynccontextmanager
async def limiter_lifespan(settings: Settings | None = None, **kwargs) -> AsyncGenerator[RateLimiterManager, None]:
    """
    Owns the backend connection for the lifetime of a host application.

    Example:
        >>> async with limiter_lifespan() as manager:
        ...     app.state.rate_limiter = manager
    """
    manager = build_manager(settings, **kwargs)
    backend = manager.backend

    logger.info(
        "rate_limiter_started",
        backend=type(backend).__name__,
        default_limiter=manager.policies.default,
        limiters=manager.policies.names(),
    )
    try:
        yield manager
    finally:
        if isinstance(backend, RedisBackend):
            await backend.close()
        logger.info("rate_limiter_stopped")
