"""
Single entry point used by calling code.

The manager turns ``(key, limiter name)`` into a namespaced cache key, picks
the strategy configured for the limiter, applies bypass rules and reports the
outcome. It holds no counter state itself: everything lives in the backend.
"""

import inspect
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from limitkeeper.config import Settings, StrategyType
from limitkeeper.core.backends.base import StorageBackend
from limitkeeper.core.bypass import BypassPolicy, RequestContext
from limitkeeper.core.exceptions import ConfigurationError
from limitkeeper.core.policy import Policy, PolicyRegistry
from limitkeeper.core.strategies.base import AttemptResult, RateLimitStrategy
from limitkeeper.core.strategies.fixed_window import FixedWindowStrategy
from limitkeeper.core.strategies.sliding_window import SlidingWindowStrategy
from limitkeeper.core.strategies.token_bucket import TokenBucketStrategy

logger = structlog.get_logger(__name__)

StrategyFactory = Callable[[StorageBackend, Settings], RateLimitStrategy]
ExceededListener = Callable[[str, str, AttemptResult], Awaitable[None] | None]


class RateLimiterManager:
    """
    Resolves policies and strategies and delegates rate limit decisions.

    Example:
        >>> manager = RateLimiterManager(InMemoryBackend(), Settings())
        >>> result = await manager.attempt("ip:abc", "strict")
        >>> result.allowed, result.remaining
        (True, 9)
    """

    def __init__(
        self,
        backend: StorageBackend,
        settings: Settings,
        *,
        policies: PolicyRegistry | None = None,
        bypass: BypassPolicy | None = None,
        listeners: list[ExceededListener] | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.backend = backend
        self.settings = settings
        self.policies = policies or PolicyRegistry.from_settings(settings)
        self.bypass = bypass or BypassPolicy.from_settings(settings)
        self.listeners: list[ExceededListener] = list(listeners or [])
        self.clock = clock

        self._factories: dict[str, StrategyFactory] = {}
        self._strategies: dict[str, RateLimitStrategy] = {}
        self._register_default_strategies()

    # =========================================================================
    # Strategy registry
    # =========================================================================

    def _register_default_strategies(self) -> None:
        clock = self.clock

        self._factories[StrategyType.FIXED_WINDOW] = lambda backend, settings: FixedWindowStrategy(
            backend, clock=clock
        )
        self._factories[StrategyType.SLIDING_WINDOW] = lambda backend, settings: SlidingWindowStrategy(
            backend, clock=clock
        )
        self._factories[StrategyType.TOKEN_BUCKET] = lambda backend, settings: TokenBucketStrategy(
            backend, refill_rate=settings.token_bucket_refill_rate, clock=clock
        )

    def extend(self, name: str, factory: StrategyFactory) -> None:
        """
        Register a custom strategy under ``name``.

        ``factory`` receives the backend and settings and returns a
        ``RateLimitStrategy``. Re-registering a name replaces the old one.
        """
        self._factories[name] = factory
        self._strategies.pop(name, None)
        logger.debug("strategy_registered", strategy=name)

    def strategy(self, name: str) -> RateLimitStrategy:
        if name not in self._strategies:
            factory = self._factories.get(name)
            if factory is None:
                raise ConfigurationError(f"Rate limiting strategy [{name}] not found.")
            self._strategies[name] = factory(self.backend, self.settings)
        return self._strategies[name]

    # =========================================================================
    # Keys
    # =========================================================================

    def build_key(self, key: str, limiter: str | None = None) -> str:
        limiter = limiter or self.policies.default
        return f"{self.settings.key_namespace}:{limiter}:{key}"

    def _resolve(self, key: str, limiter: str | None) -> tuple[Policy, RateLimitStrategy, str]:
        policy = self.policies.resolve(limiter)
        strategy = self.strategy(policy.strategy)
        return policy, strategy, self.build_key(key, policy.name)

    @staticmethod
    def _decay_seconds(policy: Policy, decay_minutes: float | None) -> float:
        return decay_minutes * 60 if decay_minutes else policy.decay_seconds

    # =========================================================================
    # Public operations
    # =========================================================================

    async def attempt(
        self,
        key: str,
        limiter: str | None = None,
        callback: Callable[[], Any] | None = None,
        max_attempts: int | None = None,
        decay_minutes: float | None = None,
        context: RequestContext | None = None,
    ) -> Any:
        """
        Consume one attempt for ``key`` under ``limiter``.

        Returns the callback's result when the attempt is allowed and a
        callback was given, otherwise the ``AttemptResult`` (truthy when
        allowed, falsy when rejected).
        """
        policy = self.policies.resolve(limiter)
        effective_max = max_attempts or policy.max_attempts

        reason = await self.bypass.reason(context)
        if reason is not None:
            logger.debug("rate_limit_bypassed", limiter=policy.name, reason=reason)
            result = AttemptResult(
                allowed=True,
                attempts=0,
                remaining=effective_max,
                limit=effective_max,
                bypassed=True,
            )
            return await self._run_callback(callback) if callback else result

        strategy = self.strategy(policy.strategy)
        full_key = self.build_key(key, policy.name)
        decay_seconds = self._decay_seconds(policy, decay_minutes)

        result = await strategy.attempt(full_key, effective_max, decay_seconds)

        if not result.allowed:
            await self._handle_exceeded(key, policy.name, result)
            return result

        if callback:
            return await self._run_callback(callback)

        return result

    async def check(
        self,
        key: str,
        limiter: str | None = None,
        context: RequestContext | None = None,
        max_attempts: int | None = None,
        decay_minutes: float | None = None,
    ) -> bool:
        """Would an attempt be allowed? Consumes nothing."""
        policy = self.policies.resolve(limiter)

        if await self.bypass.should_bypass(context):
            return True

        strategy = self.strategy(policy.strategy)
        full_key = self.build_key(key, policy.name)
        return await strategy.check(
            full_key,
            max_attempts or policy.max_attempts,
            self._decay_seconds(policy, decay_minutes),
        )

    async def remaining(
        self,
        key: str,
        limiter: str | None = None,
        max_attempts: int | None = None,
        decay_minutes: float | None = None,
    ) -> int:
        policy, strategy, full_key = self._resolve(key, limiter)
        return await strategy.remaining(
            full_key,
            max_attempts or policy.max_attempts,
            self._decay_seconds(policy, decay_minutes),
        )

    async def retry_after(
        self,
        key: str,
        limiter: str | None = None,
        decay_minutes: float | None = None,
    ) -> int:
        policy, strategy, full_key = self._resolve(key, limiter)
        return await strategy.retry_after(full_key, self._decay_seconds(policy, decay_minutes))

    async def reset(self, key: str, limiter: str | None = None) -> bool:
        _, strategy, full_key = self._resolve(key, limiter)
        return await strategy.reset(full_key)

    async def clear(self, limiter: str | None = None) -> bool:
        """
        Best-effort removal of every counter, or of one limiter's counters.

        Returns False when the backend cannot delete by prefix.
        """
        prefix = f"{self.settings.key_namespace}:"
        if limiter:
            prefix += f"{limiter}:"

        try:
            removed = await self.backend.forget_prefix(prefix)
        except NotImplementedError:
            logger.warning("clear_unsupported", backend=type(self.backend).__name__)
            return False

        logger.info("rate_limits_cleared", prefix=prefix, removed=removed)
        return True

    # =========================================================================
    # Outcome reporting
    # =========================================================================

    def add_listener(self, listener: ExceededListener) -> None:
        self.listeners.append(listener)

    async def _handle_exceeded(self, key: str, limiter: str, result: AttemptResult) -> None:
        if self.settings.events_enabled:
            for listener in self.listeners:
                try:
                    outcome = listener(key, limiter, result)
                    if inspect.isawaitable(outcome):
                        await outcome
                except Exception:
                    # The decision is already made; a broken listener can't change it
                    logger.exception("exceeded_listener_failed", key=key, limiter=limiter)

        if self.settings.logging_enabled:
            logger.log(
                self._audit_level(),
                "rate_limit_exceeded",
                key=key,
                limiter=limiter,
                attempts=result.attempts,
                retry_after=result.retry_after,
            )

    def _audit_level(self) -> int:
        level = logging.getLevelName(self.settings.logging_level.upper())
        return level if isinstance(level, int) else logging.WARNING

    @staticmethod
    async def _run_callback(callback: Callable[[], Any]) -> Any:
        outcome = callback()
        if inspect.isawaitable(outcome):
            outcome = await outcome
        return outcome
