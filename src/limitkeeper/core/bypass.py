"""
Bypass rules: conditions under which a single call skips enforcement.

Rules are evaluated in a fixed order and the first match wins:

1. ``RequestContext.bypass_once`` set explicitly by the caller
2. environment allow-list
3. caller address allow-list
4. authenticated principal allow-list
5. custom predicate

A bypass never touches stored counters and is never remembered between
calls. A predicate that raises counts as "no bypass".
"""

import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import structlog

from limitkeeper.config import Settings

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RequestContext:
    """Per-call facts about the caller, passed explicitly into the manager."""

    ip: str | None = None
    user_id: str | None = None
    bypass_once: bool = False
    attributes: dict[str, Any] = field(default_factory=dict)


BypassPredicate = Callable[[RequestContext], bool | Awaitable[bool]]


class BypassPolicy:
    def __init__(
        self,
        environment: str,
        environments: list[str] | None = None,
        ips: list[str] | None = None,
        user_ids: list[str] | None = None,
        predicate: BypassPredicate | None = None,
    ):
        self.environment = environment
        self.environments = set(environments or [])
        self.ips = set(ips or [])
        self.user_ids = {str(u) for u in user_ids or []}
        self.predicate = predicate

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        predicate: BypassPredicate | None = None,
    ) -> "BypassPolicy":
        return cls(
            environment=settings.environment,
            environments=settings.bypass.environments,
            ips=settings.bypass.ips,
            user_ids=settings.bypass.user_ids,
            predicate=predicate,
        )

    async def reason(self, context: RequestContext | None = None) -> str | None:
        """
        Name of the first matching rule, or None when enforcement applies.
        """
        context = context or RequestContext()

        if context.bypass_once:
            return "bypass_once"

        if self.environment in self.environments:
            return "environment"

        if context.ip is not None and context.ip in self.ips:
            return "ip"

        if context.user_id is not None and str(context.user_id) in self.user_ids:
            return "user"

        if self.predicate is not None and await self._run_predicate(context):
            return "predicate"

        return None

    async def should_bypass(self, context: RequestContext | None = None) -> bool:
        return await self.reason(context) is not None

    async def _run_predicate(self, context: RequestContext) -> bool:
        try:
            outcome = self.predicate(context)
            if inspect.isawaitable(outcome):
                outcome = await outcome
            return bool(outcome)
        except Exception:
            # Fail closed: a broken predicate must not disable enforcement
            logger.exception("bypass_predicate_failed")
            return False
