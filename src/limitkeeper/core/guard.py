"""
Calling-layer helper that guards named actions.

Actions are registered explicitly, per component, in a table built at
startup:

    guard = ActionGuard(manager)
    guard.register("ContactForm", "submit", RateLimitRule(limiter="strict"))
    guard.register("ContactForm", "search", RateLimitRule(max_attempts=30))

``enforce`` runs the manager and turns a rejection into the rule's
``ResponseAction``. Only ``RAISE_ERROR`` raises; every other action is
returned to the caller to render as it sees fit.
"""

import math
from dataclasses import dataclass, field
from enum import StrEnum

import structlog

from limitkeeper.core.bypass import RequestContext
from limitkeeper.core.exceptions import ConfigurationError, RateLimitExceededError
from limitkeeper.core.identity import KeyResolver
from limitkeeper.core.manager import RateLimiterManager
from limitkeeper.core.strategies.base import AttemptResult

logger = structlog.get_logger(__name__)


class ResponseAction(StrEnum):
    REJECT = "reject"
    NOTIFY = "notify"
    RAISE_ERROR = "raise_error"
    SILENT = "silent"


@dataclass(frozen=True)
class RateLimitRule:
    limiter: str | None = None
    max_attempts: int | None = None
    decay_minutes: float | None = None
    key: str | None = None
    key_by: tuple[str, ...] = ()
    response: ResponseAction | None = None
    message: str | None = None
    per_action: bool = True


@dataclass(frozen=True)
class GuardDecision:
    allowed: bool
    action: ResponseAction | None = None
    message: str | None = None
    result: AttemptResult | None = None

    def __bool__(self) -> bool:
        return self.allowed

    @property
    def retry_after(self) -> int:
        return self.result.retry_after if self.result is not None else 0


@dataclass
class _ComponentRules:
    default: RateLimitRule | None = None
    actions: dict[str, RateLimitRule] = field(default_factory=dict)


class ActionGuard:
    def __init__(self, manager: RateLimiterManager):
        self.manager = manager
        self._components: dict[str, _ComponentRules] = {}

    def register(self, component: str, action: str, rule: RateLimitRule) -> None:
        self._components.setdefault(component, _ComponentRules()).actions[action] = rule

    def register_component(self, component: str, rule: RateLimitRule) -> None:
        """Rule applied to every action of ``component`` without its own."""
        self._components.setdefault(component, _ComponentRules()).default = rule

    def rule_for(self, component: str, action: str) -> RateLimitRule | None:
        rules = self._components.get(component)
        if rules is None:
            return None
        return rules.actions.get(action, rules.default)

    def is_guarded(self, component: str, action: str) -> bool:
        return self.rule_for(component, action) is not None

    def key_for(self, component: str, action: str, resolver: KeyResolver) -> str:
        rule = self._require(component, action)

        if rule.key:
            return self._expand_template(rule.key, component, action, resolver)

        base = resolver.resolve_many(self._dimensions(rule))
        if rule.per_action:
            return f"{base}:{component}:{action}"
        return f"{base}:{component}"

    async def enforce(
        self,
        component: str,
        action: str,
        resolver: KeyResolver,
        context: RequestContext | None = None,
    ) -> GuardDecision:
        rule = self.rule_for(component, action)
        if rule is None:
            return GuardDecision(allowed=True)

        key = self.key_for(component, action, resolver)
        result = await self.manager.attempt(
            key,
            rule.limiter,
            max_attempts=rule.max_attempts,
            decay_minutes=rule.decay_minutes,
            context=context,
        )

        if result.allowed:
            return GuardDecision(allowed=True, result=result)

        response = rule.response or ResponseAction(self.manager.settings.response_action)
        message = self.message_for(result.retry_after, rule.message)
        logger.info(
            "action_rate_limited",
            component=component,
            action=action,
            response=response.value,
            retry_after=result.retry_after,
        )

        if response is ResponseAction.RAISE_ERROR:
            raise RateLimitExceededError(message, result.retry_after)

        return GuardDecision(allowed=False, action=response, message=message, result=result)

    async def remaining_for(self, component: str, action: str, resolver: KeyResolver) -> int:
        rule = self._require(component, action)
        return await self.manager.remaining(
            self.key_for(component, action, resolver),
            rule.limiter,
            max_attempts=rule.max_attempts,
            decay_minutes=rule.decay_minutes,
        )

    async def reset_for(self, component: str, action: str, resolver: KeyResolver) -> bool:
        rule = self._require(component, action)
        return await self.manager.reset(self.key_for(component, action, resolver), rule.limiter)

    def message_for(self, seconds: int, custom: str | None = None) -> str:
        if custom:
            return custom.replace(":seconds", str(seconds)).replace("{seconds}", str(seconds))

        messages = self.manager.settings.messages
        if seconds < 60:
            return messages["seconds"].format(seconds=seconds)
        if seconds < 3600:
            return messages["minutes"].format(minutes=math.ceil(seconds / 60))
        return messages["hours"].format(hours=math.ceil(seconds / 3600))

    def _require(self, component: str, action: str) -> RateLimitRule:
        rule = self.rule_for(component, action)
        if rule is None:
            raise ConfigurationError(f"No rate limit registered for [{component}.{action}].")
        return rule

    def _dimensions(self, rule: RateLimitRule) -> tuple[str, ...]:
        if rule.key_by:
            return rule.key_by
        policy = self.manager.policies.resolve(rule.limiter)
        return policy.key_by or tuple(self.manager.settings.key_by)

    @staticmethod
    def _expand_template(template: str, component: str, action: str, resolver: KeyResolver) -> str:
        replacements = {
            "{component}": component,
            "{action}": action,
            "{method}": action,
        }
        for dimension in ("user", "ip", "session", "fingerprint"):
            placeholder = "{" + dimension + "}"
            if placeholder in template:
                replacements[placeholder] = resolver.resolve(dimension)

        for placeholder, value in replacements.items():
            template = template.replace(placeholder, value)
        return template
