from dataclasses import dataclass, replace

from limitkeeper.config import LimiterConfig, Settings
from limitkeeper.core.exceptions import ConfigurationError


@dataclass(frozen=True)
class Policy:
    name: str
    max_attempts: int
    decay_seconds: float
    strategy: str
    key_by: tuple[str, ...] = ()

    @classmethod
    def from_config(cls, name: str, config: LimiterConfig) -> "Policy":
        return cls(
            name=name,
            max_attempts=config.attempts,
            decay_seconds=config.decay_minutes * 60,
            strategy=config.strategy,
            key_by=tuple(config.key_by),
        )


class PolicyRegistry:
    """
    Named rate limit policies, loaded once from settings.

    Unknown names fall back to the default policy's limits while keeping the
    requested name, so counters stay separate per name.
    """

    def __init__(self, policies: dict[str, Policy], default: str):
        self._policies = dict(policies)
        self.default = default

    @classmethod
    def from_settings(cls, settings: Settings) -> "PolicyRegistry":
        policies = {
            name: Policy.from_config(name, config)
            for name, config in settings.limiters.items()
        }
        return cls(policies, settings.default_limiter)

    def names(self) -> list[str]:
        return list(self._policies)

    def resolve(self, name: str | None = None) -> Policy:
        """
        Returns the policy for ``name``, or the default policy.
        """
        name = name or self.default

        if name in self._policies:
            return self._policies[name]

        fallback = self._policies.get(self.default)
        if fallback is None:
            raise ConfigurationError(
                f"Rate limiter [{name}] is not configured and no default limiter [{self.default}] exists."
            )
        return replace(fallback, name=name)

    def register(self, policy: Policy) -> None:
        """Adds or replaces a policy. Meant for startup wiring and tests."""
        self._policies[policy.name] = policy
