import pytest

from limitkeeper.config import LimiterConfig, Settings
from limitkeeper.core.exceptions import ConfigurationError
from limitkeeper.core.policy import Policy, PolicyRegistry


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)


def test_default_limiters_are_loaded(settings):
    registry = PolicyRegistry.from_settings(settings)

    assert set(registry.names()) == {"default", "strict", "relaxed", "auth", "guest"}


def test_policy_from_config_converts_minutes():
    policy = Policy.from_config(
        "auth",
        LimiterConfig(attempts=30, decay_minutes=2, strategy="sliding_window", key_by=["user", "ip"]),
    )

    assert policy == Policy(
        name="auth",
        max_attempts=30,
        decay_seconds=120,
        strategy="sliding_window",
        key_by=("user", "ip"),
    )


def test_resolve_defaults_to_configured_default(settings):
    registry = PolicyRegistry.from_settings(settings)

    assert registry.resolve().name == "default"
    assert registry.resolve(None).max_attempts == 60


def test_unknown_name_borrows_default_limits(settings):
    registry = PolicyRegistry.from_settings(settings)

    policy = registry.resolve("checkout")

    assert policy.name == "checkout"
    assert policy.max_attempts == 60
    assert policy.strategy == "fixed_window"


def test_unknown_name_without_default_is_fatal():
    registry = PolicyRegistry({"strict": Policy("strict", 10, 60, "sliding_window")}, default="default")

    with pytest.raises(ConfigurationError):
        registry.resolve("checkout")
    with pytest.raises(ConfigurationError):
        registry.resolve()


def test_register_overrides_policy(settings):
    registry = PolicyRegistry.from_settings(settings)

    registry.register(Policy("strict", 1, 5, "token_bucket"))

    assert registry.resolve("strict").max_attempts == 1
    assert registry.resolve("strict").strategy == "token_bucket"


def test_policies_are_immutable(settings):
    policy = PolicyRegistry.from_settings(settings).resolve("strict")

    with pytest.raises(AttributeError):
        policy.max_attempts = 1000
