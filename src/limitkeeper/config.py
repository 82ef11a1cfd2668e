from enum import StrEnum
from functools import lru_cache

from pydantic import BaseModel, Field, PositiveFloat, PositiveInt
from pydantic_settings import BaseSettings, SettingsConfigDict


class StrategyType(StrEnum):
    FIXED_WINDOW = "fixed_window"
    SLIDING_WINDOW = "sliding_window"
    TOKEN_BUCKET = "token_bucket"


class LimiterConfig(BaseModel):
    attempts: PositiveInt = 60
    decay_minutes: PositiveFloat = 1
    strategy: str = StrategyType.FIXED_WINDOW.value
    key_by: list[str] = Field(default_factory=list)


class BypassConfig(BaseModel):
    environments: list[str] = Field(default_factory=list)
    ips: list[str] = Field(default_factory=list)
    user_ids: list[str] = Field(default_factory=list)


def _default_limiters() -> dict[str, LimiterConfig]:
    return {
        "default": LimiterConfig(attempts=60, decay_minutes=1),
        "strict": LimiterConfig(attempts=10, decay_minutes=1, strategy=StrategyType.SLIDING_WINDOW),
        "relaxed": LimiterConfig(attempts=100, decay_minutes=1),
        "auth": LimiterConfig(
            attempts=30,
            decay_minutes=1,
            strategy=StrategyType.SLIDING_WINDOW,
            key_by=["user", "ip"],
        ),
        "guest": LimiterConfig(attempts=20, decay_minutes=1, key_by=["ip", "session"]),
    }


def _default_messages() -> dict[str, str]:
    return {
        "seconds": "Too many requests. Please try again in {seconds} seconds.",
        "minutes": "Too many requests. Please try again in {minutes} minutes.",
        "hours": "Too many requests. Please try again in {hours} hours.",
    }


class Settings(BaseSettings):
    default_limiter: str = "default"
    key_namespace: str = "rate_limit"
    environment: str = "production"
    redis_url: str | None = None

    limiters: dict[str, LimiterConfig] = Field(default_factory=_default_limiters)
    key_by: list[str] = Field(default_factory=lambda: ["ip"])
    bypass: BypassConfig = Field(default_factory=BypassConfig)

    token_bucket_refill_rate: PositiveFloat = 1.0

    events_enabled: bool = True
    logging_enabled: bool = False
    logging_level: str = "warning"

    response_action: str = "reject"
    messages: dict[str, str] = Field(default_factory=_default_messages)

    model_config = SettingsConfigDict(
        env_prefix="LIMITKEEPER_",
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
