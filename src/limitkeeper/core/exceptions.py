"""
Error taxonomy for the rate limiting core.

Exceeding a limit is not an error here: strategies and the manager report it
as ``AttemptResult.allowed == False``. Only the calling layer (``ActionGuard``)
turns a rejection into ``RateLimitExceededError`` when asked to.
"""


class LimitKeeperError(Exception):
    """Base class for every error raised by limitkeeper."""


class ConfigurationError(LimitKeeperError):
    """
    Fatal configuration problem.

    Raised for an unknown strategy name or a policy that cannot be resolved
    because no default policy is configured. Never retried.
    """


class StoreError(LimitKeeperError):
    """
    The storage backend failed to read or write.

    Propagated to the caller unchanged; the core does not retry.
    """

    def __init__(self, message: str, key: str | None = None):
        super().__init__(message)
        self.key = key


class RateLimitExceededError(LimitKeeperError):
    """Raised by the calling layer when a rule asks for an exception."""

    def __init__(self, message: str = "", retry_after: int = 0):
        self.retry_after = retry_after
        if not message:
            message = f"Rate limit exceeded. Please try again in {retry_after} seconds."
        super().__init__(message)

    @property
    def status_code(self) -> int:
        return 429

    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-RetryAfter": str(self.retry_after),
            "Retry-After": str(self.retry_after),
        }
