"""
Caller identity for rate limit keys.

The manager treats keys as opaque strings. Resolvers produce them from one or
more identity dimensions; several dimensions are joined with ``:``, e.g.
``user:42:ip:9f86d081...``.
"""

import hashlib
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping
from enum import StrEnum

from fastapi import Request

DELIMITER = ":"


class IdentityDimension(StrEnum):
    IP = "ip"
    USER = "user"
    SESSION = "session"
    FINGERPRINT = "fingerprint"
    ROUTE = "route"
    CUSTOM = "custom"


def _sha256(value: str) -> str:
    return hashlib.sha256(value.encode()).hexdigest()


class KeyResolver(ABC):
    """Turns identity dimensions into key fragments."""

    @abstractmethod
    def resolve(self, dimension: str) -> str:
        pass

    def resolve_many(self, dimensions: Iterable[str]) -> str:
        return DELIMITER.join(self.resolve(d) for d in dimensions)

    def composite(self, sources: Iterable[str] | Mapping[str, str]) -> str:
        """
        Joins resolved dimensions and literal ``name:value`` pairs.

        A mapping contributes ``name:value`` for each item; any other iterable
        is treated as a list of dimensions to resolve.
        """
        if isinstance(sources, Mapping):
            return DELIMITER.join(f"{name}{DELIMITER}{value}" for name, value in sources.items())
        return self.resolve_many(sources)


class StaticKeyResolver(KeyResolver):
    """
    Resolver over known values, for background jobs and tests.

    Example:
        >>> StaticKeyResolver({"user": "42", "ip": "10.0.0.1"}).resolve_many(["user", "ip"])
        'user:42:ip:10.0.0.1'
    """

    def __init__(self, values: Mapping[str, str]):
        self.values = dict(values)

    def resolve(self, dimension: str) -> str:
        value = self.values.get(dimension)
        if value is None:
            return f"{dimension}{DELIMITER}unknown"
        return f"{dimension}{DELIMITER}{value}"


class RequestKeyResolver(KeyResolver):
    """
    Resolves identities from an incoming HTTP request.

    Addresses honour ``CF-Connecting-IP``, ``X-Forwarded-For`` and
    ``X-Real-IP`` (in that order) and are stored hashed. Users come from
    ``request.state.user_id`` when an auth layer set it.
    """

    SESSION_HEADER = "X-Session-Id"
    FINGERPRINT_HEADER = "X-Browser-Fingerprint"

    def __init__(
        self,
        request: Request,
        custom: Callable[[Request], str] | None = None,
    ):
        self.request = request
        self.custom = custom

    def resolve(self, dimension: str) -> str:
        match dimension:
            case IdentityDimension.USER:
                return self._user()
            case IdentityDimension.SESSION:
                return self._session()
            case IdentityDimension.FINGERPRINT:
                return self._fingerprint()
            case IdentityDimension.ROUTE:
                return f"route{DELIMITER}{self.request.url.path}"
            case IdentityDimension.CUSTOM:
                return self.custom(self.request) if self.custom else self._ip()
            case _:
                return self._ip()

    def client_ip(self) -> str:
        headers = self.request.headers

        if headers.get("CF-Connecting-IP"):
            return headers["CF-Connecting-IP"].strip()
        if headers.get("X-Forwarded-For"):
            return headers["X-Forwarded-For"].split(",")[0].strip()
        if headers.get("X-Real-IP"):
            return headers["X-Real-IP"].strip()

        return self.request.client.host if self.request.client else "unknown"

    def user_id(self) -> str | None:
        user_id = getattr(self.request.state, "user_id", None)
        return str(user_id) if user_id is not None else None

    def _ip(self) -> str:
        return f"ip{DELIMITER}{_sha256(self.client_ip())}"

    def _user(self) -> str:
        user_id = self.user_id()
        if user_id is None:
            return f"guest{DELIMITER}{self._ip()}"
        return f"user{DELIMITER}{user_id}"

    def _session(self) -> str:
        session_id = self.request.headers.get(self.SESSION_HEADER)
        if not session_id:
            session_id = getattr(self.request.state, "rate_limit_session_id", None)
        if not session_id:
            # Stable for the rest of this request only
            session_id = str(uuid.uuid4())
            self.request.state.rate_limit_session_id = session_id
        return f"session{DELIMITER}{session_id}"

    def _fingerprint(self) -> str:
        fingerprint = self.request.headers.get(self.FINGERPRINT_HEADER)
        if not fingerprint:
            headers = self.request.headers
            fingerprint = _sha256(
                "|".join(
                    [
                        headers.get("User-Agent", ""),
                        headers.get("Accept-Language", ""),
                        headers.get("Accept-Encoding", ""),
                        self.client_ip(),
                    ]
                )
            )
        return f"fingerprint{DELIMITER}{fingerprint}"
