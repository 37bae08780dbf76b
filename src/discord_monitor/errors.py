"""Exception hierarchy shared by the monitor components."""

from __future__ import annotations


class MonitorError(Exception):
    """Base class for every error raised by the monitor."""


class ConfigError(MonitorError):
    """Startup configuration is missing or invalid."""


class TransportError(MonitorError):
    """Network call failed after exhausting its retry budget."""

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class HTTPStatusError(MonitorError):
    """Remote API answered with an unexpected HTTP status."""

    def __init__(self, status: int, reason: str | None = None) -> None:
        text = f"{status} {reason}".strip() if reason else str(status)
        super().__init__(text)
        self.status = status
        self.reason = reason


class AuthError(HTTPStatusError):
    """Credentials were rejected (401) or lack permission (403)."""


class RateLimited(HTTPStatusError):
    """Rate limit (429) persisted across every attempt."""

    def __init__(self, retry_after: float, reason: str | None = None) -> None:
        super().__init__(429, reason or "Too Many Requests")
        self.retry_after = retry_after


class MalformedDataError(MonitorError):
    """Payload from a store or API did not have the expected shape."""


class PersistenceError(MonitorError):
    """Durable write to a baseline store or channel log failed."""
