"""Shared HTTP transport with retries for transient network faults."""

from __future__ import annotations

import asyncio
import json
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping

import aiohttp

from .errors import TransportError

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONNECTIONS = 50
DEFAULT_TIMEOUT = 15.0
DEFAULT_BASE_DELAY = 0.5
DEFAULT_JITTER = 0.2

# Network faults below the HTTP layer.
_TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    aiohttp.ClientConnectionError,
    aiohttp.ClientPayloadError,
    asyncio.TimeoutError,
    ConnectionResetError,
    ConnectionAbortedError,
    BrokenPipeError,
)

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class HttpResponse:
    status: int
    url: str
    headers: Mapping[str, str]
    body: bytes

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def text(self, encoding: str = "utf-8") -> str:
        return self.body.decode(encoding, errors="replace")

    def json(self) -> Any:
        return json.loads(self.body.decode("utf-8"))

    def header(self, name: str) -> str | None:
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None


def create_session(
    *,
    max_connections: int = DEFAULT_MAX_CONNECTIONS,
    timeout: float = DEFAULT_TIMEOUT,
) -> aiohttp.ClientSession:
    """Session with a keep-alive pool shared by every channel poller."""

    connector = aiohttp.TCPConnector(limit=max_connections, keepalive_timeout=30)
    return aiohttp.ClientSession(
        connector=connector,
        timeout=aiohttp.ClientTimeout(total=timeout),
    )


def backoff_delay(attempt: int, base_delay: float, jitter: float) -> float:
    """Delay before retry number ``attempt`` (1-based): doubling plus random jitter."""

    return base_delay * (2 ** (attempt - 1)) + random.uniform(0, jitter)


class RetryingTransport:
    """Issue HTTP requests, retrying only transient network errors.

    HTTP error statuses are returned to the caller untouched; only faults
    below the HTTP layer consume retry attempts.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        *,
        base_delay: float = DEFAULT_BASE_DELAY,
        jitter: float = DEFAULT_JITTER,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._session = session
        self._base_delay = base_delay
        self._jitter = jitter
        self._sleep = sleep

    async def request(
        self,
        method: str,
        url: str,
        *,
        max_attempts: int = 3,
        **options: Any,
    ) -> HttpResponse:
        attempts = max(1, int(max_attempts))
        for attempt in range(1, attempts + 1):
            try:
                async with self._session.request(method.upper(), url, **options) as resp:
                    body = await resp.read()
                    return HttpResponse(
                        status=resp.status,
                        url=str(resp.url),
                        headers={key: value for key, value in resp.headers.items()},
                        body=body,
                    )
            except _TRANSIENT_ERRORS as exc:
                if attempt >= attempts:
                    raise TransportError(
                        f"{method.upper()} {url} failed after {attempts} attempt(s): {exc!r}",
                        cause=exc,
                    ) from exc
                delay = backoff_delay(attempt, self._base_delay, self._jitter)
                logger.debug(
                    "Transient error on %s %s (attempt %d/%d): %r; retrying in %.2fs",
                    method.upper(),
                    url,
                    attempt,
                    attempts,
                    exc,
                    delay,
                )
                await self._sleep(delay)
            except aiohttp.ClientError as exc:
                raise TransportError(f"{method.upper()} {url} failed: {exc!r}", cause=exc) from exc

        raise TransportError(f"{method.upper()} {url} exceeded attempts without response")
