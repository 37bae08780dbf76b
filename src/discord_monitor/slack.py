"""Slack webhook delivery."""

from __future__ import annotations

import asyncio
import logging
import math
from typing import Any, Awaitable, Callable, Mapping, Protocol

from .errors import TransportError
from .transport import RetryingTransport, backoff_delay

logger = logging.getLogger(__name__)

DEFAULT_BASE_DELAY = 1.0
DEFAULT_JITTER = 0.2


class NotificationSender(Protocol):
    async def send(self, payload: Mapping[str, Any], max_attempts: int = 4) -> None: ...


class SlackWebhookSender:
    """Post payloads to an incoming webhook, best effort.

    429 responses wait for the server supplied ``Retry-After``; any other
    failure backs off exponentially. Every wait counts against
    ``max_attempts``. Exhausted notifications are logged and dropped.
    """

    def __init__(
        self,
        transport: RetryingTransport,
        webhook_url: str | None,
        *,
        base_delay: float = DEFAULT_BASE_DELAY,
        jitter: float = DEFAULT_JITTER,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._transport = transport
        self._webhook_url = webhook_url
        self._base_delay = base_delay
        self._jitter = jitter
        self._sleep = sleep

    @property
    def enabled(self) -> bool:
        return bool(self._webhook_url)

    async def send(self, payload: Mapping[str, Any], max_attempts: int = 4) -> None:
        if not self._webhook_url:
            logger.debug("SLACK_WEBHOOK_URL not set; skipping Slack notification")
            return

        attempts = max(1, max_attempts)
        backoff_attempt = 0
        for attempt in range(1, attempts + 1):
            try:
                response = await self._transport.request(
                    "POST",
                    self._webhook_url,
                    max_attempts=1,
                    json=dict(payload),
                    headers={"Content-Type": "application/json"},
                )
            except TransportError as exc:
                logger.debug("Failed sending Slack notification (attempt %d) - %s", attempt, exc)
            else:
                if response.ok:
                    logger.debug("Sent notification to Slack")
                    return
                if response.status == 429:
                    retry_after = self._retry_after(response.header("Retry-After"), backoff_attempt + 1)
                    logger.debug("Slack rate-limited (429). Retry after %ss", retry_after)
                    if attempt < attempts:
                        await self._sleep(retry_after)
                    continue
                logger.debug(
                    "Slack webhook answered %s (attempt %d): %s",
                    response.status,
                    attempt,
                    response.text()[:200],
                )

            if attempt < attempts:
                backoff_attempt += 1
                await self._sleep(backoff_delay(backoff_attempt, self._base_delay, self._jitter))

        logger.error("Exceeded attempts to send Slack notification")

    def _retry_after(self, header: str | None, next_backoff_attempt: int) -> float:
        if header:
            try:
                value = float(header)
            except ValueError:
                value = 0.0
            if value > 0:
                return value
        return float(math.ceil(self._base_delay * (2 ** (next_backoff_attempt - 1))))
