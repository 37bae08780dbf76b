"""Discord API client."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Mapping

from .errors import AuthError, HTTPStatusError, MalformedDataError, MonitorError, RateLimited
from .transport import HttpResponse, RetryingTransport

_API_BASE = "https://discord.com/api/v10"
_MAX_PAGE_SIZE = 100

logger = logging.getLogger(__name__)


def _retry_after_seconds(response: HttpResponse) -> float:
    header = response.header("Retry-After")
    if header:
        try:
            return max(0.0, float(header))
        except ValueError:
            pass
    try:
        payload = response.json()
    except ValueError:
        return 1.0
    if isinstance(payload, Mapping):
        try:
            return max(0.0, float(payload.get("retry_after") or 1.0))
        except (TypeError, ValueError):
            return 1.0
    return 1.0


class DiscordClient:
    """Thin asynchronous wrapper around the Discord REST API."""

    def __init__(
        self,
        transport: RetryingTransport,
        token: str,
        *,
        max_attempts: int = 3,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._transport = transport
        self._token = token
        self._max_attempts = max(1, max_attempts)
        self._sleep = sleep

    async def fetch_messages(
        self,
        channel_id: str,
        *,
        after: str | None = None,
        limit: int = _MAX_PAGE_SIZE,
    ) -> list[Mapping[str, Any]]:
        """Return up to ``limit`` messages, newest first."""

        params = {"limit": str(max(1, min(limit, _MAX_PAGE_SIZE)))}
        if after:
            params["after"] = after
        data = await self._get_json(f"/channels/{channel_id}/messages", params=params)
        if not isinstance(data, list):
            raise MalformedDataError(
                f"Expected a list of messages for channel {channel_id}, got {type(data).__name__}"
            )
        return [item for item in data if isinstance(item, Mapping) and item.get("id") is not None]

    async def fetch_latest_message(self, channel_id: str) -> Mapping[str, Any] | None:
        messages = await self.fetch_messages(channel_id, limit=1)
        return messages[0] if messages else None

    async def fetch_message(self, channel_id: str, message_id: str) -> Mapping[str, Any] | None:
        try:
            data = await self._get_json(f"/channels/{channel_id}/messages/{message_id}")
        except MonitorError as exc:
            logger.debug("Failed to fetch message %s for %s - %s", message_id, channel_id, exc)
            return None
        return data if isinstance(data, Mapping) else None

    async def fetch_channel(self, channel_id: str) -> Mapping[str, Any] | None:
        data = await self._get_json(f"/channels/{channel_id}")
        return data if isinstance(data, Mapping) else None

    async def fetch_guild(self, guild_id: str) -> Mapping[str, Any] | None:
        data = await self._get_json(f"/guilds/{guild_id}")
        return data if isinstance(data, Mapping) else None

    async def _get_json(self, path: str, *, params: Mapping[str, str] | None = None) -> Any:
        headers = {"Authorization": self._token, "Accept": "application/json"}
        url = f"{_API_BASE}{path}"

        for attempt in range(1, self._max_attempts + 1):
            response = await self._transport.request(
                "GET", url, headers=headers, params=dict(params or {})
            )
            if response.status in {401, 403}:
                raise AuthError(response.status, "Unauthorized" if response.status == 401 else "Forbidden")
            if response.status == 429:
                retry_after = _retry_after_seconds(response)
                if attempt >= self._max_attempts:
                    raise RateLimited(retry_after)
                logger.debug("Discord rate-limited %s; retry after %.2fs", path, retry_after)
                await self._sleep(retry_after)
                continue
            if response.status >= 400:
                raise HTTPStatusError(response.status, response.text()[:200] or None)
            try:
                return response.json()
            except ValueError as exc:
                raise MalformedDataError(f"Invalid JSON from {path}") from exc

        raise RateLimited(0.0)
