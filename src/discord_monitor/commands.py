"""``/lastmessage`` slash command served through Slack Bolt."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Sequence

from aiohttp import web
from slack_bolt.async_app import AsyncApp

from .baselines import BaselineStore
from .discord import DiscordClient
from .errors import MonitorError
from .models import Baseline, ChannelTarget

logger = logging.getLogger(__name__)

COMMAND_NAME = "/lastmessage"
USAGE = (
    "Usage: /lastmessage <channelName|channelId|guildId|guildName>\n"
    "Example: /lastmessage notis"
)


def _author(message: Mapping[str, Any]) -> str:
    author = message.get("author")
    if isinstance(author, Mapping):
        return str(author.get("username") or author.get("id") or "unknown")
    return "unknown"


def _content(message: Mapping[str, Any]) -> str:
    content = message.get("content")
    return content if isinstance(content, str) else "(no content)"


class LastMessageQuery:
    """Answer "what was the last message" for a monitored channel."""

    def __init__(
        self,
        targets: Sequence[ChannelTarget],
        store: BaselineStore,
        client: DiscordClient,
    ) -> None:
        self._targets = list(targets)
        self._store = store
        self._client = client

    def update_targets(self, targets: Sequence[ChannelTarget]) -> None:
        self._targets = list(targets)

    def match(self, text: str) -> list[ChannelTarget]:
        needle = text.strip().lower()
        return [
            target
            for target in self._targets
            if needle
            in {
                target.channel_id.lower(),
                (target.channel_name or "").lower(),
                target.guild_id.lower(),
                (target.guild_name or "").lower(),
            }
        ]

    async def answer(self, text: str) -> str:
        raw = (text or "").strip()
        if not raw:
            return USAGE

        matches = self.match(raw)
        if not matches:
            return f'No monitored channel matched "{raw}". Try a channelName or channelId from config.'
        if len(matches) > 1:
            lines = "\n".join(f"• {target.display}" for target in matches)
            return f'Multiple monitored channels matched "{raw}". Be more specific:\n{lines}'

        target = matches[0]
        try:
            return await self._describe(target)
        except asyncio.CancelledError:
            raise
        except MonitorError as exc:
            return f"Error fetching last message: {exc}"

    async def _describe(self, target: ChannelTarget) -> str:
        baseline = self._store.get_baseline(target)
        if baseline is None:
            latest = await self._client.fetch_latest_message(target.channel_id)
            if latest is None:
                return f"No messages found in {target.display}"
            message_id = str(latest.get("id"))
            message = await self._client.fetch_message(target.channel_id, message_id) or latest
            timestamp = message.get("timestamp")
            if not isinstance(timestamp, str):
                timestamp = datetime.now(timezone.utc).isoformat()
            content = _content(message)
            self._store.set_baseline(
                target, Baseline(last_message_id=message_id, content=content, timestamp=timestamp)
            )
            return (
                f"Baseline set for {target.display}\n"
                f"Last message by {_author(message)} at {timestamp}:\n{content}"
            )

        message = await self._client.fetch_message(target.channel_id, baseline.last_message_id)
        if message is not None:
            timestamp = message.get("timestamp")
            if not isinstance(timestamp, str):
                timestamp = baseline.timestamp or datetime.now(timezone.utc).isoformat()
            content = _content(message)
            self._store.set_baseline(
                target,
                Baseline(
                    last_message_id=baseline.last_message_id,
                    content=content,
                    timestamp=timestamp,
                ),
            )
            return (
                f"Last message for {target.display}\n"
                f"By {_author(message)} at {timestamp}:\n{content}"
            )

        if baseline.content:
            return f"Last known message for {target.display} (cached):\n{baseline.content}"
        return f"Unable to retrieve last message for {target.display}"


def build_slack_app(bot_token: str, signing_secret: str, query: LastMessageQuery) -> AsyncApp:
    app = AsyncApp(token=bot_token, signing_secret=signing_secret)

    @app.command(COMMAND_NAME)
    async def handle_last_message(ack: Any, command: Mapping[str, Any], respond: Any) -> None:
        await ack()
        reply = await query.answer(str(command.get("text") or ""))
        await respond(text=reply, response_type="ephemeral")

    return app


class SlackCommandServer:
    """Serve a Bolt app over aiohttp inside the running event loop."""

    def __init__(self, app: AsyncApp, *, port: int, host: str = "0.0.0.0") -> None:
        self._app = app
        self._port = port
        self._host = host
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        runner = web.AppRunner(self._app.web_app(port=self._port))
        await runner.setup()
        site = web.TCPSite(runner, self._host, self._port)
        try:
            await site.start()
        except OSError:
            await runner.cleanup()
            raise
        self._runner = runner
        logger.info("Slack app started and listening for slash commands on port %d", self._port)

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
