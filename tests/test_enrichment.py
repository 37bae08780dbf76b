from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Mapping, cast

from discord_monitor.config import ChannelsDocument
from discord_monitor.discord import DiscordClient
from discord_monitor.enrichment import enrich_and_persist, enrich_target
from discord_monitor.errors import AuthError, HTTPStatusError
from discord_monitor.models import ChannelTarget


class DummyDiscordClient:
    def __init__(self) -> None:
        self.channels: dict[str, Mapping[str, Any] | Exception] = {}
        self.guilds: dict[str, Mapping[str, Any] | Exception] = {}

    async def fetch_channel(self, channel_id: str) -> Mapping[str, Any] | None:
        result = self.channels.get(channel_id)
        if isinstance(result, Exception):
            raise result
        return result

    async def fetch_guild(self, guild_id: str) -> Mapping[str, Any] | None:
        result = self.guilds.get(guild_id)
        if isinstance(result, Exception):
            raise result
        return result


def _document() -> ChannelsDocument:
    return ChannelsDocument.from_json(
        [
            {
                "guild": "g1",
                "channels": [
                    {"channel": "c1", "baseline": {"lastMessageId": "5", "content": "keep"}},
                    {"channel": "c2"},
                ],
            }
        ]
    )


def test_enrich_target_fills_names_and_icon() -> None:
    client = DummyDiscordClient()
    client.channels["c1"] = {"name": "news"}
    client.guilds["g1"] = {"name": "Guild", "icon": "a_icon"}

    enriched = asyncio.run(enrich_target(cast(DiscordClient, client), ChannelTarget("g1", "c1")))

    assert enriched == ChannelTarget("g1", "c1", "Guild", "news", "a_icon")


def test_enrich_target_failures_keep_original_fields() -> None:
    client = DummyDiscordClient()
    client.channels["c1"] = AuthError(403, "Forbidden")
    client.guilds["g1"] = HTTPStatusError(500)
    target = ChannelTarget("g1", "c1", "Configured", "configured-name")

    assert asyncio.run(enrich_target(cast(DiscordClient, client), target)) is target


def test_enrich_and_persist_writes_when_enabled(tmp_path: Path) -> None:
    client = DummyDiscordClient()
    client.channels["c1"] = {"name": "news"}
    client.channels["c2"] = HTTPStatusError(404)
    client.guilds["g1"] = {"name": "Guild"}
    document = _document()
    path = tmp_path / "channels.json"

    targets = asyncio.run(
        enrich_and_persist(
            cast(DiscordClient, client),
            document,
            document.targets(),
            config_path=path,
            write_enriched=True,
        )
    )

    assert [target.display for target in targets] == ["Guild/news", "Guild/c2"]
    written = json.loads(path.read_text(encoding="utf-8"))
    assert written == [
        {
            "guild": "g1",
            "guildName": "Guild",
            "channels": [
                {
                    "channel": "c1",
                    "channelName": "news",
                    "baseline": {"lastMessageId": "5", "content": "keep"},
                },
                {"channel": "c2"},
            ],
        }
    ]


def test_enrich_and_persist_keeps_file_when_disabled(tmp_path: Path) -> None:
    client = DummyDiscordClient()
    client.channels["c1"] = {"name": "news"}
    document = _document()
    path = tmp_path / "channels.json"

    asyncio.run(
        enrich_and_persist(
            cast(DiscordClient, client),
            document,
            document.targets(),
            config_path=path,
            write_enriched=False,
        )
    )

    assert not path.exists()
    entry = document.find_channel("g1", "c1")
    assert entry is not None
    assert entry.channel_name == "news"
    assert entry.baseline == {"lastMessageId": "5", "content": "keep"}
