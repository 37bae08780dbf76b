from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Mapping, cast

from discord_monitor.baselines import BaselineStore
from discord_monitor.channel_log import ChannelLogWriter
from discord_monitor.commands import USAGE, LastMessageQuery
from discord_monitor.config import ChannelsDocument
from discord_monitor.discord import DiscordClient
from discord_monitor.errors import TransportError
from discord_monitor.models import Baseline, ChannelTarget
from discord_monitor.poller import ChannelPoller, PollSummary

NEWS = ChannelTarget("g1", "c1", "Guild", "news")
ALERTS = ChannelTarget("g1", "c2", "Guild", "alerts")


class DummyDiscordClient:
    def __init__(self) -> None:
        self.latest: Mapping[str, Any] | None = None
        self.messages: dict[str, Mapping[str, Any]] = {}
        self.error: Exception | None = None

    async def fetch_latest_message(self, channel_id: str) -> Mapping[str, Any] | None:
        if self.error is not None:
            raise self.error
        return self.latest

    async def fetch_message(self, channel_id: str, message_id: str) -> Mapping[str, Any] | None:
        return self.messages.get(message_id)


def _query(tmp_path: Path, client: DummyDiscordClient) -> tuple[LastMessageQuery, BaselineStore]:
    document = ChannelsDocument.from_json(
        [{"guild": "g1", "channels": [{"channel": "c1"}, {"channel": "c2"}]}]
    )
    store = BaselineStore(
        document,
        config_path=tmp_path / "channels.json",
        legacy_path=tmp_path / "baselines.json",
    )
    return LastMessageQuery([NEWS, ALERTS], store, cast(DiscordClient, client)), store


def test_blank_query_returns_usage(tmp_path: Path) -> None:
    query, _ = _query(tmp_path, DummyDiscordClient())

    assert asyncio.run(query.answer("   ")) == USAGE


def test_unknown_channel(tmp_path: Path) -> None:
    query, _ = _query(tmp_path, DummyDiscordClient())

    reply = asyncio.run(query.answer("random"))

    assert reply.startswith('No monitored channel matched "random"')


def test_ambiguous_match_lists_candidates(tmp_path: Path) -> None:
    query, _ = _query(tmp_path, DummyDiscordClient())

    reply = asyncio.run(query.answer("guild"))

    assert reply.startswith('Multiple monitored channels matched "guild"')
    assert "Guild/news" in reply
    assert "Guild/alerts" in reply


def test_match_is_case_insensitive_over_ids_and_names(tmp_path: Path) -> None:
    query, _ = _query(tmp_path, DummyDiscordClient())

    assert query.match("NEWS") == [NEWS]
    assert query.match("c2") == [ALERTS]
    assert query.match("g1") == [NEWS, ALERTS]


def test_missing_baseline_is_established(tmp_path: Path) -> None:
    client = DummyDiscordClient()
    client.latest = {"id": "10", "content": "partial"}
    client.messages["10"] = {
        "id": "10",
        "author": {"id": "u1", "username": "alice"},
        "content": "full text",
        "timestamp": "2024-01-01T00:00:00+00:00",
    }
    query, store = _query(tmp_path, client)

    reply = asyncio.run(query.answer("news"))

    assert reply.startswith("Baseline set for Guild/news")
    assert "alice" in reply
    assert "full text" in reply
    assert store.get_baseline(NEWS) == Baseline("10", "full text", "2024-01-01T00:00:00+00:00")


def test_empty_channel_reports_no_messages(tmp_path: Path) -> None:
    query, store = _query(tmp_path, DummyDiscordClient())

    assert asyncio.run(query.answer("c1")) == "No messages found in Guild/news"
    assert store.get_baseline(NEWS) is None


def test_existing_baseline_is_refreshed(tmp_path: Path) -> None:
    client = DummyDiscordClient()
    client.messages["20"] = {
        "id": "20",
        "author": {"id": "u2", "username": "bob"},
        "content": "edited",
        "timestamp": "2024-02-01T00:00:00+00:00",
    }
    query, store = _query(tmp_path, client)
    store.set_baseline(NEWS, Baseline("20", "original", "2024-01-01T00:00:00+00:00"))

    reply = asyncio.run(query.answer("news"))

    assert reply.startswith("Last message for Guild/news")
    assert "bob" in reply and "edited" in reply
    refreshed = store.get_baseline(NEWS)
    assert refreshed is not None and refreshed.content == "edited"


def test_cached_content_when_message_unavailable(tmp_path: Path) -> None:
    query, store = _query(tmp_path, DummyDiscordClient())
    store.set_baseline(NEWS, Baseline("30", "cached text"))
    store.set_baseline(ALERTS, Baseline("31"))

    assert asyncio.run(query.answer("news")) == (
        "Last known message for Guild/news (cached):\ncached text"
    )
    assert asyncio.run(query.answer("alerts")) == "Unable to retrieve last message for Guild/alerts"


def test_fetch_error_is_reported(tmp_path: Path) -> None:
    client = DummyDiscordClient()
    client.error = TransportError("connection reset")
    query, _ = _query(tmp_path, client)

    assert asyncio.run(query.answer("news")) == "Error fetching last message: connection reset"


def test_update_targets_changes_matching(tmp_path: Path) -> None:
    query, _ = _query(tmp_path, DummyDiscordClient())

    query.update_targets([ChannelTarget("g1", "c1", "Guild", "renamed")])

    assert [target.channel_id for target in query.match("renamed")] == ["c1"]
    assert query.match("alerts") == []


class BlockingDiscordClient(DummyDiscordClient):
    def __init__(self) -> None:
        super().__init__()
        self.gate = asyncio.Event()
        self.waiting = asyncio.Event()
        self.pages: list[list[dict[str, Any]]] = []

    async def fetch_message(self, channel_id: str, message_id: str) -> Mapping[str, Any] | None:
        self.waiting.set()
        await self.gate.wait()
        return await super().fetch_message(channel_id, message_id)

    async def fetch_messages(
        self, channel_id: str, *, after: str | None = None, limit: int = 100
    ) -> list[dict[str, Any]]:
        return self.pages.pop(0) if self.pages else []


class DummyNotifier:
    async def send(self, payload: Mapping[str, Any], max_attempts: int = 4) -> None:
        return None


def test_refresh_does_not_roll_back_cursor_advanced_meanwhile(tmp_path: Path) -> None:
    async def runner() -> None:
        client = BlockingDiscordClient()
        client.messages["100"] = {"id": "100", "content": "old", "timestamp": "2024-01-01T00:00:00+00:00"}
        client.pages = [[{"id": "105", "content": "new", "timestamp": "2024-01-01T00:05:00+00:00"}]]
        query, store = _query(tmp_path, client)
        store.set_baseline(NEWS, Baseline("100", "old", "2024-01-01T00:00:00+00:00"))
        poller = ChannelPoller(
            NEWS,
            client=cast(DiscordClient, client),
            store=store,
            log_writer=ChannelLogWriter(tmp_path / "logs"),
            notifier=DummyNotifier(),
            summary=PollSummary(),
            interval=1.0,
        )

        answer = asyncio.create_task(query.answer("news"))
        await client.waiting.wait()
        await poller.poll_once()
        assert poller.cursor is not None and poller.cursor.last_message_id == "105"
        client.gate.set()
        await answer

        stored = store.get_baseline(NEWS)
        assert stored is not None
        assert stored.last_message_id == "105"
        assert stored.content == "new"

    asyncio.run(runner())
