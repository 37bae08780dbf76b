"""Best-effort lookup of guild/channel display names and icons."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from pathlib import Path
from typing import Sequence

from .config import ChannelsDocument
from .discord import DiscordClient
from .errors import MonitorError, PersistenceError
from .models import ChannelTarget

logger = logging.getLogger(__name__)


async def enrich_target(client: DiscordClient, target: ChannelTarget) -> ChannelTarget:
    updates: dict[str, str] = {}

    try:
        channel = await client.fetch_channel(target.channel_id)
    except asyncio.CancelledError:
        raise
    except MonitorError as exc:
        logger.debug("Failed to fetch channel name for %s - %s", target.channel_id, exc)
    else:
        if channel and isinstance(channel.get("name"), str):
            updates["channel_name"] = channel["name"]

    try:
        guild = await client.fetch_guild(target.guild_id)
    except asyncio.CancelledError:
        raise
    except MonitorError as exc:
        logger.debug("Failed to fetch guild name/icon for %s - %s", target.guild_id, exc)
    else:
        if guild:
            if isinstance(guild.get("name"), str):
                updates["guild_name"] = guild["name"]
            if isinstance(guild.get("icon"), str):
                updates["guild_icon"] = guild["icon"]

    return dataclasses.replace(target, **updates) if updates else target


async def enrich_targets(
    client: DiscordClient, targets: Sequence[ChannelTarget]
) -> list[ChannelTarget]:
    logger.info("Starting channel name enrichment for %d channel(s)", len(targets))
    enriched: list[ChannelTarget] = []
    for target in targets:
        updated = await enrich_target(client, target)
        logger.info(
            "Enriched %s/%s -> guildName=%s channelName=%s",
            target.guild_id,
            target.channel_id,
            updated.guild_name or "n/a",
            updated.channel_name or "n/a",
        )
        enriched.append(updated)
    return enriched


async def enrich_and_persist(
    client: DiscordClient,
    document: ChannelsDocument,
    targets: Sequence[ChannelTarget],
    *,
    config_path: Path,
    write_enriched: bool,
) -> list[ChannelTarget]:
    """Enrich ``targets`` and fold the names into ``document`` without touching baselines."""

    enriched = await enrich_targets(client, targets)
    document.apply_display(enriched)
    if not write_enriched:
        logger.info(
            "Finished enrichment (not written to disk); set WRITE_ENRICHED_CONFIG=true to persist changes"
        )
        return enriched

    try:
        document.save(config_path)
    except PersistenceError as exc:
        logger.error("Failed to write enriched channels config - %s", exc)
    else:
        logger.info(
            "Finished enrichment and wrote %d guild(s) to %s", len(document.guilds), config_path
        )
    return enriched
