"""Runtime settings and the channels configuration document."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping

from .errors import ConfigError, PersistenceError
from .models import ChannelTarget
from .utils import parse_bool, parse_milliseconds, write_json_atomic

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 3.0


@dataclass(slots=True)
class Settings:
    """Process configuration gathered from the environment and CLI."""

    discord_token: str
    slack_webhook_url: str | None = None
    poll_interval: float = DEFAULT_POLL_INTERVAL
    write_enriched_config: bool = False
    channels_path: Path = Path("config/channels.json")
    baselines_path: Path = Path("baselines.json")
    logs_dir: Path = Path("logs")
    pid_path: Path = Path(".discord-monitor.pid")
    slack_bot_token: str | None = None
    slack_signing_secret: str | None = None
    port: int = 3000
    log_level: str = "INFO"
    log_format: str = "text"
    heartbeat_interval: float = 0.0

    @property
    def slash_command_enabled(self) -> bool:
        return bool(self.slack_bot_token and self.slack_signing_secret)

    @classmethod
    def from_env(cls, environ: Mapping[str, str], *, base_dir: Path | None = None) -> "Settings":
        token = (environ.get("DISCORD_TOKEN") or "").strip()
        if not token:
            raise ConfigError("DISCORD_TOKEN is missing")
        root = base_dir or Path.cwd()

        def _path(name: str, default: str) -> Path:
            raw = (environ.get(name) or "").strip() or default
            path = Path(raw)
            return path if path.is_absolute() else root / path

        poll_interval = parse_milliseconds(environ.get("POLL_INTERVAL_MS"), DEFAULT_POLL_INTERVAL)
        if poll_interval <= 0:
            raise ConfigError("POLL_INTERVAL_MS must be positive")

        port_raw = (environ.get("PORT") or "").strip() or "3000"
        try:
            port = int(port_raw)
        except ValueError as exc:
            raise ConfigError(f"PORT must be an integer, got {port_raw!r}") from exc

        return cls(
            discord_token=token,
            slack_webhook_url=(environ.get("SLACK_WEBHOOK_URL") or "").strip() or None,
            poll_interval=poll_interval,
            write_enriched_config=parse_bool(environ.get("WRITE_ENRICHED_CONFIG"), False),
            channels_path=_path("CHANNELS_CONFIG", "config/channels.json"),
            baselines_path=_path("BASELINES_PATH", "baselines.json"),
            logs_dir=_path("LOGS_DIR", "logs"),
            pid_path=_path("PID_FILE", ".discord-monitor.pid"),
            slack_bot_token=(environ.get("SLACK_BOT_TOKEN") or "").strip() or None,
            slack_signing_secret=(environ.get("SLACK_SIGNING_SECRET") or "").strip() or None,
            port=port,
            log_level=(environ.get("LOG_LEVEL") or "info").strip().upper() or "INFO",
            log_format=(environ.get("LOG_FORMAT") or "text").strip().lower() or "text",
            heartbeat_interval=parse_milliseconds(environ.get("LOG_HEARTBEAT_MS"), 0.0),
        )


# ----------------------------------------------------------------------
# Channels document
# ----------------------------------------------------------------------
@dataclass(slots=True)
class ChannelEntry:
    channel_id: str
    channel_name: str | None = None
    baseline: Any = None

    def to_json(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"channel": self.channel_id}
        if self.channel_name is not None:
            payload["channelName"] = self.channel_name
        if self.baseline is not None:
            payload["baseline"] = self.baseline
        return payload


@dataclass(slots=True)
class GuildEntry:
    guild_id: str
    guild_name: str | None = None
    guild_icon: str | None = None
    channels: list[ChannelEntry] = field(default_factory=list)

    def to_json(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"guild": self.guild_id}
        if self.guild_name is not None:
            payload["guildName"] = self.guild_name
        if self.guild_icon is not None:
            payload["guildIcon"] = self.guild_icon
        payload["channels"] = [channel.to_json() for channel in self.channels]
        return payload


def _optional_text(entry: Mapping[str, Any], key: str) -> str | None:
    value = entry.get(key)
    return value if isinstance(value, str) else None


class ChannelsDocument:
    """In-memory form of ``channels.json``.

    Accepts the grouped shape and the flat legacy shape, and always
    serialises back to the grouped shape. Each channel entry may embed the
    channel's baseline, which makes this document the primary baseline
    store.
    """

    def __init__(self, guilds: Iterable[GuildEntry] = ()) -> None:
        self.guilds: list[GuildEntry] = list(guilds)

    @classmethod
    def from_json(cls, parsed: Any) -> "ChannelsDocument":
        if not isinstance(parsed, list):
            raise ConfigError("channels.json must contain a JSON array")

        document = cls()
        for entry in parsed:
            if not isinstance(entry, Mapping):
                raise ConfigError("Invalid channel entry shape in config file")

            if isinstance(entry.get("guild"), str) and isinstance(entry.get("channels"), list):
                guild = document._get_or_create_guild(entry["guild"])
                guild.guild_name = _optional_text(entry, "guildName") or guild.guild_name
                guild.guild_icon = _optional_text(entry, "guildIcon") or guild.guild_icon
                for channel in entry["channels"]:
                    if not isinstance(channel, Mapping) or not isinstance(channel.get("channel"), str):
                        raise ConfigError(
                            'Each channel in channels[] must have a string "channel" field'
                        )
                    guild.channels.append(
                        ChannelEntry(
                            channel_id=channel["channel"],
                            channel_name=_optional_text(channel, "channelName"),
                            baseline=channel.get("baseline"),
                        )
                    )
                continue

            if isinstance(entry.get("guildId"), str) and isinstance(entry.get("channelId"), str):
                guild = document._get_or_create_guild(entry["guildId"])
                guild.guild_name = _optional_text(entry, "guildName") or guild.guild_name
                guild.guild_icon = _optional_text(entry, "guildIcon") or guild.guild_icon
                guild.channels.append(
                    ChannelEntry(
                        channel_id=entry["channelId"],
                        channel_name=_optional_text(entry, "channelName"),
                        baseline=entry.get("baseline"),
                    )
                )
                continue

            raise ConfigError("Invalid channel entry shape in config file")
        return document

    def to_json(self) -> list[dict[str, Any]]:
        return [guild.to_json() for guild in self.guilds]

    def targets(self) -> list[ChannelTarget]:
        return [
            ChannelTarget(
                guild_id=guild.guild_id,
                channel_id=channel.channel_id,
                guild_name=guild.guild_name,
                channel_name=channel.channel_name,
                guild_icon=guild.guild_icon,
            )
            for guild in self.guilds
            for channel in guild.channels
        ]

    def find_channel(self, guild_id: str, channel_id: str) -> ChannelEntry | None:
        guild = self._find_guild(guild_id)
        if guild is None:
            return None
        for channel in guild.channels:
            if channel.channel_id == str(channel_id):
                return channel
        return None

    def ensure_channel(self, guild_id: str, channel_id: str) -> ChannelEntry:
        guild = self._get_or_create_guild(guild_id)
        for channel in guild.channels:
            if channel.channel_id == str(channel_id):
                return channel
        entry = ChannelEntry(channel_id=str(channel_id))
        guild.channels.append(entry)
        return entry

    def apply_display(self, targets: Iterable[ChannelTarget]) -> None:
        """Copy display names and icons into the document, keeping baselines."""

        for target in targets:
            guild = self._get_or_create_guild(target.guild_id)
            if target.guild_name is not None:
                guild.guild_name = target.guild_name
            if target.guild_icon is not None:
                guild.guild_icon = target.guild_icon
            channel = self.ensure_channel(target.guild_id, target.channel_id)
            if target.channel_name is not None:
                channel.channel_name = target.channel_name

    def save(self, path: Path) -> None:
        try:
            write_json_atomic(path, self.to_json())
        except (OSError, ValueError) as exc:
            raise PersistenceError(f"Failed to write {path}: {exc}") from exc

    def _find_guild(self, guild_id: str) -> GuildEntry | None:
        for guild in self.guilds:
            if guild.guild_id == str(guild_id):
                return guild
        return None

    def _get_or_create_guild(self, guild_id: str) -> GuildEntry:
        guild = self._find_guild(guild_id)
        if guild is not None:
            return guild
        guild = GuildEntry(guild_id=str(guild_id))
        self.guilds.append(guild)
        return guild


def load_channels_document(path: Path) -> ChannelsDocument:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Failed to load channels from {path} - {exc}") from exc
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Failed to load channels from {path} - {exc}") from exc
    document = ChannelsDocument.from_json(parsed)
    logger.debug("Loaded %d channel(s) from %s", len(document.targets()), path)
    return document
