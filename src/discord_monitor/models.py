"""Data models used across the monitor."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Sequence


def baseline_key(guild_id: str, channel_id: str) -> str:
    """Key used by the legacy flat baseline store."""

    return f"{guild_id}_{channel_id}"


@dataclass(frozen=True, slots=True)
class ChannelTarget:
    """One monitored Discord channel.

    Identifiers never change for the life of a poller; enrichment may
    produce a copy with different display fields.
    """

    guild_id: str
    channel_id: str
    guild_name: str | None = None
    channel_name: str | None = None
    guild_icon: str | None = None

    @property
    def key(self) -> str:
        return baseline_key(self.guild_id, self.channel_id)

    @property
    def display(self) -> str:
        return f"{self.guild_name or self.guild_id}/{self.channel_name or self.channel_id}"


@dataclass(frozen=True, slots=True)
class Baseline:
    """Last processed message of a channel, the dedup boundary for polling."""

    last_message_id: str
    content: str | None = None
    timestamp: str | None = None

    @classmethod
    def from_mapping(cls, data: Any) -> "Baseline | None":
        if not isinstance(data, Mapping):
            return None
        raw_id = data.get("lastMessageId")
        if raw_id is None or isinstance(raw_id, (dict, list, bool)):
            return None
        message_id = str(raw_id).strip()
        if not message_id:
            return None
        content = data.get("content")
        timestamp = data.get("timestamp")
        return cls(
            last_message_id=message_id,
            content=content if isinstance(content, str) else None,
            timestamp=timestamp if isinstance(timestamp, str) else None,
        )

    def to_dict(self) -> dict[str, str]:
        payload = {"lastMessageId": self.last_message_id}
        if self.content is not None:
            payload["content"] = self.content
        if self.timestamp is not None:
            payload["timestamp"] = self.timestamp
        return payload


@dataclass(frozen=True, slots=True)
class Attachment:
    id: str | None = None
    url: str | None = None
    proxy_url: str | None = None
    filename: str | None = None
    content_type: str | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Attachment":
        def _text(key: str) -> str | None:
            value = payload.get(key)
            return str(value) if value is not None else None

        return cls(
            id=_text("id"),
            url=_text("url"),
            proxy_url=_text("proxy_url"),
            filename=_text("filename"),
            content_type=_text("content_type"),
        )

    def to_dict(self) -> dict[str, str]:
        fields = {
            "id": self.id,
            "url": self.url,
            "proxy_url": self.proxy_url,
            "filename": self.filename,
            "content_type": self.content_type,
        }
        return {key: value for key, value in fields.items() if value is not None}


@dataclass(frozen=True, slots=True)
class StoredMessage:
    """Simplified message record written to the channel log."""

    id: str
    author_id: str
    author_username: str | None
    content: str
    timestamp: str
    attachments: Sequence[Attachment] | None = field(default=None)

    @property
    def author_label(self) -> str:
        return self.author_username or self.author_id

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "StoredMessage":
        author = payload.get("author")
        if not isinstance(author, Mapping):
            author = {}
        username = author.get("username")
        content = payload.get("content")
        timestamp = payload.get("timestamp")
        attachments_raw = payload.get("attachments")
        attachments: tuple[Attachment, ...] | None = None
        if isinstance(attachments_raw, list):
            attachments = tuple(
                Attachment.from_payload(item)
                for item in attachments_raw
                if isinstance(item, Mapping)
            )
        return cls(
            id=str(payload.get("id")),
            author_id=str(author.get("id") or ""),
            author_username=username if isinstance(username, str) else None,
            content=content if isinstance(content, str) else "",
            timestamp=str(timestamp) if timestamp else datetime.now(timezone.utc).isoformat(),
            attachments=attachments,
        )

    def to_dict(self) -> dict[str, Any]:
        record: dict[str, Any] = {
            "id": self.id,
            "author": {"id": self.author_id, "username": self.author_username},
            "content": self.content,
            "timestamp": self.timestamp,
        }
        if self.attachments is not None:
            record["attachments"] = [item.to_dict() for item in self.attachments]
        return record

    def to_baseline(self) -> Baseline:
        return Baseline(
            last_message_id=self.id, content=self.content, timestamp=self.timestamp
        )
