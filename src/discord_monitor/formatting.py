"""Slack Block Kit formatting for Discord messages."""

from __future__ import annotations

import re
from typing import Any

from .models import Attachment, ChannelTarget, StoredMessage
from .utils import format_timestamp_utc

# Slack rejects text objects longer than this.
SLACK_TEXT_LIMIT = 3000
GUILD_ICON_SIZE = 96

_IMAGE_EXTENSION = re.compile(r"\.(png|jpe?g|gif|webp|bmp|svg)$", re.IGNORECASE)
_EMPTY_CONTENT = "(no text)"


def split_into_chunks(text: str, size: int = SLACK_TEXT_LIMIT) -> list[str]:
    return [text[index : index + size] for index in range(0, len(text), size)]


def guild_icon_url(guild_id: str, icon_hash: str) -> str:
    extension = "gif" if icon_hash.startswith("a_") else "png"
    return f"https://cdn.discordapp.com/icons/{guild_id}/{icon_hash}.{extension}?size={GUILD_ICON_SIZE}"


def message_link(target: ChannelTarget, message_id: str) -> str:
    return f"https://discord.com/channels/{target.guild_id}/{target.channel_id}/{message_id}"


def _image_url(attachment: Attachment) -> str | None:
    url = attachment.proxy_url or attachment.url
    filename = attachment.filename or ""
    looks_like_image = bool(url and _IMAGE_EXTENSION.search(url)) or bool(
        _IMAGE_EXTENSION.search(filename)
    )
    return url if looks_like_image and url else None


def build_slack_blocks(message: StoredMessage, target: ChannelTarget) -> list[dict[str, Any]]:
    """Header/context, content sections, images, then a link back to Discord."""

    header = f"*New message in* *{target.display}*"
    timestamp = f"_{format_timestamp_utc(message.timestamp)}_"
    context_text = f"{header}\n*From: {message.author_label}* {timestamp}"

    context_elements: list[dict[str, Any]] = []
    if target.guild_icon:
        context_elements.append(
            {
                "type": "image",
                "image_url": guild_icon_url(target.guild_id, target.guild_icon),
                "alt_text": target.guild_name or "guild",
            }
        )
    context_elements.append({"type": "mrkdwn", "text": context_text})
    blocks: list[dict[str, Any]] = [{"type": "context", "elements": context_elements}]

    content = message.content or _EMPTY_CONTENT
    # Multi-line content is sent as a code block.
    as_code = "\n" in content
    for chunk in split_into_chunks(content):
        text = f"```{chunk}```" if as_code else chunk
        blocks.append({"type": "section", "text": {"type": "mrkdwn", "text": text}})

    for attachment in message.attachments or ():
        url = _image_url(attachment)
        if url:
            blocks.append(
                {
                    "type": "image",
                    "image_url": url,
                    "alt_text": attachment.filename or "discord-image",
                }
            )

    blocks.append(
        {
            "type": "actions",
            "elements": [
                {
                    "type": "button",
                    "text": {"type": "plain_text", "text": "View on Discord"},
                    "url": message_link(target, message.id),
                }
            ],
        }
    )
    return blocks


def build_slack_payload(message: StoredMessage, target: ChannelTarget) -> dict[str, Any]:
    return {"blocks": build_slack_blocks(message, target)}
