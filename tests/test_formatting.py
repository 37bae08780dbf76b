from __future__ import annotations

from discord_monitor.formatting import (
    build_slack_blocks,
    build_slack_payload,
    guild_icon_url,
    split_into_chunks,
)
from discord_monitor.models import Attachment, ChannelTarget, StoredMessage

TARGET = ChannelTarget(guild_id="g1", channel_id="c1", guild_name="Guild", channel_name="news")


def _message(content: str, attachments: tuple[Attachment, ...] | None = None) -> StoredMessage:
    return StoredMessage(
        id="m1",
        author_id="u1",
        author_username="alice",
        content=content,
        timestamp="2024-03-05T07:08:09.123000+00:00",
        attachments=attachments,
    )


def _sections(blocks: list[dict]) -> list[str]:
    return [block["text"]["text"] for block in blocks if block["type"] == "section"]


def test_context_block_has_header_author_and_time() -> None:
    blocks = build_slack_blocks(_message("hello"), TARGET)

    context = blocks[0]
    assert context["type"] == "context"
    assert context["elements"] == [
        {
            "type": "mrkdwn",
            "text": "*New message in* *Guild/news*\n*From: alice* _2024-03-05 07:08 UTC_",
        }
    ]


def test_short_single_line_content_is_plain() -> None:
    assert _sections(build_slack_blocks(_message("hello"), TARGET)) == ["hello"]


def test_empty_content_renders_placeholder() -> None:
    assert _sections(build_slack_blocks(_message(""), TARGET)) == ["(no text)"]


def test_long_multiline_content_is_chunked_as_code() -> None:
    content = "first line\n" + "x" * (7000 - len("first line\n"))

    sections = _sections(build_slack_blocks(_message(content), TARGET))

    assert len(sections) == 3
    assert all(text.startswith("```") and text.endswith("```") for text in sections)
    assert [len(text) - 6 for text in sections] == [3000, 3000, 1000]
    assert "".join(text[3:-3] for text in sections) == content


def test_split_into_chunks_handles_empty_text() -> None:
    assert split_into_chunks("") == []
    assert split_into_chunks("abcd", 3) == ["abc", "d"]


def test_guild_icon_extension_depends_on_animation() -> None:
    assert guild_icon_url("g1", "a_123") == "https://cdn.discordapp.com/icons/g1/a_123.gif?size=96"
    assert guild_icon_url("g1", "123") == "https://cdn.discordapp.com/icons/g1/123.png?size=96"


def test_guild_icon_is_added_to_context() -> None:
    target = ChannelTarget("g1", "c1", "Guild", "news", "a_anim")

    elements = build_slack_blocks(_message("hi"), target)[0]["elements"]

    assert elements[0] == {
        "type": "image",
        "image_url": "https://cdn.discordapp.com/icons/g1/a_anim.gif?size=96",
        "alt_text": "Guild",
    }
    assert elements[1]["type"] == "mrkdwn"


def test_image_attachments_become_image_blocks() -> None:
    attachments = (
        Attachment(url="https://cdn.test/a.png", proxy_url="https://media.test/a.png", filename="a.png"),
        Attachment(url="https://cdn.test/download?id=2", filename="photo.JPEG"),
        Attachment(url="https://cdn.test/report.pdf", filename="report.pdf"),
    )

    blocks = build_slack_blocks(_message("pics", attachments), TARGET)

    images = [block for block in blocks if block["type"] == "image"]
    assert images == [
        {"type": "image", "image_url": "https://media.test/a.png", "alt_text": "a.png"},
        {"type": "image", "image_url": "https://cdn.test/download?id=2", "alt_text": "photo.JPEG"},
    ]


def test_last_block_links_back_to_discord() -> None:
    payload = build_slack_payload(_message("hi"), TARGET)

    actions = payload["blocks"][-1]
    assert actions["type"] == "actions"
    button = actions["elements"][0]
    assert button["text"] == {"type": "plain_text", "text": "View on Discord"}
    assert button["url"] == "https://discord.com/channels/g1/c1/m1"


def test_author_falls_back_to_id() -> None:
    message = StoredMessage(
        id="m2", author_id="u9", author_username=None, content="x", timestamp="not a time"
    )

    text = build_slack_blocks(message, TARGET)[0]["elements"][0]["text"]

    assert "*From: u9* _not a time_" in text
