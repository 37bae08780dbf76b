import json
import logging
from datetime import datetime, timezone
from pathlib import Path

from discord_monitor.utils import (
    JsonFormatter,
    format_timestamp_utc,
    is_newer_id,
    parse_bool,
    parse_milliseconds,
    parse_timestamp,
    truncate,
    write_json_atomic,
)


def test_parse_milliseconds_returns_seconds() -> None:
    assert parse_milliseconds("250", 0.0) == 0.25


def test_parse_milliseconds_invalid_returns_default() -> None:
    assert parse_milliseconds("not-a-number", 2.0) == 2.0
    assert parse_milliseconds("-5", 2.0) == 2.0
    assert parse_milliseconds(None, 3.0) == 3.0


def test_parse_bool_supports_truthy_and_falsy() -> None:
    assert parse_bool("on") is True
    assert parse_bool("NO") is False
    assert parse_bool(None, default=True) is True
    assert parse_bool("unexpected", default=False) is False


def test_parse_timestamp_normalises_to_utc() -> None:
    assert parse_timestamp("2024-01-01T02:00:00+02:00") == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert parse_timestamp("2024-01-01T00:00:00Z") == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert parse_timestamp("garbage") is None
    assert parse_timestamp(None) is None


def test_format_timestamp_utc() -> None:
    assert format_timestamp_utc("2024-06-30T23:59:59.999+00:00") == "2024-06-30 23:59 UTC"
    assert format_timestamp_utc("whenever") == "whenever"


def test_is_newer_id_compares_snowflakes_numerically() -> None:
    assert is_newer_id("100", "99")
    assert not is_newer_id("99", "100")
    assert not is_newer_id("100", "100")
    assert is_newer_id("1", None)


def test_truncate() -> None:
    assert truncate("short", 10) == "short"
    assert truncate("abcdef", 3) == "abc..."


def test_json_formatter_emits_single_object() -> None:
    record = logging.LogRecord("discord_monitor.poller", logging.WARNING, __file__, 1, "hello %s", ("x",), None)

    payload = json.loads(JsonFormatter().format(record))

    assert payload["level"] == "warning"
    assert payload["logger"] == "discord_monitor.poller"
    assert payload["msg"] == "hello x"
    assert "ts" in payload


def test_write_json_atomic_escapes_lone_surrogates(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "data.json"
    text = json.loads('"bad \\ud83d"')

    write_json_atomic(path, [{"content": text}, {"content": "café"}])

    assert json.loads(path.read_text(encoding="utf-8")) == [{"content": text}, {"content": "café"}]
    assert [item.name for item in path.parent.iterdir()] == ["data.json"]


def test_write_json_atomic_keeps_readable_utf8(tmp_path: Path) -> None:
    path = tmp_path / "data.json"
    path.write_text("[]", encoding="utf-8")

    write_json_atomic(path, {"name": "café"})

    assert "café" in path.read_text(encoding="utf-8")
