"""Miscellaneous helpers."""

from __future__ import annotations

import json
import logging
import os
import sys
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


def parse_bool(value: str | None, default: bool = False) -> bool:
    """Parse textual boolean configuration values.

    Supported truthy values: ``on``, ``true``, ``yes``, ``1`` (case-insensitive).
    Supported falsy values: ``off``, ``false``, ``no``, ``0``.
    Any other value returns ``default``.
    """

    if value is None:
        return default
    normalized = value.strip().lower()
    if not normalized:
        return default
    if normalized in {"on", "true", "yes", "1"}:
        return True
    if normalized in {"off", "false", "no", "0"}:
        return False
    return default


def parse_milliseconds(value: str | None, default: float) -> float:
    """Parse a millisecond setting and return seconds.

    Blank, negative or unparsable values fall back to ``default`` (seconds).
    """

    if value is None:
        return default
    stripped = value.strip()
    if not stripped:
        return default
    try:
        parsed = float(stripped)
    except ValueError:
        return default
    if parsed < 0:
        return default
    return parsed / 1000


def parse_timestamp(value: str | None) -> datetime | None:
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp_utc(value: str) -> str:
    """Render an ISO timestamp as ``YYYY-MM-DD HH:MM UTC``; unparsable input is returned as is."""

    moment = parse_timestamp(value)
    if moment is None:
        return value
    return moment.strftime("%Y-%m-%d %H:%M UTC")


def message_id_sort_key(message_id: str) -> tuple[int, str]:
    return (
        (int(message_id), message_id)
        if message_id.isdigit()
        else (0, message_id)
    )


def is_newer_id(candidate: str, reference: str | None) -> bool:
    """Return True when ``candidate`` sorts strictly after ``reference``.

    Discord snowflakes grow with time, so numeric order is chronological order.
    """

    if reference is None:
        return True
    return message_id_sort_key(candidate) > message_id_sort_key(reference)


def truncate(text: str, limit: int, suffix: str = "...") -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + suffix


def encode_json(data: Any) -> bytes:
    """Serialise ``data`` as indented UTF-8 JSON.

    Strings with lone surrogates cannot be encoded as UTF-8; in that case the
    whole document is written with ``\\u`` escapes instead.
    """

    text = json.dumps(data, indent=2, ensure_ascii=False)
    try:
        return text.encode("utf-8")
    except UnicodeEncodeError:
        return json.dumps(data, indent=2, ensure_ascii=True).encode("ascii")


def write_json_atomic(path: Path, data: Any) -> None:
    """Replace ``path`` with ``data`` through a temporary sibling file.

    The existing file is left untouched when serialisation or the write
    fails. Raises ``OSError`` or ``ValueError``.
    """

    payload = encode_json(data)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise


class JsonFormatter(logging.Formatter):
    """One JSON object per line: level, timestamp, logger name and message."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "level": record.levelname.lower(),
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


class _BelowLevelFilter(logging.Filter):
    def __init__(self, level: int) -> None:
        super().__init__()
        self._level = level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno < self._level


def configure_logging(level: str = "INFO", log_format: str = "text") -> None:
    """Route errors to stderr and everything else to stdout."""

    log_level = getattr(logging, level.upper(), logging.INFO)
    if log_format.strip().lower() == "json":
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.addFilter(_BelowLevelFilter(logging.ERROR))
    stdout_handler.setFormatter(formatter)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(logging.ERROR)
    stderr_handler.setFormatter(formatter)

    logging.basicConfig(level=log_level, handlers=[stdout_handler, stderr_handler], force=True)
