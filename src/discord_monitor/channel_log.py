"""Per-channel JSON message archive."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Sequence

from .errors import ConfigError
from .models import ChannelTarget, StoredMessage
from .utils import write_json_atomic

logger = logging.getLogger(__name__)


class ChannelLogWriter:
    """Keep ``<logs_dir>/<guildId>_<channelId>.json`` as an ordered JSON array."""

    def __init__(self, logs_dir: Path) -> None:
        self._logs_dir = logs_dir

    def ensure_directory(self) -> None:
        try:
            self._logs_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ConfigError(f"Failed to ensure logs directory {self._logs_dir} - {exc}") from exc

    def path_for(self, target: ChannelTarget) -> Path:
        return self._logs_dir / f"{target.key}.json"

    def read_messages(self, target: ChannelTarget) -> list[Any]:
        path = self.path_for(target)
        if not path.exists():
            return []
        try:
            parsed = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Failed to parse existing log file %s - replacing (%s)", path, exc)
            return []
        if not isinstance(parsed, list):
            logger.warning("Existing log file %s malformed - replacing", path)
            return []
        return parsed

    def append_messages(self, target: ChannelTarget, messages: Sequence[StoredMessage]) -> bool:
        """Append ``messages`` after the existing records; False when the write failed."""

        if not messages:
            return True
        path = self.path_for(target)
        combined = self.read_messages(target)
        combined.extend(message.to_dict() for message in messages)
        try:
            write_json_atomic(path, combined)
        except (OSError, ValueError) as exc:
            logger.error("Failed to write messages to %s - %s", path, exc)
            return False
        return True
