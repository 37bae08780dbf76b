"""Per-channel baselines across the channels config and the legacy baselines file.

Two stores may hold a baseline for the same channel:

* the primary store, a ``baseline`` object embedded in each channel entry of
  ``channels.json`` (kept in memory as a :class:`ChannelsDocument`);
* the legacy store, ``baselines.json``, a flat ``"<guildId>_<channelId>"``
  mapping.

Reads merge both with :func:`merge_baselines`. Writes always update the
in-memory document and durably go to exactly one store, picked once at
startup by the write-enriched flag.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from .config import ChannelsDocument
from .errors import PersistenceError
from .models import Baseline, ChannelTarget
from .utils import is_newer_id, parse_timestamp, write_json_atomic

logger = logging.getLogger(__name__)


def merge_baselines(primary: Baseline | None, legacy: Baseline | None) -> Baseline | None:
    """Pick the baseline to trust when both stores may hold one.

    The later parsed timestamp wins and ties go to legacy. A side with a
    parseable timestamp beats one without. With neither parseable, legacy
    wins.
    """

    if primary is None or legacy is None:
        return primary or legacy

    primary_ts = parse_timestamp(primary.timestamp)
    legacy_ts = parse_timestamp(legacy.timestamp)
    if primary_ts is not None and legacy_ts is not None:
        return legacy if legacy_ts >= primary_ts else primary
    if primary_ts is not None:
        return primary
    return legacy


class BaselineStore:
    """Read-merge and write-one access to channel baselines."""

    def __init__(
        self,
        document: ChannelsDocument,
        *,
        config_path: Path,
        legacy_path: Path,
        write_enriched: bool = False,
    ) -> None:
        self._document = document
        self._config_path = config_path
        self._legacy_path = legacy_path
        self._write_enriched = write_enriched

    @property
    def write_enriched(self) -> bool:
        return self._write_enriched

    def get_baseline(self, target: ChannelTarget) -> Baseline | None:
        primary = self._read_primary(target)
        legacy = self._read_legacy(target)
        return merge_baselines(primary, legacy)

    def set_baseline(self, target: ChannelTarget, baseline: Baseline) -> bool:
        """Record ``baseline``; returns False when refused or when the durable write failed.

        A baseline older than the stored one is refused. The same id may be
        recorded again to refresh its cached content and timestamp.
        """

        current = self.get_baseline(target)
        if current is not None and is_newer_id(current.last_message_id, baseline.last_message_id):
            logger.debug(
                "Refusing to move baseline for %s back from %s to %s",
                target.display,
                current.last_message_id,
                baseline.last_message_id,
            )
            return False

        entry = self._document.ensure_channel(target.guild_id, target.channel_id)
        entry.baseline = baseline.to_dict()

        try:
            if self._write_enriched:
                self._document.save(self._config_path)
                logger.debug("Persisted baseline for %s to %s", target.display, self._config_path)
            else:
                self._write_legacy(target, baseline)
                logger.debug("Persisted baseline for %s to %s", target.display, self._legacy_path)
        except PersistenceError as exc:
            logger.error("Failed to persist baseline for %s - %s", target.display, exc)
            return False
        return True

    def _read_primary(self, target: ChannelTarget) -> Baseline | None:
        entry = self._document.find_channel(target.guild_id, target.channel_id)
        if entry is None or entry.baseline is None:
            return None
        baseline = Baseline.from_mapping(entry.baseline)
        if baseline is None:
            logger.warning("Ignoring malformed embedded baseline for %s", target.display)
        return baseline

    def _read_legacy(self, target: ChannelTarget) -> Baseline | None:
        data = self._load_legacy_file()
        raw = data.get(target.key)
        if raw is None:
            return None
        baseline = Baseline.from_mapping(raw)
        if baseline is None:
            logger.warning("Ignoring malformed legacy baseline for %s", target.display)
        return baseline

    def _load_legacy_file(self) -> dict[str, Any]:
        if not self._legacy_path.exists():
            return {}
        try:
            parsed = json.loads(self._legacy_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Failed to read legacy baselines %s - %s", self._legacy_path, exc)
            return {}
        if not isinstance(parsed, dict):
            logger.warning("Legacy baselines %s is not a JSON object; ignoring", self._legacy_path)
            return {}
        return parsed

    def _write_legacy(self, target: ChannelTarget, baseline: Baseline) -> None:
        existing = self._load_legacy_file()
        existing[target.key] = baseline.to_dict()
        try:
            write_json_atomic(self._legacy_path, existing)
        except (OSError, ValueError) as exc:
            raise PersistenceError(f"Failed to write {self._legacy_path}: {exc}") from exc
