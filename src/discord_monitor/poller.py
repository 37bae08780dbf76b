"""Per-channel polling: fetch, order, dedup, persist, notify, advance the cursor."""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
import random
import time
from typing import Any, Iterable, Mapping, Sequence

from .baselines import BaselineStore
from .channel_log import ChannelLogWriter
from .discord import DiscordClient
from .errors import AuthError, MalformedDataError, MonitorError
from .formatting import build_slack_payload
from .models import Baseline, ChannelTarget, StoredMessage
from .slack import NotificationSender
from .utils import is_newer_id, message_id_sort_key, truncate

logger = logging.getLogger(__name__)

PAGE_SIZE = 100
_PREVIEW_LENGTH = 200


class PollState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    BASELINED = "baselined"
    STEADY = "steady"


class PollSummary:
    """Poll counters drained once per interval into a single log line."""

    def __init__(self) -> None:
        self._count = 0
        self._total_ms = 0.0

    def record(self, elapsed_ms: float) -> None:
        self._count += 1
        self._total_ms += elapsed_ms

    def drain(self) -> tuple[int, float]:
        count, total = self._count, self._total_ms
        self._count = 0
        self._total_ms = 0.0
        return count, total


class ChannelPoller:
    """Poll one channel on a fixed interval.

    The cursor only ever moves forward. Within a batch the log append
    happens first, then the cursor write, then notifications one by one.
    """

    def __init__(
        self,
        target: ChannelTarget,
        *,
        client: DiscordClient,
        store: BaselineStore,
        log_writer: ChannelLogWriter,
        notifier: NotificationSender,
        summary: PollSummary,
        interval: float,
        page_size: int = PAGE_SIZE,
    ) -> None:
        self.target = target
        self._client = client
        self._store = store
        self._log_writer = log_writer
        self._notifier = notifier
        self._summary = summary
        self._interval = interval
        self._page_size = page_size
        self._in_flight = False
        self._run_task: asyncio.Task[None] | None = None
        self._tick_task: asyncio.Task[None] | None = None

        self._cursor = store.get_baseline(target)
        if self._cursor is not None:
            self._state = PollState.STEADY
            logger.debug(
                "Loaded baseline from store for %s lastMessageId=%s",
                target.display,
                self._cursor.last_message_id,
            )
        else:
            self._state = PollState.UNINITIALIZED

    @property
    def cursor(self) -> Baseline | None:
        return self._cursor

    @property
    def state(self) -> PollState:
        return self._state

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def running(self) -> bool:
        return self._run_task is not None and not self._run_task.done()

    # ------------------------------------------------------------------
    # Single tick
    # ------------------------------------------------------------------
    async def poll_once(self) -> None:
        if self._in_flight:
            logger.debug("Previous poll for %s still running; skipping", self.target.display)
            return

        self._in_flight = True
        started = time.perf_counter()
        try:
            if self._cursor is None:
                await self._establish_baseline()
            else:
                await self._poll_new_messages(self._cursor)
        except asyncio.CancelledError:
            raise
        except AuthError as exc:
            logger.error(
                "Failed to fetch %s - %s (check DISCORD_TOKEN and channel permissions)",
                self.target.display,
                exc,
            )
        except MalformedDataError as exc:
            logger.warning("Polling %s returned unexpected data - %s", self.target.display, exc)
        except MonitorError as exc:
            logger.error("Failed to fetch %s - %s", self.target.display, exc)
        except Exception:
            logger.exception("Unexpected error while polling %s", self.target.display)
        finally:
            self._in_flight = False
            self._summary.record((time.perf_counter() - started) * 1000)

    async def _establish_baseline(self) -> None:
        latest = await self._client.fetch_latest_message(self.target.channel_id)
        if latest is None:
            logger.debug("Polling %s... no messages to establish baseline", self.target.display)
            return
        message = StoredMessage.from_payload(latest)
        self._advance(message.to_baseline())
        self._state = PollState.BASELINED
        logger.debug(
            "Baseline established for %s lastMessageId=%s", self.target.display, message.id
        )

    async def _poll_new_messages(self, cursor: Baseline) -> None:
        payloads = await self._client.fetch_messages(
            self.target.channel_id,
            after=cursor.last_message_id,
            limit=self._page_size,
        )
        self._state = PollState.STEADY
        fresh = self._new_messages(payloads, cursor.last_message_id)
        if not fresh:
            logger.debug("Polling %s... no new messages", self.target.display)
            return

        for message in fresh:
            logger.info(
                "%s %s: %s",
                self.target.display,
                message.author_label,
                truncate(message.content, _PREVIEW_LENGTH),
            )

        self._log_writer.append_messages(self.target, fresh)
        logger.debug("Persisted %d message(s) for %s", len(fresh), self.target.key)
        self._advance(fresh[-1].to_baseline())

        # Sequential delivery keeps Slack in chronological order.
        for message in fresh:
            await self._notify(message)

    @staticmethod
    def _new_messages(payloads: Iterable[Mapping[str, Any]], cursor_id: str) -> list[StoredMessage]:
        messages: dict[str, StoredMessage] = {}
        for payload in payloads:
            message = StoredMessage.from_payload(payload)
            if is_newer_id(message.id, cursor_id):
                messages.setdefault(message.id, message)
        return sorted(messages.values(), key=lambda item: message_id_sort_key(item.id))

    def _advance(self, baseline: Baseline) -> None:
        current = self._cursor
        if current is not None and not is_newer_id(baseline.last_message_id, current.last_message_id):
            logger.debug(
                "Refusing to move cursor for %s from %s to %s",
                self.target.display,
                current.last_message_id,
                baseline.last_message_id,
            )
            return
        self._cursor = baseline
        self._store.set_baseline(self.target, baseline)

    async def _notify(self, message: StoredMessage) -> None:
        logger.debug(
            "Sending Slack notification guildId=%s channelId=%s messageId=%s",
            self.target.guild_id,
            self.target.channel_id,
            message.id,
        )
        try:
            await self._notifier.send(build_slack_payload(message, self.target))
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Error while sending Slack notification for message %s", message.id)

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------
    def start(self, initial_delay: float = 0.0) -> asyncio.Task[None]:
        if self._run_task is not None and not self._run_task.done():
            return self._run_task
        self._run_task = asyncio.create_task(
            self._run(initial_delay), name=f"poll-{self.target.key}"
        )
        return self._run_task

    async def stop(self) -> None:
        tasks = [task for task in (self._run_task, self._tick_task) if task is not None]
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._run_task = None
        self._tick_task = None

    async def _run(self, initial_delay: float) -> None:
        await asyncio.sleep(initial_delay)
        logger.info(
            "Started polling %s every %dms (initial delay %dms)",
            self.target.display,
            self._interval * 1000,
            initial_delay * 1000,
        )
        while True:
            if self._tick_task is not None and not self._tick_task.done():
                logger.debug("Previous poll for %s still running; skipping", self.target.display)
            else:
                self._tick_task = asyncio.create_task(
                    self.poll_once(), name=f"poll-tick-{self.target.key}"
                )
            await asyncio.sleep(self._interval)


class PollScheduler:
    """Own the channel pollers and the periodic poll summary."""

    def __init__(
        self,
        pollers: Sequence[ChannelPoller],
        *,
        interval: float,
        summary: PollSummary,
        rng: random.Random | None = None,
    ) -> None:
        self.pollers = list(pollers)
        self._interval = interval
        self._summary = summary
        self._rng = rng or random.Random()
        self._summary_task: asyncio.Task[None] | None = None

    def start(self) -> None:
        for poller in self.pollers:
            delay = self._rng.random() * self._interval
            logger.info(
                "Scheduling polling for %s in %dms (every %dms)",
                poller.target.display,
                delay * 1000,
                self._interval * 1000,
            )
            poller.start(delay)
        if self._summary_task is None or self._summary_task.done():
            self._summary_task = asyncio.create_task(self._summary_loop(), name="poll-summary")

    async def stop(self) -> None:
        if self._summary_task is not None:
            self._summary_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._summary_task
            self._summary_task = None
        await asyncio.gather(*(poller.stop() for poller in self.pollers))

    def flush_summary(self) -> None:
        count, total_ms = self._summary.drain()
        if count > 0:
            logger.info("Completed polling cycle for %d channels in %dms", count, total_ms)

    async def _summary_loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            self.flush_summary()
