"""Application bootstrap for Discord Monitor."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import signal
from typing import Sequence

import aiohttp

from .baselines import BaselineStore
from .channel_log import ChannelLogWriter
from .commands import LastMessageQuery, SlackCommandServer, build_slack_app
from .config import ChannelsDocument, Settings, load_channels_document
from .discord import DiscordClient
from .enrichment import enrich_and_persist
from .models import ChannelTarget
from .pidfile import PidFile
from .poller import ChannelPoller, PollScheduler, PollSummary
from .slack import SlackWebhookSender
from .transport import RetryingTransport, create_session

logger = logging.getLogger(__name__)


class MonitorApp:
    """High level coordinator tying together Discord polling, storage and Slack."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._stop_event = asyncio.Event()
        self.scheduler: PollScheduler | None = None

    def stop(self) -> None:
        self._stop_event.set()

    async def run(self) -> None:
        settings = self._settings
        pidfile = PidFile(settings.pid_path)
        pidfile.acquire()
        try:
            log_writer = ChannelLogWriter(settings.logs_dir)
            log_writer.ensure_directory()
            document = load_channels_document(settings.channels_path)
            targets = document.targets()
            logger.info("Process PID=%d starting with %d channel(s)", os.getpid(), len(targets))
            logger.debug("Channel baseline keys: %s", ", ".join(target.key for target in targets))

            async with create_session() as session:
                await self._run_with_session(session, document, targets, log_writer)
        finally:
            pidfile.release()

    async def _run_with_session(
        self,
        session: aiohttp.ClientSession,
        document: ChannelsDocument,
        targets: Sequence[ChannelTarget],
        log_writer: ChannelLogWriter,
    ) -> None:
        settings = self._settings
        transport = RetryingTransport(session)
        client = DiscordClient(transport, settings.discord_token)
        store = BaselineStore(
            document,
            config_path=settings.channels_path,
            legacy_path=settings.baselines_path,
            write_enriched=settings.write_enriched_config,
        )
        sender = SlackWebhookSender(transport, settings.slack_webhook_url)
        if not sender.enabled:
            logger.info("SLACK_WEBHOOK_URL not set; new messages will only be logged")

        try:
            targets = await enrich_and_persist(
                client,
                document,
                targets,
                config_path=settings.channels_path,
                write_enriched=settings.write_enriched_config,
            )
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Channel/guild enrichment failed; polling with configured names")

        summary = PollSummary()
        pollers = [
            ChannelPoller(
                target,
                client=client,
                store=store,
                log_writer=log_writer,
                notifier=sender,
                summary=summary,
                interval=settings.poll_interval,
            )
            for target in targets
        ]
        scheduler = PollScheduler(pollers, interval=settings.poll_interval, summary=summary)
        self.scheduler = scheduler
        scheduler.start()

        background: list[asyncio.Task[None]] = []
        if settings.heartbeat_interval > 0:
            background.append(
                asyncio.create_task(
                    self._heartbeat_loop(settings.heartbeat_interval), name="heartbeat"
                )
            )

        server = await self._start_command_server(targets, store, client)
        self._install_signal_handlers()
        try:
            await self._stop_event.wait()
            logger.info("Stopping monitor")
        finally:
            self._remove_signal_handlers()
            await scheduler.stop()
            for task in background:
                task.cancel()
            for task in background:
                with contextlib.suppress(asyncio.CancelledError):
                    await task
            if server is not None:
                await server.stop()

    async def _start_command_server(
        self,
        targets: Sequence[ChannelTarget],
        store: BaselineStore,
        client: DiscordClient,
    ) -> SlackCommandServer | None:
        settings = self._settings
        if not (settings.slack_bot_token and settings.slack_signing_secret):
            logger.debug(
                "SLACK_BOT_TOKEN or SLACK_SIGNING_SECRET not set; skipping Slack slash command setup"
            )
            return None

        query = LastMessageQuery(targets, store, client)
        try:
            app = build_slack_app(settings.slack_bot_token, settings.slack_signing_secret, query)
            server = SlackCommandServer(app, port=settings.port)
            await server.start()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("Failed to start Slack app - %s", exc)
            return None
        return server

    async def _heartbeat_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            logger.info("heartbeat: running")

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError, RuntimeError):
                loop.add_signal_handler(sig, self.stop)

    def _remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError, RuntimeError):
                loop.remove_signal_handler(sig)
