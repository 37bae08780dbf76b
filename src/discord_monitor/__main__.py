"""Command line entry point."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys

from dotenv import load_dotenv

from .app import MonitorApp
from .config import Settings
from .errors import ConfigError
from .utils import configure_logging

_OVERRIDES = {
    "discord_token": "DISCORD_TOKEN",
    "channels": "CHANNELS_CONFIG",
    "baselines": "BASELINES_PATH",
    "logs_dir": "LOGS_DIR",
    "poll_interval_ms": "POLL_INTERVAL_MS",
    "log_level": "LOG_LEVEL",
    "log_format": "LOG_FORMAT",
}


def main() -> None:
    load_dotenv()

    parser = argparse.ArgumentParser(
        description="Poll Discord channels, archive new messages and forward them to Slack"
    )
    parser.add_argument(
        "--discord-token",
        help="Discord Authorization header value. Can be passed via DISCORD_TOKEN",
    )
    parser.add_argument("--channels", help="Path to channels.json (CHANNELS_CONFIG)")
    parser.add_argument("--baselines", help="Path to legacy baselines.json (BASELINES_PATH)")
    parser.add_argument("--logs-dir", help="Directory for per-channel logs (LOGS_DIR)")
    parser.add_argument("--poll-interval-ms", help="Poll interval in milliseconds (POLL_INTERVAL_MS)")
    parser.add_argument(
        "--write-enriched-config",
        action="store_true",
        help="Persist baselines and enriched names to channels.json (WRITE_ENRICHED_CONFIG)",
    )
    parser.add_argument("--log-level", help="Logging level (LOG_LEVEL)")
    parser.add_argument("--log-format", choices=("text", "json"), help="Log format (LOG_FORMAT)")
    args = parser.parse_args()

    environ = dict(os.environ)
    for attr, variable in _OVERRIDES.items():
        value = getattr(args, attr)
        if value:
            environ[variable] = str(value)
    if args.write_enriched_config:
        environ["WRITE_ENRICHED_CONFIG"] = "true"

    configure_logging(environ.get("LOG_LEVEL") or "INFO", environ.get("LOG_FORMAT") or "text")

    try:
        settings = Settings.from_env(environ)
    except ConfigError as exc:
        parser.error(f"{exc}. Pass --discord-token or set it in .env")

    app = MonitorApp(settings)
    try:
        asyncio.run(app.run())
    except ConfigError as exc:
        logging.getLogger(__name__).error("%s", exc)
        sys.exit(1)
    except KeyboardInterrupt:
        logging.getLogger(__name__).info("Stopped at user request")


if __name__ == "__main__":
    main()
