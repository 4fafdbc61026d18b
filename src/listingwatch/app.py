"""Application entry point for the listingwatch bot."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

from art import tprint

from listingwatch.adapters.json_storage import JsonSubscriberStore
from listingwatch.adapters.sqlite_storage import SQLiteSubscriberStore
from listingwatch.adapters.telegram_bot_transport import TelegramBotTransport
from listingwatch.adapters.telethon_transport import TelethonTransport, build_client
from listingwatch.core.filters import matching_listing
from listingwatch.core.manager import SubscriptionManager
from listingwatch.settings import Settings, load_settings

NAME = "LISTINGWATCH"
FONT = "tarty-1"


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(settings: Settings) -> list[str]:
    # The bot token is part of every Bot API URL, so it is always masked.
    values = [settings.bot_token, settings.api_hash or ""]
    redact_cfg = settings.logging.get("redact", {})
    for name in redact_cfg.get("patterns", []):
        value = os.getenv(name)
        if value:
            values.append(value)
    return sorted({value for value in values if value}, key=len, reverse=True)


def _configure_logging(settings: Settings) -> None:
    config = settings.logging
    if not config.get("enabled", True):
        return

    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    formatter = _RedactingFormatter(_collect_redaction_values(settings), fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/listingwatch.log")
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        max_bytes = int(file_cfg.get("max_bytes", 5 * 1024 * 1024))
        backup_count = int(file_cfg.get("backup_count", 5))
        file_handler = RotatingFileHandler(
            path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)


def build_store(settings: Settings):
    """Select the storage adapter based on configuration."""

    if settings.storage_backend == "json":
        return JsonSubscriberStore(settings.storage_path)
    store = SQLiteSubscriberStore(settings.storage_path)
    store.init_db()
    return store


def build_transport(settings: Settings):
    """Select the transport adapter based on configuration."""

    if settings.transport == "telethon":
        client = build_client(settings.session_name, settings.api_id or "", settings.api_hash or "")
        return TelethonTransport(client, settings.bot_token)
    return TelegramBotTransport(settings.bot_token)


def build_manager(settings: Settings) -> SubscriptionManager:
    return SubscriptionManager(build_store(settings), build_transport(settings), settings.manager_config())


async def _serve(settings: Settings) -> None:
    async with build_manager(settings) as manager:
        await manager.run_until_stopped()


def _run(settings: Settings) -> None:
    _print_banner()
    logger = logging.getLogger(__name__)
    logger.info("Starting listingwatch (transport=%s, storage=%s)", settings.transport, settings.storage_backend)
    try:
        asyncio.run(_serve(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")


async def _notify(settings: Settings, args: argparse.Namespace) -> int:
    selector = matching_listing(args.url, args.listing_text or args.message)
    async with build_manager(settings) as manager:
        outcomes = await manager.notify(selector, args.message, args.picture)
    for outcome in outcomes:
        detail = f" ({outcome.error})" if outcome.error else ""
        degraded = " degraded" if outcome.degraded else ""
        print(f"{outcome.client_id}: {outcome.status.value}{degraded}{detail}")
    return 1 if any(not outcome.ok for outcome in outcomes) else 0


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="listingwatch")
    parser.add_argument("--config", help="Path to config.json")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start the bot and answer chat commands")
    notify_parser = subparsers.add_parser("notify", help="Push one listing notification to matching subscribers")
    notify_parser.add_argument("--url", required=True, help="Query URL the listing was found under")
    notify_parser.add_argument("--message", required=True, help="Notification text")
    notify_parser.add_argument("--picture", help="Image URL sent with the notification")
    notify_parser.add_argument("--listing-text", help="Text checked against keyword filters (defaults to --message)")

    args = parser.parse_args(argv)
    settings = load_settings(args.config)
    _configure_logging(settings)

    if args.command == "notify":
        sys.exit(asyncio.run(_notify(settings, args)))
    _run(settings)


if __name__ == "__main__":
    main()
