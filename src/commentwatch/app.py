"""Application entry point for the commentwatch watcher."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from typing import AsyncIterator, Optional

import httpx
from apscheduler.triggers.cron import CronTrigger
from art import tprint

from commentwatch.adapters.api_client import ApiClient
from commentwatch.adapters.smtp_notifier import SmtpNotifier
from commentwatch.adapters.sqlite_storage import SQLiteStorage
from commentwatch.adapters.telegram_bot_notifier import TelegramBotNotifier
from commentwatch.client import build_http_client
from commentwatch.core.errors import CommentWatchError, ConfigError, FetchError
from commentwatch.core.ports import NotifierPort
from commentwatch.core.processor import SyncProcessor
from commentwatch.scheduler import build_trigger, watch
from commentwatch.settings import Settings, load_settings

NAME = "COMMENTWATCH"
FONT = "tarty-1"

# Environment variables whose values never reach the logs.
DEFAULT_REDACTED = ["SMTP_PASSWORD", "BOT_API"]


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


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {"enabled": True, "patterns": DEFAULT_REDACTED})
    if not redact_cfg.get("enabled", False):
        return []
    values = []
    for name in redact_cfg.get("patterns", []):
        value = os.getenv(name)
        if value:
            values.append(value)
    return sorted(set(values), key=len, reverse=True)


def _configure_logging(config: dict) -> None:
    # Without a logging section the watcher logs INFO to the console.
    if not config.get("enabled", True):
        return

    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    secrets = _collect_redaction_values(config)
    formatter = _RedactingFormatter(secrets, fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/commentwatch.log")
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
    # httpx logs every request at INFO; keep it for debugging only.
    if level > logging.DEBUG:
        logging.getLogger("httpx").setLevel(logging.WARNING)


def _log_settings(settings: Settings) -> None:
    logger = logging.getLogger(__name__)
    logger.info("Loading config")
    for key, value in settings.describe().items():
        logger.info("%s = %s", key, value)


def _build_notifier(settings: Settings, http_client: httpx.AsyncClient) -> NotifierPort:
    # Select the notification adapter based on configuration.
    if settings.notification_method == "bot":
        if not settings.bot_token:
            raise ConfigError("BOT_API is required when NOTIFICATION_METHOD=bot")
        if not settings.bot_chat_id:
            raise ConfigError("BOT_CHAT_ID is required when NOTIFICATION_METHOD=bot")
        return TelegramBotNotifier(
            bot_token=settings.bot_token,
            chat_id=settings.bot_chat_id,
            http_client=http_client,
        )
    return SmtpNotifier(
        address=settings.smtp_address,
        addresses=settings.notification_config(),
        username=settings.smtp_username,
        password=settings.smtp_password,
        starttls=settings.smtp_starttls,
        timeout=settings.request_timeout,
    )


@asynccontextmanager
async def _open_processor(settings: Settings) -> AsyncIterator[SyncProcessor]:
    """Open storage, HTTP client and notifier for as long as the caller runs."""

    logger = logging.getLogger(__name__)
    storage = SQLiteStorage(settings.database_url)
    storage.init_db()
    logger.info("Storage ready at %s (%s comments known)", settings.database_url, storage.count_comments())

    try:
        async with build_http_client(settings.request_timeout) as http_client:
            notifier = _build_notifier(settings, http_client)
            logger.info("Selected notification method - %s", settings.notification_method)
            try:
                yield SyncProcessor(
                    api=ApiClient(settings.api_url, http_client),
                    storage=storage,
                    notifier=notifier,
                    config=settings.sync_config(),
                )
            finally:
                if isinstance(notifier, SmtpNotifier):
                    notifier.close()
    finally:
        storage.close()


async def _watch(settings: Settings, trigger: CronTrigger) -> None:
    async with _open_processor(settings) as processor:
        logging.getLogger(__name__).info("Starting application")
        await watch(processor.run, trigger)


async def _sync_once(settings: Settings) -> None:
    async with _open_processor(settings) as processor:
        await processor.run()


async def _check(settings: Settings) -> int:
    """Fetch the first account page to verify the API is reachable."""

    async with build_http_client(settings.request_timeout) as http_client:
        api = ApiClient(settings.api_url, http_client)
        try:
            page = await api.list_accounts(1, settings.page_size)
        except FetchError as exc:
            print(f"API check failed for {settings.api_url}: {exc}")
            return 1
    print(f"API at {settings.api_url} is reachable: {page.total_items} accounts")
    return 0


def _run(settings: Settings) -> None:
    _print_banner()
    try:
        trigger = build_trigger(settings.watcher_cron)
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        sys.exit(2)
    logger = logging.getLogger(__name__)
    logger.info("Starting commentwatch")
    try:
        asyncio.run(_watch(settings, trigger))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    except CommentWatchError:
        logger.exception("Watcher stopped")
        sys.exit(1)


def _once(settings: Settings) -> int:
    try:
        asyncio.run(_sync_once(settings))
    except CommentWatchError:
        logging.getLogger(__name__).exception("Synchronization run failed")
        return 1
    return 0


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="commentwatch")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start the scheduled watcher")
    subparsers.add_parser("once", help="Run a single synchronization pass and exit")
    subparsers.add_parser("check", help="Verify the comment API is reachable")

    args = parser.parse_args(argv)

    try:
        settings = load_settings()
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        sys.exit(2)

    _configure_logging(settings.logging)
    _log_settings(settings)

    if args.command == "check":
        sys.exit(asyncio.run(_check(settings)))
    if args.command == "once":
        sys.exit(_once(settings))
    _run(settings)


if __name__ == "__main__":
    main()
