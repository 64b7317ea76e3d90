from __future__ import annotations

import asyncio
import logging

import httpx
import pytest

from commentwatch import app
from commentwatch.adapters.smtp_notifier import SmtpNotifier
from commentwatch.adapters.telegram_bot_notifier import TelegramBotNotifier
from commentwatch.core.errors import ConfigError
from commentwatch.settings import Settings


def _with_client(action):
    async def run():
        async with httpx.AsyncClient() as http:
            return action(http)

    return asyncio.run(run())


def test_smtp_is_the_default_notifier() -> None:
    notifier = _with_client(lambda http: app._build_notifier(Settings(), http))
    assert isinstance(notifier, SmtpNotifier)


def test_bot_notifier_needs_token_and_chat() -> None:
    settings = Settings(notification_method="bot", bot_token="123:abc", bot_chat_id="42")
    notifier = _with_client(lambda http: app._build_notifier(settings, http))
    assert isinstance(notifier, TelegramBotNotifier)

    with pytest.raises(ConfigError):
        _with_client(lambda http: app._build_notifier(Settings(notification_method="bot", bot_chat_id="42"), http))


def test_redacting_formatter_masks_secret_values() -> None:
    formatter = app._RedactingFormatter(["s3cret"], fmt="%(message)s")
    record = logging.LogRecord("commentwatch", logging.INFO, __file__, 1, "login with s3cret", None, None)

    assert formatter.format(record) == "login with ***"


def test_redaction_values_come_from_the_environment(monkeypatch) -> None:
    monkeypatch.setenv("SMTP_PASSWORD", "hunter2")
    monkeypatch.delenv("BOT_API", raising=False)

    assert app._collect_redaction_values({}) == ["hunter2"]
    assert app._collect_redaction_values({"redact": {"enabled": False}}) == []


def test_invalid_cron_exits_with_configuration_error(monkeypatch) -> None:
    monkeypatch.setattr(app, "_print_banner", lambda: None)

    with pytest.raises(SystemExit) as excinfo:
        app._run(Settings(watcher_cron="every hour"))

    assert excinfo.value.code == 2


def test_unusable_database_exits_with_failure_status(monkeypatch, tmp_path) -> None:
    monkeypatch.setattr(app, "_print_banner", lambda: None)

    # A directory cannot be opened as a SQLite database.
    with pytest.raises(SystemExit) as excinfo:
        app._run(Settings(database_url=str(tmp_path)))

    assert excinfo.value.code == 1
