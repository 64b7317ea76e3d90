"""Runtime configuration for commentwatch.

Connection settings come from the environment (optionally through a ``.env``
file read by python-dotenv) so secrets stay out of the repo. The optional
``config.json`` only carries the logging section.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from dotenv import load_dotenv

from commentwatch.core.config import NotificationConfig, SyncConfig, default_concurrency
from commentwatch.core.errors import ConfigError

LOGGER = logging.getLogger(__name__)

# Logging settings are loaded from this file when it exists.
DEFAULT_CONFIG_PATH = "config.json"

NOTIFICATION_METHODS = ("smtp", "bot")

# Keys echoed on startup; secrets are deliberately absent.
DISPLAYED_KEYS = (
    "API_URL",
    "DATABASE_URL",
    "PAGE_SIZE",
    "FANOUT_CONCURRENCY",
    "REQUEST_TIMEOUT",
    "RUN_TIMEOUT",
    "NOTIFICATION_METHOD",
    "SMTP_ADDRESS",
    "SMTP_FROM",
    "SMTP_TO",
    "WATCHER_CRON",
)


@dataclass(frozen=True)
class Settings:
    api_url: str = "http://127.0.0.1:5279"
    database_url: str = "data.db"
    page_size: int = 50
    fanout_concurrency: int = field(default_factory=default_concurrency)
    request_timeout: float = 30.0
    run_timeout: Optional[float] = None
    notification_method: str = "smtp"
    smtp_address: str = "127.0.0.1:1025"
    smtp_from: str = "notifier@lbry.local"
    smtp_to: str = "user@lbry.local"
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_starttls: bool = False
    bot_token: Optional[str] = None
    bot_chat_id: Optional[str] = None
    # Runs at the top of every hour; six fields, seconds first.
    watcher_cron: str = "0 0 * * * *"
    logging: dict = field(default_factory=dict)

    def sync_config(self) -> SyncConfig:
        return SyncConfig(
            page_size=self.page_size,
            concurrency=self.fanout_concurrency,
            run_timeout=self.run_timeout,
        )

    def notification_config(self) -> NotificationConfig:
        return NotificationConfig(sender=self.smtp_from, recipient=self.smtp_to)

    def describe(self) -> dict[str, str]:
        """Non-secret settings keyed by their environment variable name."""

        values = {
            "API_URL": self.api_url,
            "DATABASE_URL": self.database_url,
            "PAGE_SIZE": self.page_size,
            "FANOUT_CONCURRENCY": self.fanout_concurrency,
            "REQUEST_TIMEOUT": self.request_timeout,
            "RUN_TIMEOUT": self.run_timeout,
            "NOTIFICATION_METHOD": self.notification_method,
            "SMTP_ADDRESS": self.smtp_address,
            "SMTP_FROM": self.smtp_from,
            "SMTP_TO": self.smtp_to,
            "WATCHER_CRON": self.watcher_cron,
        }
        return {key: str(values[key]) for key in DISPLAYED_KEYS}


def _load_json_config(path: str) -> dict:
    """Load config.json if present; a missing file means defaults."""

    if not os.path.exists(path):
        return {}

    try:
        with open(path, "r", encoding="utf-8") as handle:
            config = json.load(handle)
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Unable to read config file {path}: {exc}") from exc
    if not isinstance(config, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")
    return config


def _positive_int(env: Mapping[str, str], name: str, default: int) -> int:
    # Malformed numbers fall back to the default instead of failing startup.
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        LOGGER.warning("Ignoring invalid %s=%r, using %s", name, raw, default)
        return default
    if value < 1:
        LOGGER.warning("Ignoring non-positive %s=%r, using %s", name, raw, default)
        return default
    return value


def _seconds(env: Mapping[str, str], name: str, default: Optional[float]) -> Optional[float]:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number of seconds, got {raw!r}") from exc
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {raw!r}")
    return value


def _flag(env: Mapping[str, str], name: str) -> bool:
    return env.get(name, "").strip().lower() in {"1", "true", "yes", "on"}


def load_settings(
    environ: Optional[Mapping[str, str]] = None,
    config_path: Optional[str] = None,
) -> Settings:
    """Build Settings from the environment and the optional config.json.

    When ``environ`` is omitted, ``.env`` is loaded into the process
    environment first.
    """

    if environ is None:
        load_dotenv()
        environ = os.environ
    env = environ
    defaults = Settings()

    path = config_path or env.get("CONFIG_PATH", DEFAULT_CONFIG_PATH)
    config = _load_json_config(path)

    method = env.get("NOTIFICATION_METHOD", defaults.notification_method).strip().lower()
    if method not in NOTIFICATION_METHODS:
        raise ConfigError(f"NOTIFICATION_METHOD must be one of {', '.join(NOTIFICATION_METHODS)}, got {method!r}")

    return Settings(
        api_url=env.get("API_URL", defaults.api_url),
        database_url=env.get("DATABASE_URL", defaults.database_url),
        page_size=_positive_int(env, "PAGE_SIZE", defaults.page_size),
        fanout_concurrency=_positive_int(env, "FANOUT_CONCURRENCY", defaults.fanout_concurrency),
        request_timeout=_seconds(env, "REQUEST_TIMEOUT", defaults.request_timeout),
        run_timeout=_seconds(env, "RUN_TIMEOUT", defaults.run_timeout),
        notification_method=method,
        smtp_address=env.get("SMTP_ADDRESS", defaults.smtp_address),
        smtp_from=env.get("SMTP_FROM", defaults.smtp_from),
        smtp_to=env.get("SMTP_TO", defaults.smtp_to),
        smtp_username=env.get("SMTP_USERNAME") or None,
        smtp_password=env.get("SMTP_PASSWORD") or None,
        smtp_starttls=_flag(env, "SMTP_STARTTLS"),
        bot_token=env.get("BOT_API") or None,
        bot_chat_id=env.get("BOT_CHAT_ID") or None,
        watcher_cron=env.get("WATCHER_CRON", defaults.watcher_cron),
        logging=config.get("logging", {}),
    )
