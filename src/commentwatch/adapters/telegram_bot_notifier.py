"""Telegram Bot API notification adapter.

Uses the Bot API for delivery so notifications can be routed via a bot chat
instead of e-mail.
"""

from __future__ import annotations

import httpx

from commentwatch.adapters.notification_formatting import format_html
from commentwatch.core.errors import NotificationError
from commentwatch.core.models import CommentRecord


class TelegramBotNotifier:
    """Notifier adapter that sends messages via the Telegram Bot API."""

    def __init__(self, bot_token: str, chat_id: str, http_client: httpx.AsyncClient) -> None:
        self._bot_token = bot_token
        self._chat_id = chat_id
        self._http = http_client

    def _endpoint(self) -> str:
        # The Bot API endpoint is deterministic and derived from the token.
        return f"https://api.telegram.org/bot{self._bot_token}/sendMessage"

    async def send(self, record: CommentRecord) -> None:
        """Send the formatted notification via the Bot API."""

        payload = {
            "chat_id": self._chat_id,
            "text": format_html(record),
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }
        try:
            response = await self._http.post(self._endpoint(), json=payload)
        except httpx.HTTPError as exc:
            raise NotificationError(f"Bot API request failed: {exc!r}") from exc
        if response.status_code != 200:
            raise NotificationError(f"Bot API error {response.status_code}: {response.text}")
