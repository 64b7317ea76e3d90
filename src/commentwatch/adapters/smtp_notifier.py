"""SMTP e-mail notification adapter.

Sends one plain text e-mail per new or updated comment. The SMTP session is
opened lazily and reused across sends; the notification sink guarantees only
one send runs at a time, so the connection is never shared concurrently.
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
from typing import Optional

from commentwatch.adapters.notification_formatting import build_email
from commentwatch.core.config import NotificationConfig
from commentwatch.core.errors import NotificationError
from commentwatch.core.models import CommentRecord

LOGGER = logging.getLogger(__name__)


def parse_address(address: str, default_port: int = 25) -> tuple[str, int]:
    """Split ``host:port`` into its parts."""

    host, sep, port = address.rpartition(":")
    if not sep:
        return address, default_port
    try:
        return host, int(port)
    except ValueError:
        raise ValueError(f"Invalid SMTP port in {address!r}") from None


class SmtpNotifier:
    """Notifier adapter that delivers e-mails through an SMTP relay."""

    def __init__(
        self,
        address: str,
        addresses: NotificationConfig,
        username: Optional[str] = None,
        password: Optional[str] = None,
        starttls: bool = False,
        timeout: float = 30.0,
    ) -> None:
        self._host, self._port = parse_address(address)
        self._addresses = addresses
        self._username = username
        self._password = password
        self._starttls = starttls
        self._timeout = timeout
        self._smtp: Optional[smtplib.SMTP] = None

    def _connection(self) -> smtplib.SMTP:
        if self._smtp is None:
            LOGGER.debug("Connecting to SMTP relay %s:%s", self._host, self._port)
            smtp = smtplib.SMTP(self._host, self._port, local_hostname="localhost", timeout=self._timeout)
            if self._starttls:
                smtp.starttls()
            if self._username:
                smtp.login(self._username, self._password or "")
            self._smtp = smtp
        return self._smtp

    def _reset(self) -> None:
        if self._smtp is None:
            return
        try:
            self._smtp.quit()
        except (smtplib.SMTPException, OSError) as exc:
            LOGGER.debug("Ignoring error while closing SMTP session: %s", exc)
        self._smtp = None

    def _send_blocking(self, record: CommentRecord) -> None:
        message = build_email(record, self._addresses)
        try:
            self._connection().send_message(message)
        except smtplib.SMTPServerDisconnected:
            # Reused sessions time out on the server side; reconnect once.
            self._smtp = None
            self._connection().send_message(message)

    async def send(self, record: CommentRecord) -> None:
        """Send the e-mail for one record without blocking the event loop."""

        try:
            await asyncio.to_thread(self._send_blocking, record)
        except (smtplib.SMTPException, OSError) as exc:
            self._reset()
            raise NotificationError(f"Unable to send mail for comment {record.id}: {exc}") from exc

    def close(self) -> None:
        self._reset()
