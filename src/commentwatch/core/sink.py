"""Serialized notification delivery.

Detection runs concurrently with fetching, but the outbound channel is a
single shared connection. The sink therefore owns one sender task that drains
a bounded queue, so at most one delivery is in flight at any time.

When a ``persist`` callback is given, the sender calls it for each record
right before delivering it and skips delivery when it returns False. A record
is therefore only stored once nothing queued ahead of it is still pending, and
records discarded from the queue were never stored.

The first failure ends the run: it is re-raised by the next ``submit`` call
and by ``aclose``, and anything still queued is discarded.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from commentwatch.core.errors import FatalSyncError, NotificationError
from commentwatch.core.models import CommentRecord
from commentwatch.core.ports import NotifierPort

LOGGER = logging.getLogger(__name__)

_STOP = object()


class NotificationSink:
    """Single-consumer queue in front of a notifier."""

    def __init__(
        self,
        notifier: NotifierPort,
        maxsize: int = 100,
        persist: Optional[Callable[[CommentRecord], bool]] = None,
    ) -> None:
        self._notifier = notifier
        self._persist = persist
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._sender: Optional[asyncio.Task] = None
        self._failure: Optional[Exception] = None
        self.delivered = 0

    async def __aenter__(self) -> "NotificationSink":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            await self.aclose()
        else:
            await self.abort()

    def start(self) -> None:
        if self._sender is None:
            self._sender = asyncio.create_task(self._drain())

    async def submit(self, record: CommentRecord) -> None:
        """Queue one record for delivery, waiting while the queue is full."""

        self._raise_failure()
        if self._sender is None:
            raise RuntimeError("NotificationSink.submit called before start()")
        await self._queue.put(record)

    async def aclose(self) -> None:
        """Deliver everything queued, stop the sender, and surface failures."""

        if self._sender is not None:
            await self._queue.put(_STOP)
            await self._sender
            self._sender = None
        self._raise_failure()

    async def abort(self) -> None:
        """Stop the sender without delivering what is still queued."""

        if self._sender is not None:
            self._sender.cancel()
            await asyncio.gather(self._sender, return_exceptions=True)
            self._sender = None

    def _raise_failure(self) -> None:
        if self._failure is not None:
            raise self._failure

    def _fail(self, failure: Exception) -> None:
        self._failure = failure
        LOGGER.error("Notification delivery stopped: %s", failure)

    async def _drain(self) -> None:
        while True:
            record = await self._queue.get()
            if record is _STOP:
                return
            if self._failure is not None:
                # Keep draining so producers blocked on a full queue wake up.
                continue

            if self._persist is not None:
                try:
                    deliver = self._persist(record)
                except Exception as exc:
                    self._fail(exc)
                    continue
                if not deliver:
                    continue

            try:
                LOGGER.info("Sending notification for %s", record.commenter_name)
                await self._notifier.send(record)
            except FatalSyncError as exc:
                self._fail(exc)
            except Exception as exc:
                failure = NotificationError(f"Unable to deliver notification for comment {record.id}: {exc}")
                failure.__cause__ = exc
                self._fail(failure)
            else:
                self.delivered += 1
