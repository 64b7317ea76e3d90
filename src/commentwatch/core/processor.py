"""Core synchronization run.

This module is integration-agnostic. It only relies on ports for the remote
API, storage and notifications, enabling other adapters without changes here.

One run walks the whole hierarchy, classifies every observed comment, and
hands new and updated comments to the notification sink. The sink stores each
of them right before sending it, so a run that aborts leaves every queued but
unsent comment to be detected again by the next run. Fetch failures are
absorbed page by page; persistence and notification failures abort the run.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import aclosing
from functools import partial
from typing import Optional

from commentwatch.core.config import SyncConfig
from commentwatch.core.detector import ChangeDetector
from commentwatch.core.errors import RunTimeout
from commentwatch.core.fanout import HierarchicalFanOut
from commentwatch.core.models import CommentRecord, RunReport
from commentwatch.core.ports import ApiPort, NotifierPort, StoragePort
from commentwatch.core.sink import NotificationSink

LOGGER = logging.getLogger(__name__)


class SyncProcessor:
    """Orchestrates fan-out, change detection, persistence, and notifications."""

    def __init__(
        self,
        api: ApiPort,
        storage: StoragePort,
        notifier: NotifierPort,
        config: Optional[SyncConfig] = None,
    ) -> None:
        self._api = api
        self._notifier = notifier
        self._config = config or SyncConfig()
        self._detector = ChangeDetector(storage)

    async def run(self) -> RunReport:
        """Run one complete pass, honoring the configured run timeout."""

        if self._config.run_timeout is None:
            return await self._run()
        try:
            return await asyncio.wait_for(self._run(), timeout=self._config.run_timeout)
        except asyncio.TimeoutError as exc:
            raise RunTimeout(f"Run exceeded {self._config.run_timeout} seconds") from exc

    async def _run(self) -> RunReport:
        LOGGER.info("Finding new comments")
        started = time.monotonic()
        report = RunReport()
        fanout = HierarchicalFanOut(
            self._api,
            page_size=self._config.page_size,
            concurrency=self._config.concurrency,
            stats=report.fetch_stats,
        )

        sink = NotificationSink(
            self._notifier,
            maxsize=self._config.notification_queue_size,
            persist=partial(self._persist, report),
        )
        async with sink:
            async with aclosing(aiter(fanout)) as observations:
                async for observation in observations:
                    detection = self._detector.detect(observation)
                    if detection.changed:
                        await sink.submit(detection.record)
                    else:
                        report.count(detection)
        report.notified = sink.delivered
        report.duration = time.monotonic() - started

        if report.fetch_stats.total_failed:
            LOGGER.warning(
                "Run finished with %s dropped pages: %s",
                report.fetch_stats.total_failed,
                report.fetch_stats.failed,
            )
        LOGGER.info(
            "Done reading comments: observed=%s, new=%s, updated=%s, notified=%s in %.1fs",
            report.observed,
            report.new,
            report.updated,
            report.notified,
            report.duration,
        )
        return report

    def _persist(self, report: RunReport, record: CommentRecord) -> bool:
        detection = self._detector.apply(record)
        report.count(detection)
        return detection.changed
