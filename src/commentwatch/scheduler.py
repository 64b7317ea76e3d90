"""Cron-driven run loop.

Runs never overlap: the next fire time is only looked up once the current run
has finished. A run that overruns its next fire time delays that trigger
instead of skipping it; any further fire times missed during the same run
are coalesced into that one delayed run.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Awaitable, Callable

from apscheduler.triggers.cron import CronTrigger

from commentwatch.core.errors import ConfigError

LOGGER = logging.getLogger(__name__)

_CRON_FIELDS = ("second", "minute", "hour", "day", "month", "day_of_week", "year")

# Cron triggers resolve to whole seconds; nudging past the previous fire time
# makes the lookup return the one after it.
_AFTER = timedelta(microseconds=1)


def build_trigger(expression: str, tz: tzinfo = timezone.utc) -> CronTrigger:
    """Parse a 5-field crontab or a 6/7-field (seconds first) expression."""

    fields = expression.split()
    try:
        if len(fields) == 5:
            return CronTrigger.from_crontab(expression, timezone=tz)
        if len(fields) in (6, 7):
            return CronTrigger(timezone=tz, **dict(zip(_CRON_FIELDS, fields)))
    except ValueError as exc:
        raise ConfigError(f"Invalid cron expression {expression!r}: {exc}") from exc
    raise ConfigError(f"Cron expression must have 5, 6 or 7 fields, got {expression!r}")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def _run_guarded(run_pass: Callable[[], Awaitable[object]]) -> None:
    try:
        await run_pass()
    except Exception:
        # A failed run leaves no state behind but the store; the next trigger starts fresh.
        LOGGER.exception("Synchronization run failed")


async def watch(
    run_pass: Callable[[], Awaitable[object]],
    trigger: CronTrigger,
    clock: Callable[[], datetime] = _utcnow,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> None:
    """Run once immediately, then once per trigger fire time, forever."""

    previous = clock()
    LOGGER.info("Starting task to notify new comments")
    await _run_guarded(run_pass)
    LOGGER.info("Done task for notifying new comments")

    while True:
        next_fire = trigger.get_next_fire_time(previous, previous + _AFTER)
        if next_fire is None:
            LOGGER.info("Schedule has no further fire times, stopping")
            return

        now = clock()
        if next_fire > now:
            LOGGER.info("Next run at %s", next_fire.isoformat())
            await sleep((next_fire - now).total_seconds())
            previous = next_fire
        else:
            LOGGER.warning("Previous run overran the %s trigger, starting now", next_fire.isoformat())
            previous = now

        LOGGER.info("Starting task to notify new comments")
        await _run_guarded(run_pass)
        LOGGER.info("Done task for notifying new comments")
