"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional


def default_concurrency() -> int:
    """Number of processing units on the host, at least one."""

    return os.cpu_count() or 1


@dataclass(frozen=True)
class SyncConfig:
    """Settings for one synchronization run."""

    page_size: int = 50
    concurrency: int = field(default_factory=default_concurrency)
    # Queue between the detector and the single notification sender.
    notification_queue_size: int = 100
    run_timeout: Optional[float] = None


@dataclass(frozen=True)
class NotificationConfig:
    """Addressing consumed by notifier adapters."""

    sender: str
    recipient: str
