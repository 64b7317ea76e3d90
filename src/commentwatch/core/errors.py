"""Error hierarchy shared by the core and adapters.

Fetch errors are recoverable: the paginated stream absorbs them page by page.
Fatal errors abort the current run and are left to the watcher to report.
"""

from __future__ import annotations


class CommentWatchError(Exception):
    """Base class for every error raised by commentwatch."""


class ConfigError(CommentWatchError):
    """Configuration is missing or malformed."""


class FetchError(CommentWatchError):
    """One page could not be fetched from the remote API."""


class NetworkError(FetchError):
    """Transport failure, timeout, or non-2xx status from the remote API."""


class InvalidResponse(FetchError):
    """The response envelope could not be decoded into the expected items."""


class FatalSyncError(CommentWatchError):
    """Aborts the current synchronization run."""


class PersistenceError(FatalSyncError):
    """The comment store rejected a read or write."""


class NotificationError(FatalSyncError):
    """A notification could not be delivered."""


class RunTimeout(FatalSyncError):
    """The run exceeded its configured time limit."""
