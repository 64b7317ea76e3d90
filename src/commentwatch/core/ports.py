"""Ports (interfaces) used by the core pipeline.

Ports define the minimal contracts for the remote API, storage and
notification adapters so that the core can be reused with different backends.
"""

from __future__ import annotations

import asyncio
from typing import AsyncIterable, Awaitable, Callable, ContextManager, Optional, Protocol, TypeVar

from commentwatch.core.models import Account, Claim, Comment, CommentRecord, FetchStats, Page

T = TypeVar("T")

# Fetches one page given (page, page_size); raises FetchError on failure.
PageFetcher = Callable[[int, int], Awaitable[Page[T]]]


class ApiPort(Protocol):
    """Streams over the remote account -> claim -> comment hierarchy."""

    def stream_accounts(
        self,
        page_size: int,
        limiter: Optional[asyncio.Semaphore] = None,
        stats: Optional[FetchStats] = None,
    ) -> AsyncIterable[Account]:
        ...

    def stream_claims(
        self,
        account_id: str,
        page_size: int,
        limiter: Optional[asyncio.Semaphore] = None,
        stats: Optional[FetchStats] = None,
    ) -> AsyncIterable[Claim]:
        ...

    def stream_comments(
        self,
        claim_id: str,
        page_size: int,
        limiter: Optional[asyncio.Semaphore] = None,
        stats: Optional[FetchStats] = None,
    ) -> AsyncIterable[Comment]:
        ...


class StoragePort(Protocol):
    """Storage operations required by the change detector."""

    def get_comment(self, comment_id: str) -> Optional[CommentRecord]:
        ...

    def insert_comment(self, record: CommentRecord) -> None:
        ...

    def delete_comment(self, comment_id: str) -> None:
        ...

    def transaction(self) -> ContextManager[None]:
        ...


class NotifierPort(Protocol):
    """Notification operations required by the notification sink."""

    async def send(self, record: CommentRecord) -> None:
        ...
