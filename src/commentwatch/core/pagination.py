"""Paginated stream over one remote query.

Page 1 is fetched first to learn how many pages exist. The remaining pages
are fetched concurrently and their items are emitted as each fetch completes,
so only page 1 keeps its position at the front of the stream.

A page that fails to fetch contributes no items. The failure is logged and
counted in FetchStats rather than retried, so completeness is only guaranteed
when every page succeeds.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Generic, Optional, TypeVar

from commentwatch.core.errors import FetchError
from commentwatch.core.models import FetchStats, Page
from commentwatch.core.ports import PageFetcher

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class PaginatedStream(Generic[T]):
    """Lazily fetched, flattened view over every page of one query.

    Each ``async for`` starts a fresh pass from page 1. An optional limiter
    bounds how many requests of this stream are outstanding at once; the
    fan-out shares one limiter between every stream of a hierarchy level.
    """

    def __init__(
        self,
        fetch_page: PageFetcher[T],
        page_size: int,
        kind: str = "items",
        limiter: Optional[asyncio.Semaphore] = None,
        stats: Optional[FetchStats] = None,
    ) -> None:
        if page_size < 1:
            raise ValueError(f"page_size must be positive, got {page_size}")
        self._fetch_page = fetch_page
        self._page_size = page_size
        self._kind = kind
        self._limiter = limiter
        self._stats = stats

    def __aiter__(self) -> AsyncIterator[T]:
        return self._iterate()

    async def _fetch(self, page: int) -> Page[T]:
        if self._limiter is None:
            result = await self._fetch_page(page, self._page_size)
        else:
            async with self._limiter:
                result = await self._fetch_page(page, self._page_size)
        if self._stats is not None:
            self._stats.record_success(self._kind)
        return result

    def _record_failure(self, page: int, exc: FetchError) -> None:
        LOGGER.warning("Dropping %s page %s: %s", self._kind, page, exc)
        if self._stats is not None:
            self._stats.record_failure(self._kind)

    async def _fetch_items(self, page: int) -> list[T]:
        try:
            result = await self._fetch(page)
        except FetchError as exc:
            self._record_failure(page, exc)
            return []
        return result.items

    async def _iterate(self) -> AsyncIterator[T]:
        try:
            first = await self._fetch(1)
        except FetchError as exc:
            # Without page 1 the page count is unknown, so nothing is emitted.
            self._record_failure(1, exc)
            return

        for item in first.items:
            yield item

        if first.total_pages < 2:
            return

        tasks = [
            asyncio.create_task(self._fetch_items(page))
            for page in range(2, first.total_pages + 1)
        ]
        try:
            for next_page in asyncio.as_completed(tasks):
                for item in await next_page:
                    yield item
        finally:
            # Early exit by the consumer leaves fetches behind; cancel them.
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
