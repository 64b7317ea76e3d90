"""Bounded concurrent walk of the account -> claim -> comment hierarchy.

Each level is expanded with ``bounded_flat_map``: a producer task pulls items
from upstream, at most ``limit`` expansions run at once, and their results
reach the consumer through a bounded queue. A full queue blocks the
expansions, which in turn stops the producer from pulling further upstream.

Results surface in completion order. Nothing here orders siblings.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import aclosing
from typing import AsyncIterable, AsyncIterator, Callable, Optional, TypeVar

from commentwatch.core.config import default_concurrency
from commentwatch.core.models import Account, Claim, FetchStats, Observation
from commentwatch.core.ports import ApiPort

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")
U = TypeVar("U")

_ITEM = "item"
_ERROR = "error"
_DONE = "done"


async def bounded_flat_map(
    source: AsyncIterable[T],
    expand: Callable[[T], AsyncIterable[U]],
    limit: int,
    buffer: Optional[int] = None,
) -> AsyncIterator[U]:
    """Flatten ``expand(item)`` for every upstream item, ``limit`` at a time.

    The sequence ends once the source is exhausted and every expansion has
    finished. An exception raised by the source or by an expansion is
    re-raised to the consumer; leaving the loop early cancels all
    outstanding work.
    """

    if limit < 1:
        raise ValueError(f"limit must be positive, got {limit}")

    queue: asyncio.Queue = asyncio.Queue(maxsize=buffer or limit)
    slots = asyncio.Semaphore(limit)
    workers: set[asyncio.Task] = set()

    async def _expand(item: T) -> None:
        try:
            async with aclosing(aiter(expand(item))) as results:
                async for result in results:
                    await queue.put((_ITEM, result))
        except Exception as exc:
            await queue.put((_ERROR, exc))
        finally:
            slots.release()

    async def _produce() -> None:
        try:
            async with aclosing(aiter(source)) as items:
                async for item in items:
                    await slots.acquire()
                    worker = asyncio.create_task(_expand(item))
                    workers.add(worker)
                    worker.add_done_callback(workers.discard)
            if workers:
                await asyncio.wait(set(workers))
        except Exception as exc:
            await queue.put((_ERROR, exc))
            return
        await queue.put((_DONE, None))

    producer = asyncio.create_task(_produce())
    try:
        while True:
            kind, value = await queue.get()
            if kind == _DONE:
                break
            if kind == _ERROR:
                raise value
            yield value
    finally:
        producer.cancel()
        for worker in list(workers):
            worker.cancel()
        await asyncio.gather(producer, *workers, return_exceptions=True)


class HierarchicalFanOut:
    """Flattened stream of observations over every account, claim and comment.

    ``concurrency`` caps both the number of in-flight expansions and the
    number of outstanding list requests at the claim level and, separately,
    at the comment level. It defaults to the host's processing unit count.
    """

    def __init__(
        self,
        api: ApiPort,
        page_size: int,
        concurrency: Optional[int] = None,
        stats: Optional[FetchStats] = None,
    ) -> None:
        self._api = api
        self._page_size = page_size
        self._concurrency = concurrency or default_concurrency()
        self._stats = stats

    @property
    def concurrency(self) -> int:
        return self._concurrency

    def __aiter__(self) -> AsyncIterator[Observation]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Observation]:
        claim_requests = asyncio.Semaphore(self._concurrency)
        comment_requests = asyncio.Semaphore(self._concurrency)

        async def claims_of(account: Account) -> AsyncIterator[tuple[Account, Claim]]:
            LOGGER.debug("Expanding claims of account %s", account.id)
            claims = self._api.stream_claims(
                account.id,
                self._page_size,
                limiter=claim_requests,
                stats=self._stats,
            )
            async for claim in claims:
                yield account, claim

        async def comments_of(parent: tuple[Account, Claim]) -> AsyncIterator[Observation]:
            account, claim = parent
            LOGGER.debug("Expanding comments of claim %s", claim.id)
            comments = self._api.stream_comments(
                claim.id,
                self._page_size,
                limiter=comment_requests,
                stats=self._stats,
            )
            async for comment in comments:
                yield Observation(account=account, claim=claim, comment=comment)

        accounts = self._api.stream_accounts(self._page_size, stats=self._stats)
        claims = bounded_flat_map(accounts, claims_of, self._concurrency)
        observations = bounded_flat_map(claims, comments_of, self._concurrency)
        async with aclosing(observations):
            async for observation in observations:
                yield observation
