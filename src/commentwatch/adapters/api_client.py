"""Remote comment API adapter.

Every query is a POST of ``{"method": ..., "params": ...}`` to a single
endpoint answering with a paginated ``result`` envelope. Each call fetches
exactly one page and never retries; retry and loss policy belongs to the
paginated stream.
"""

from __future__ import annotations

import asyncio
import logging
from functools import partial
from typing import Callable, Optional, TypeVar

import httpx

from commentwatch.adapters.api_mapper import account_from_api, claim_from_api, comment_from_api, page_from_api
from commentwatch.core.errors import InvalidResponse, NetworkError
from commentwatch.core.models import Account, Claim, Comment, FetchStats, Page
from commentwatch.core.pagination import PaginatedStream

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class ApiClient:
    """PageFetcher implementation backed by an ``httpx.AsyncClient``.

    The HTTP client is owned by the caller, which also sets the per-request
    timeout (see ``commentwatch.client.build_http_client``).
    """

    def __init__(self, url: str, http_client: httpx.AsyncClient) -> None:
        self._url = url
        self._http = http_client

    @property
    def url(self) -> str:
        return self._url

    async def _request(self, method: str, params: dict, parse_item: Callable[[dict], T]) -> Page[T]:
        payload = {"method": method, "params": params}
        try:
            response = await self._http.post(self._url, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise NetworkError(f"{method} returned HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise NetworkError(f"{method} request failed: {exc!r}") from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise InvalidResponse(f"{method} response is not JSON") from exc
        return page_from_api(body, parse_item)

    async def _logged_request(
        self,
        label: str,
        method: str,
        params: dict,
        parse_item: Callable[[dict], T],
    ) -> Page[T]:
        page = params["page"]
        LOGGER.debug("Fetching %s in page %s", label, page)
        try:
            result = await self._request(method, params, parse_item)
        except (NetworkError, InvalidResponse) as exc:
            LOGGER.debug("Error fetching %s in page %s: %s", label, page, exc)
            raise
        LOGGER.debug("Done fetching %s in page %s", label, page)
        return result

    async def list_accounts(self, page: int, page_size: int) -> Page[Account]:
        return await self._logged_request(
            "accounts",
            "account_list",
            {"page": page, "page_size": page_size},
            account_from_api,
        )

    async def list_claims(self, account_id: str, page: int, page_size: int) -> Page[Claim]:
        return await self._logged_request(
            f"claims of account {account_id}",
            "claim_list",
            {"account_id": account_id, "page": page, "page_size": page_size},
            claim_from_api,
        )

    async def list_comments(self, claim_id: str, page: int, page_size: int) -> Page[Comment]:
        return await self._logged_request(
            f"comments of claim {claim_id}",
            "comment_list",
            {"claim_id": claim_id, "page": page, "page_size": page_size},
            comment_from_api,
        )

    def stream_accounts(
        self,
        page_size: int,
        limiter: Optional[asyncio.Semaphore] = None,
        stats: Optional[FetchStats] = None,
    ) -> PaginatedStream[Account]:
        return PaginatedStream(self.list_accounts, page_size, kind="accounts", limiter=limiter, stats=stats)

    def stream_claims(
        self,
        account_id: str,
        page_size: int,
        limiter: Optional[asyncio.Semaphore] = None,
        stats: Optional[FetchStats] = None,
    ) -> PaginatedStream[Claim]:
        return PaginatedStream(
            partial(self.list_claims, account_id),
            page_size,
            kind="claims",
            limiter=limiter,
            stats=stats,
        )

    def stream_comments(
        self,
        claim_id: str,
        page_size: int,
        limiter: Optional[asyncio.Semaphore] = None,
        stats: Optional[FetchStats] = None,
    ) -> PaginatedStream[Comment]:
        return PaginatedStream(
            partial(self.list_comments, claim_id),
            page_size,
            kind="comments",
            limiter=limiter,
            stats=stats,
        )
