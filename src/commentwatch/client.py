"""HTTP client factory for commentwatch.

One ``httpx.AsyncClient`` is shared by the API adapter and the Bot API
notifier for the whole process, so connections are pooled across runs.
"""

from __future__ import annotations

import logging

import httpx

from commentwatch import __version__


def build_http_client(timeout: float) -> httpx.AsyncClient:
    """Create the shared async HTTP client.

    ``timeout`` applies to every request (connect, read, write and pool wait)
    so one stalled request cannot hold a run forever.
    """

    logging.getLogger(__name__).debug("Initializing HTTP client (timeout=%ss)", timeout)

    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout),
        headers={"User-Agent": f"commentwatch/{__version__}"},
    )
