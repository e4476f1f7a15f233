"""
HTTP fetching.

Every network request made by the pipeline goes through this module. The
archive stage may layer a sequential fallback chain on top of a direct fetch;
probing always uses the direct URL only.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Sequence

import httpx

from thumbgrab.config import PipelineConfig

logger = logging.getLogger("thumbgrab.fetch")

FETCH_ERRORS = (httpx.HTTPError, asyncio.TimeoutError)


def build_client(config: PipelineConfig) -> httpx.AsyncClient:
    """Create an AsyncClient sized and configured for a pipeline run."""
    return httpx.AsyncClient(
        timeout=config.probe_timeout,
        follow_redirects=True,
        headers={"User-Agent": config.user_agent},
        limits=httpx.Limits(max_connections=config.concurrency),
    )


async def fetch_bytes(
    client: httpx.AsyncClient,
    url: str,
    *,
    timeout: float | None = None,
) -> bytes:
    """
    Fetch binary content from URL.

    Parameters:
        client: Client to issue the request with
        url: Resource URL
        timeout: Overall bound in seconds for the request, body included

    Returns:
        Response body

    Raises:
        httpx.HTTPError: If the request fails or returns a non-success status
        asyncio.TimeoutError: If ``timeout`` elapses first
    """

    async def _get() -> bytes:
        resp = await client.get(url)
        resp.raise_for_status()
        return resp.content

    if timeout is None:
        return await _get()
    return await asyncio.wait_for(_get(), timeout)


def fallback_urls(url: str, proxies: Sequence[str]) -> list[str]:
    """Direct URL first, then the URL behind each proxy prefix, in order."""
    return [url, *(f"{proxy}{url}" for proxy in proxies)]


async def fetch_with_fallback(
    client: httpx.AsyncClient,
    url: str,
    proxies: Sequence[str] = (),
    *,
    timeout: float | None = None,
) -> bytes:
    """
    Fetch a URL, trying each fallback transport in turn.

    Attempts are sequential and stop at the first success.

    Raises:
        httpx.HTTPError | asyncio.TimeoutError: The error of the last attempt
    """
    *earlier, last = fallback_urls(url, proxies)
    for n, attempt in enumerate(earlier, start=1):
        try:
            return await fetch_bytes(client, attempt, timeout=timeout)
        except FETCH_ERRORS as e:
            logger.debug(
                "fetch_fallback",
                extra={"url": url, "attempt": n, "error": repr(e)},
            )
    return await fetch_bytes(client, last, timeout=timeout)
