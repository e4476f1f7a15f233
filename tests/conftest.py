"""Shared helpers: in-memory images and a fake image server."""

from __future__ import annotations

import io
import random
from pathlib import Path
from typing import Callable

import httpx
import pytest
from PIL import Image

from thumbgrab.catalog import load_catalog

FIXTURES_DIR = Path(__file__).parent / "fixtures"


def encode(image: Image.Image, fmt: str = "PNG") -> bytes:
    buf = io.BytesIO()
    image.save(buf, fmt)
    return buf.getvalue()


def solid_image(width: int, height: int, color=(0, 0, 0)) -> Image.Image:
    return Image.new("RGB", (width, height), color)


def noisy_image(width: int, height: int, seed: int = 7, low: int = 31) -> Image.Image:
    """Every pixel has at least one channel above ``low - 1``, so nothing is blank."""
    rng = random.Random(seed)
    data = bytes(
        rng.randint(low, 255) for _ in range(width * height * 3)
    )
    return Image.frombytes("RGB", (width, height), data)


def letterboxed(
    width: int,
    height: int,
    *,
    top: int = 0,
    bottom: int = 0,
    left: int = 0,
    right: int = 0,
    seed: int = 7,
) -> Image.Image:
    """Noisy content surrounded by black bands of the given sizes."""
    canvas = solid_image(width, height)
    inner = noisy_image(width - left - right, height - top - bottom, seed=seed)
    canvas.paste(inner, (left, top))
    return canvas


def image_server(
    routes: dict[str, bytes | int],
    delays: dict[str, float] | None = None,
) -> httpx.MockTransport:
    """
    Transport answering from ``routes``.

    A bytes value is served with 200; an int value is returned as the status
    code. Unknown URLs get 404. ``delays`` holds per-URL sleeps in seconds.
    """
    import asyncio

    async def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if delays and url in delays:
            await asyncio.sleep(delays[url])
        value = routes.get(url, 404)
        if isinstance(value, int):
            return httpx.Response(value)
        return httpx.Response(200, content=value)

    return httpx.MockTransport(handler)


def slow_refetch_server(
    routes: dict[str, bytes],
    delay: float,
    on_refetch: Callable[[], None] | None = None,
) -> httpx.MockTransport:
    """
    Transport answering the first request for a URL at once and every later
    request for it after ``delay`` seconds. ``on_refetch`` is called before
    each delayed answer. Unknown URLs get 404.
    """
    import asyncio

    seen: dict[str, int] = {}

    async def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        seen[url] = seen.get(url, 0) + 1
        if url not in routes:
            return httpx.Response(404)
        if seen[url] > 1:
            if on_refetch is not None:
                on_refetch()
            await asyncio.sleep(delay)
        return httpx.Response(200, content=routes[url])

    return httpx.MockTransport(handler)


def unreachable_server() -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    return httpx.MockTransport(handler)


@pytest.fixture
def simple_catalog():
    return load_catalog(str(FIXTURES_DIR / "catalog_simple.json"))


@pytest.fixture
def make_client() -> Callable[[httpx.MockTransport], httpx.AsyncClient]:
    def _make(transport: httpx.MockTransport) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=transport)

    return _make
