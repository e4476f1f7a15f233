"""
Loading and parsing strategy catalogs.

Provides functions to load catalog JSON from files or URLs and parse it
into Pydantic models.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any
import json

import httpx

from .models import StrategyCatalog


def fetch_json(url: str, *, timeout: float = 10.0) -> dict[str, Any]:
    """
    Fetch JSON from URL.

    Parameters:
        url: HTTP(S) URL to fetch
        timeout: Request timeout in seconds

    Returns:
        Parsed JSON as dictionary

    Raises:
        httpx.HTTPError: If request fails
        json.JSONDecodeError: If response is not valid JSON
    """
    with httpx.Client(timeout=timeout, follow_redirects=True) as client:
        resp = client.get(url)
        resp.raise_for_status()
        return resp.json()


def load_json(path_or_url: str) -> dict[str, Any]:
    """
    Load JSON from file path or URL.

    Input starting with http:// or https:// is fetched; anything else is
    read from the filesystem.

    Raises:
        FileNotFoundError: If file path doesn't exist
        httpx.HTTPError: If URL fetch fails
        json.JSONDecodeError: If JSON is invalid
    """
    if path_or_url.startswith("http://") or path_or_url.startswith("https://"):
        return fetch_json(path_or_url)

    p = Path(path_or_url).expanduser()
    return json.loads(p.read_text(encoding="utf-8"))


def parse_catalog(data: dict[str, Any]) -> StrategyCatalog:
    """
    Parse catalog dict into Pydantic model.

    Raises:
        pydantic.ValidationError: If JSON doesn't match the catalog schema

    Example:
        >>> catalog = parse_catalog(load_json("strategies.json"))
        >>> catalog.names()
        ['cdn', 'tmdb']
    """
    return StrategyCatalog.model_validate(data)


def load_catalog(path_or_url: str) -> StrategyCatalog:
    """
    Load and parse a catalog from path or URL.

    Combines load_json() and parse_catalog() in one call. The result is not
    validated; run validate_catalog() before generating from it.
    """
    data = load_json(path_or_url)
    return parse_catalog(data)
