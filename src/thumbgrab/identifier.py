"""
Identifier resolution.

Turns free-form user input (a bare title id or a title/watch/browse URL)
into the canonical numeric identifier every later stage keys on.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from .errors import InvalidIdentifier

# Evaluated in order; the first pattern that matches wins.
IDENTIFIER_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"netflix\.com/(?:[a-z]{2}(?:-[a-z]{2})?/)?title/(\d{7,9})(?!\d)", re.I),
    re.compile(r"netflix\.com/(?:[a-z]{2}(?:-[a-z]{2})?/)?watch/(\d{7,9})(?!\d)", re.I),
    re.compile(r"netflix\.com/.*[?&]jbv=(\d{7,9})(?!\d)", re.I),
    re.compile(r"netflix\.com/(?:[^?#]*/)?(\d{7,9})(?![\d])", re.I),
    re.compile(r"^(\d{7,9})$"),
)

EXAMPLE_IDENTIFIERS: tuple[str, ...] = (
    "80057281",  # Stranger Things
    "70136120",  # Breaking Bad
    "80025744",  # Narcos
    "80117540",  # The Crown
    "80014749",  # House of Cards
    "81265727",  # Squid Game
    "80192098",  # The Witcher
    "80100172",  # Money Heist
)


@dataclass(frozen=True)
class Identifier:
    """
    Canonical resource key.

    Attributes:
        raw: Input exactly as supplied by the caller
        value: Extracted numeric identifier
    """

    raw: str
    value: str

    def __str__(self) -> str:
        return self.value


def extract_identifier(text: str) -> str | None:
    """Return the first identifier matched by IDENTIFIER_PATTERNS, or None."""
    candidate = text.strip()
    for pattern in IDENTIFIER_PATTERNS:
        m = pattern.search(candidate)
        if m:
            return m.group(1)
    return None


def resolve_identifier(text: str) -> Identifier:
    """
    Resolve free-form input into an Identifier.

    Parameters:
        text: Bare 7-9 digit identifier or a URL containing one

    Returns:
        Identifier with the canonical value

    Raises:
        InvalidIdentifier: If no pattern matches

    Example:
        >>> resolve_identifier("https://www.netflix.com/title/80057281").value
        '80057281'
    """
    value = extract_identifier(text)
    if value is None:
        raise InvalidIdentifier(f"No identifier found in {text!r}")
    return Identifier(raw=text, value=value)
