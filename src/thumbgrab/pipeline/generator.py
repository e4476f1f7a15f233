"""
Candidate generation.

Expands an identifier through every strategy of a catalog into an ordered
list of candidate descriptors. Pure: no network access, no randomness.
"""

from __future__ import annotations

from dataclasses import dataclass

from thumbgrab.catalog import DEFAULT_CATALOG, StrategyCatalog
from thumbgrab.identifier import Identifier


@dataclass(frozen=True)
class CandidateDescriptor:
    """
    One hypothesized image location.

    Attributes:
        id: ``<identifier>_<strategy>_<variant-index>``, unique within a batch
        url: Candidate URL
        width: Width declared by the strategy (0 if unknown)
        height: Height declared by the strategy (0 if unknown)
        type: Type tag of the URL template (main, hero, variant, ...)
        source: Source tag of the strategy
        rank: Position in generation order; tie-break for display and archive order
        identifier: Canonical identifier the URL was built from
        strategy: Name of the generating strategy
        title: Human-readable description
    """

    id: str
    url: str
    width: int
    height: int
    type: str
    source: str
    rank: int
    identifier: str
    strategy: str
    title: str

    @property
    def resolution(self) -> str:
        return f"{self.width}x{self.height}"


def candidate_id(identifier: str, strategy: str, index: int) -> str:
    """Build the deterministic descriptor id."""
    return f"{identifier}_{strategy}_{index}"


def generate(
    identifier: Identifier | str,
    catalog: StrategyCatalog = DEFAULT_CATALOG,
) -> list[CandidateDescriptor]:
    """
    Generate candidate descriptors for an identifier.

    Strategies are evaluated in catalog order; within a strategy the
    combinations follow Strategy.expand(). ``rank`` numbers the whole
    output from 0.

    Parameters:
        identifier: Resolved Identifier or its canonical value
        catalog: Strategy table to expand

    Returns:
        List of CandidateDescriptor in generation order

    Raises:
        ValueError: If the identifier is empty
        RuntimeError: If two descriptors end up with the same id

    Example:
        >>> candidates = generate("80057281")
        >>> candidates[0].id
        '80057281_cdn_0'
    """
    value = identifier.value if isinstance(identifier, Identifier) else identifier
    if not value:
        raise ValueError("identifier must be non-empty")

    candidates: list[CandidateDescriptor] = []
    seen: set[str] = set()
    for strategy in catalog.strategies:
        for entry in strategy.expand(value):
            cid = candidate_id(value, strategy.name, entry.index)
            if cid in seen:
                raise RuntimeError(f"Duplicate candidate id generated: {cid}")
            seen.add(cid)
            candidates.append(
                CandidateDescriptor(
                    id=cid,
                    url=entry.url,
                    width=entry.variant.width,
                    height=entry.variant.height,
                    type=entry.template.type,
                    source=strategy.source,
                    rank=len(candidates),
                    identifier=value,
                    strategy=strategy.name,
                    title=entry.title,
                )
            )
    return candidates
