"""
Pydantic models for the strategy catalog.

A catalog is a declarative table of heuristics. Each strategy names a set of
hosts, URL templates and size variants; the candidate generator takes the
cross product of the three to hypothesize image locations for an identifier.
"""

from __future__ import annotations

from dataclasses import dataclass
from string import Formatter

from pydantic import BaseModel, ConfigDict, Field

PLACEHOLDERS = frozenset({"identifier", "host", "size"})


class Variant(BaseModel):
    """
    Size/variant tag of a strategy.

    ``token`` is substituted for ``{size}`` in URL templates. Width and height
    are what the strategy declares, not what the server returns.
    """

    model_config = ConfigDict(extra="forbid")

    name: str
    token: str = ""
    width: int = Field(default=0, ge=0)
    height: int = Field(default=0, ge=0)

    @property
    def resolution(self) -> str:
        if not (self.width and self.height):
            return self.name
        return f"{self.width}x{self.height}"


class UrlTemplate(BaseModel):
    """
    URL pattern with ``{identifier}``, ``{host}`` and ``{size}`` placeholders.

    Example:
        >>> t = UrlTemplate(pattern="https://{host}/art/{size}/{identifier}.jpg")
        >>> t.render(identifier="80057281", host="cdn.example.org", size="w500")
        'https://cdn.example.org/art/w500/80057281.jpg'
    """

    model_config = ConfigDict(extra="forbid")

    pattern: str
    type: str = "variant"

    def placeholders(self) -> set[str]:
        """Names of every ``{field}`` used by the pattern."""
        return {
            field for _, field, _, _ in Formatter().parse(self.pattern) if field is not None
        }

    def render(self, *, identifier: str, host: str = "", size: str = "") -> str:
        return self.pattern.format(identifier=identifier, host=host, size=size)


@dataclass(frozen=True)
class StrategyEntry:
    """One host x variant x template combination of a strategy."""

    index: int
    url: str
    host_index: int
    variant: Variant
    template_index: int
    template: UrlTemplate
    title: str


class Strategy(BaseModel):
    """
    One heuristic for locating images.

    Attributes:
        name: Unique strategy name; part of every descriptor id
        source: Source tag recorded on descriptors and in filenames
        label: Human-readable name used in descriptor titles
        hosts: Values for ``{host}``; empty when templates embed the host
        templates: URL templates, each with its own type tag
        variants: Size/variant tags
    """

    model_config = ConfigDict(extra="forbid")

    name: str = Field(pattern=r"^[A-Za-z0-9_-]+$")
    source: str
    label: str | None = None
    hosts: list[str] = Field(default_factory=list)
    templates: list[UrlTemplate] = Field(default_factory=list)
    variants: list[Variant] = Field(default_factory=list)

    def expand(self, identifier: str) -> list[StrategyEntry]:
        """
        Instantiate every combination for an identifier.

        Combinations are ordered host-major, then variant, then template;
        ``index`` counts them from 0.

        Parameters:
            identifier: Canonical identifier substituted into templates

        Returns:
            List of StrategyEntry in declared order
        """
        hosts = self.hosts or [""]
        label = self.label or self.name
        entries: list[StrategyEntry] = []
        for h_i, host in enumerate(hosts):
            for variant in self.variants:
                for t_i, template in enumerate(self.templates):
                    parts = [variant.name, label]
                    if len(hosts) > 1:
                        parts.append(f"Host {h_i + 1}")
                    if len(self.templates) > 1:
                        parts.append(f"Pattern {t_i + 1}")
                    entries.append(
                        StrategyEntry(
                            index=len(entries),
                            url=template.render(
                                identifier=identifier, host=host, size=variant.token
                            ),
                            host_index=h_i,
                            variant=variant,
                            template_index=t_i,
                            template=template,
                            title=" - ".join(parts),
                        )
                    )
        return entries


class StrategyCatalog(BaseModel):
    """Ordered collection of strategies."""

    model_config = ConfigDict(extra="forbid")

    version: int = 1
    strategies: list[Strategy] = Field(default_factory=list)

    def names(self) -> list[str]:
        return [s.name for s in self.strategies]

    def get(self, name: str) -> Strategy | None:
        for strategy in self.strategies:
            if strategy.name == name:
                return strategy
        return None
