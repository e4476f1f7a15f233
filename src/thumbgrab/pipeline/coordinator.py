"""
Pipeline coordination.

Chains resolution, generation, probing and archiving behind one
caller-owned context. Whole-batch failures come back as typed results;
nothing here raises for an invalid identifier or an empty outcome.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass, field
from typing import AsyncIterator, Callable, Sequence

import httpx

from thumbgrab.catalog import DEFAULT_CATALOG, StrategyCatalog
from thumbgrab.config import PipelineConfig
from thumbgrab.errors import ErrorCode, InvalidIdentifier
from thumbgrab.identifier import Identifier, resolve_identifier

from .archive import ArchiveBuilder, ExportResult, Summary
from .fetch import build_client
from .generator import CandidateDescriptor, generate
from .probe import ProbeEngine, ProbeReport

logger = logging.getLogger("thumbgrab.pipeline")


@dataclass
class DiscoveryResult:
    """
    Outcome of resolving, generating and probing one input.

    Attributes:
        input: Raw caller input
        identifier: Resolved identifier (None if resolution failed)
        candidates: Every generated descriptor, in generation order
        probe: Probe report (None if probing did not run)
        error: First whole-batch error encountered, if any
    """

    input: str
    identifier: Identifier | None = None
    candidates: list[CandidateDescriptor] = field(default_factory=list)
    probe: ProbeReport | None = None
    error: ErrorCode | None = None

    @property
    def accepted(self) -> list[CandidateDescriptor]:
        return self.probe.accepted if self.probe else []


@dataclass
class PipelineRun:
    """
    Discovery plus export for one input.

    Attributes:
        discovery: Result of resolving, generating and probing
        export: Result of the archive stage (None if it did not run)
        cancelled: True if the run was cancelled in either stage
    """

    discovery: DiscoveryResult
    export: ExportResult | None = None
    cancelled: bool = False

    @property
    def error(self) -> ErrorCode | None:
        if self.discovery.error:
            return self.discovery.error
        return self.export.error if self.export else None

    @property
    def success(self) -> bool:
        return self.error is None and not self.cancelled

    @property
    def summary(self) -> Summary:
        if self.export:
            return self.export.summary
        return Summary(requested=0, succeeded=0, failed=0)


@dataclass(frozen=True)
class SurveyResult:
    """Number of working candidates found for one identifier."""

    input: str
    identifier: str | None
    working: int
    total: int
    error: ErrorCode | None = None


class ThumbnailPipeline:
    """
    Caller-owned pipeline context.

    Parameters:
        config: Pipeline settings
        catalog: Strategy table used for generation
        client: Optional AsyncClient shared by every stage
        clock: Seconds since the epoch, used for archive timestamps

    Example:
        >>> pipeline = ThumbnailPipeline(PipelineConfig(concurrency=8))
        >>> run = asyncio.run(pipeline.run("https://www.netflix.com/title/80057281"))
        >>> run.summary
        Summary(requested=4, succeeded=4, failed=0)
    """

    def __init__(
        self,
        config: PipelineConfig | None = None,
        catalog: StrategyCatalog = DEFAULT_CATALOG,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config or PipelineConfig()
        self.catalog = catalog
        self._client = client
        self._clock = clock

    @contextlib.asynccontextmanager
    async def _session(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with build_client(self.config) as client:
            yield client

    def candidates(self, text: str) -> list[CandidateDescriptor]:
        """
        Resolve input and generate its candidates.

        Raises:
            InvalidIdentifier: If no identifier can be extracted
        """
        return generate(resolve_identifier(text), self.catalog)

    async def _discover(
        self,
        client: httpx.AsyncClient,
        text: str,
        cancel: asyncio.Event | None,
    ) -> DiscoveryResult:
        result = DiscoveryResult(input=text)
        try:
            result.identifier = resolve_identifier(text)
        except InvalidIdentifier as e:
            logger.warning("invalid_identifier", extra={"input": text, "error": str(e)})
            result.error = ErrorCode.INVALID_IDENTIFIER
            return result

        result.candidates = generate(result.identifier, self.catalog)
        if not result.candidates:
            result.error = ErrorCode.NO_CANDIDATES_GENERATED
            return result

        result.probe = await ProbeEngine(self.config, client).run(result.candidates, cancel)
        result.error = result.probe.error
        return result

    async def discover(
        self, text: str, cancel: asyncio.Event | None = None
    ) -> DiscoveryResult:
        """Resolve, generate and probe one input."""
        async with self._session() as client:
            return await self._discover(client, text, cancel)

    @staticmethod
    def select(
        discovery: DiscoveryResult, ids: Sequence[str] | None = None
    ) -> list[CandidateDescriptor]:
        """
        Pick accepted candidates to export.

        Parameters:
            discovery: Result of discover()
            ids: Candidate ids to keep; all accepted candidates when None

        Returns:
            Selected descriptors in generation order

        Raises:
            ValueError: If an id is not among the accepted candidates
        """
        accepted = discovery.accepted
        if ids is None:
            return accepted
        wanted = set(ids)
        unknown = wanted - {c.id for c in accepted}
        if unknown:
            raise ValueError(f"Not accepted candidate id(s): {', '.join(sorted(unknown))}")
        return [c for c in accepted if c.id in wanted]

    async def _export(
        self,
        client: httpx.AsyncClient,
        discovery: DiscoveryResult,
        selection: Sequence[CandidateDescriptor] | None,
        cancel: asyncio.Event | None = None,
    ) -> ExportResult:
        if discovery.identifier is None:
            raise ValueError("cannot export a discovery without an identifier")
        chosen = list(selection) if selection is not None else discovery.accepted
        builder = ArchiveBuilder(self.config, client, clock=self._clock)
        return await builder.build(discovery.identifier.value, chosen, cancel)

    async def export(
        self,
        discovery: DiscoveryResult,
        selection: Sequence[CandidateDescriptor] | None = None,
        cancel: asyncio.Event | None = None,
    ) -> ExportResult:
        """
        Build the output payload for a successful discovery.

        Raises:
            ValueError: If the discovery has no resolved identifier
        """
        if discovery.identifier is None:
            raise ValueError("cannot export a discovery without an identifier")
        async with self._session() as client:
            return await self._export(client, discovery, selection, cancel)

    async def run(
        self,
        text: str,
        ids: Sequence[str] | None = None,
        cancel: asyncio.Event | None = None,
    ) -> PipelineRun:
        """
        Run the whole pipeline for one input.

        Export is skipped when discovery reports an error or was cancelled.
        ``cancel`` also reaches the export stage, which then stops and returns
        a partial manifest with ``cancelled`` set.

        Raises:
            ValueError: If ``ids`` names a candidate that was not accepted
        """
        async with self._session() as client:
            discovery = await self._discover(client, text, cancel)
            run = PipelineRun(discovery=discovery)
            probe_cancelled = discovery.probe is not None and discovery.probe.cancelled
            if probe_cancelled or (cancel is not None and cancel.is_set()):
                run.cancelled = True
                return run
            if discovery.error:
                return run
            selection = self.select(discovery, ids)
            run.export = await self._export(client, discovery, selection, cancel)
            run.cancelled = run.export.cancelled
            return run

    async def survey(self, inputs: Sequence[str]) -> list[SurveyResult]:
        """Probe several inputs one after another and count working candidates."""
        results: list[SurveyResult] = []
        async with self._session() as client:
            for text in inputs:
                discovery = await self._discover(client, text, None)
                results.append(
                    SurveyResult(
                        input=text,
                        identifier=discovery.identifier.value if discovery.identifier else None,
                        working=len(discovery.accepted),
                        total=len(discovery.candidates),
                        error=discovery.error,
                    )
                )
        return results
