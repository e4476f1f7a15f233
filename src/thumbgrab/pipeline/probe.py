"""
Concurrent probing of candidates.

Fetches and decodes every candidate under a concurrency bound and a
per-candidate timeout, and reports which ones are usable images. Results
are reported in generation-rank order whatever order the probes finish in.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass
from typing import Sequence

import httpx

from thumbgrab.config import PipelineConfig
from thumbgrab.errors import ErrorCode, ImageDecodeError

from .fetch import build_client, fetch_bytes
from .generator import CandidateDescriptor
from .trim import decode_image

logger = logging.getLogger("thumbgrab.probe")


@dataclass(frozen=True)
class ProbeResult:
    """
    Outcome of probing one candidate.

    Attributes:
        candidate: Probed descriptor
        reachable: True iff the resource was fetched and decoded with both dimensions > 0
        width: Decoded width (0 on failure)
        height: Decoded height (0 on failure)
        elapsed_seconds: Wall time spent on this probe
        error: Failure description, None on success
    """

    candidate: CandidateDescriptor
    reachable: bool
    width: int = 0
    height: int = 0
    elapsed_seconds: float = 0.0
    error: str | None = None


@dataclass
class ProbeReport:
    """
    Result of probing a batch.

    Attributes:
        results: Resolved probe results in generation-rank order
        requested: Number of candidates submitted
        cancelled: True if the batch was cancelled before every probe resolved
        error: AllProbesFailed when nothing was accepted, NoCandidatesGenerated for an empty batch
        elapsed_seconds: Wall time for the whole batch
    """

    results: list[ProbeResult]
    requested: int
    cancelled: bool = False
    error: ErrorCode | None = None
    elapsed_seconds: float = 0.0

    @property
    def accepted(self) -> list[CandidateDescriptor]:
        return [r.candidate for r in self.results if r.reachable]

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.reachable)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.reachable)


async def wait_or_cancel(
    tasks: Sequence[asyncio.Task[None]],
    cancel: asyncio.Event | None,
) -> bool:
    """Wait for all tasks; return True if ``cancel`` fired first."""
    if not tasks:
        return False
    if cancel is None:
        await asyncio.gather(*tasks)
        return False

    pending: set[asyncio.Future] = set(tasks)
    waiter = asyncio.ensure_future(cancel.wait())
    try:
        while pending:
            done, _ = await asyncio.wait(
                pending | {waiter}, return_when=asyncio.FIRST_COMPLETED
            )
            pending -= done
            if waiter in done and pending:
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)
                return True
        return False
    finally:
        waiter.cancel()


class ProbeEngine:
    """
    Bounded-parallelism prober.

    Parameters:
        config: Pipeline settings (concurrency, probe_timeout)
        client: Optional AsyncClient to reuse; one is created per run otherwise

    Example:
        >>> engine = ProbeEngine(PipelineConfig(concurrency=4))
        >>> report = asyncio.run(engine.run(generate("80057281")))
        >>> [c.id for c in report.accepted]
    """

    def __init__(
        self,
        config: PipelineConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config or PipelineConfig()
        self._client = client

    def _client_context(self):
        if self._client is not None:
            return contextlib.nullcontext(self._client)
        return build_client(self.config)

    async def _attempt(
        self, client: httpx.AsyncClient, candidate: CandidateDescriptor
    ) -> tuple[int, int]:
        data = await fetch_bytes(client, candidate.url)
        image = await asyncio.to_thread(decode_image, data)
        return image.size

    async def probe_one(
        self, client: httpx.AsyncClient, candidate: CandidateDescriptor
    ) -> ProbeResult:
        """Probe a single candidate. Never raises for per-candidate failures."""
        t0 = time.perf_counter()
        error: str | None = None
        width = height = 0
        try:
            width, height = await asyncio.wait_for(
                self._attempt(client, candidate), self.config.probe_timeout
            )
        except asyncio.TimeoutError:
            error = f"timed out after {self.config.probe_timeout}s"
        except httpx.HTTPStatusError as e:
            error = f"HTTP {e.response.status_code}"
        except httpx.HTTPError as e:
            error = f"{type(e).__name__}: {e}"
        except ImageDecodeError as e:
            error = str(e)
        except Exception as e:  # noqa: BLE001
            logger.exception("probe_unexpected_error", extra={"candidate": candidate.id})
            error = f"{type(e).__name__}: {e}"
        elapsed = time.perf_counter() - t0

        result = ProbeResult(
            candidate=candidate,
            reachable=error is None,
            width=width,
            height=height,
            elapsed_seconds=elapsed,
            error=error,
        )
        logger.debug(
            "probe_done",
            extra={
                "candidate": candidate.id,
                "reachable": result.reachable,
                "elapsed_ms": int(elapsed * 1000),
                "error": error,
            },
        )
        return result

    async def run(
        self,
        candidates: Sequence[CandidateDescriptor],
        cancel: asyncio.Event | None = None,
    ) -> ProbeReport:
        """
        Probe every candidate.

        Parameters:
            candidates: Descriptors in generation order
            cancel: Optional event; setting it stops the batch and returns partial results

        Returns:
            ProbeReport whose results follow the input order
        """
        start = time.perf_counter()
        slots: list[ProbeResult | None] = [None] * len(candidates)
        semaphore = asyncio.Semaphore(self.config.concurrency)

        async with self._client_context() as client:

            async def worker(i: int, candidate: CandidateDescriptor) -> None:
                async with semaphore:
                    slots[i] = await self.probe_one(client, candidate)

            tasks = [
                asyncio.create_task(worker(i, c)) for i, c in enumerate(candidates)
            ]
            try:
                cancelled = await wait_or_cancel(tasks, cancel)
            finally:
                for task in tasks:
                    if not task.done():
                        task.cancel()

        results = [r for r in slots if r is not None]
        report = ProbeReport(
            results=results,
            requested=len(candidates),
            cancelled=cancelled,
            elapsed_seconds=time.perf_counter() - start,
        )
        if not candidates:
            report.error = ErrorCode.NO_CANDIDATES_GENERATED
        elif not report.accepted:
            report.error = ErrorCode.ALL_PROBES_FAILED

        logger.info(
            "probe_batch_done",
            extra={
                "requested": report.requested,
                "accepted": report.succeeded,
                "resolved": len(results),
                "cancelled": cancelled,
                "elapsed_ms": int(report.elapsed_seconds * 1000),
            },
        )
        return report


def probe_candidates(
    candidates: Sequence[CandidateDescriptor],
    config: PipelineConfig | None = None,
) -> ProbeReport:
    """Synchronous wrapper around ProbeEngine.run()."""
    return asyncio.run(ProbeEngine(config).run(candidates))
