"""
Archive building.

Fetches (and, when enabled, trims) each selected candidate and bundles the
results into a single ZIP archive. One bad item is recorded and skipped; it
never aborts the batch. A request for exactly one item returns that image's
bytes without an archive wrapper.
"""

from __future__ import annotations

import asyncio
import contextlib
import io
import logging
import time
import zipfile
from dataclasses import dataclass, field
from typing import Callable, Sequence

import httpx

from thumbgrab.config import PipelineConfig
from thumbgrab.errors import ErrorCode, ThumbgrabError

from .fetch import FETCH_ERRORS, build_client, fetch_with_fallback
from .generator import CandidateDescriptor
from .output import archive_filename, guess_image_extension, member_filename
from .probe import wait_or_cancel
from .trim import process_image

logger = logging.getLogger("thumbgrab.archive")


@dataclass(frozen=True)
class ArchiveEntry:
    """One image included in the output."""

    filename: str
    data: bytes
    candidate: CandidateDescriptor


@dataclass(frozen=True)
class ItemFailure:
    """
    A candidate that could not be included.

    Attributes:
        candidate: Failed descriptor
        reason: Human-readable cause
        code: Error code when the failure maps onto the taxonomy
    """

    candidate: CandidateDescriptor
    reason: str
    code: ErrorCode | None = None


@dataclass(frozen=True)
class Summary:
    requested: int
    succeeded: int
    failed: int


@dataclass
class ArchiveManifest:
    """
    Record of what was bundled.

    Entries and failures are both in generation-rank order, and together
    account for every requested candidate unless the build was cancelled.
    """

    entries: list[ArchiveEntry] = field(default_factory=list)
    failures: list[ItemFailure] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return len(self.entries)

    @property
    def failed(self) -> int:
        return len(self.failures)


@dataclass
class ExportResult:
    """
    Final output of the archive stage.

    Attributes:
        manifest: What was included and what failed
        requested: Number of candidates requested
        filename: Output filename (None when nothing was produced)
        payload: Archive bytes, or raw image bytes for a single-item request
        is_archive: True when ``payload`` is a ZIP archive
        error: ArchiveEmpty when no item succeeded
        cancelled: True if the build was cancelled; the manifest then holds only
            the items resolved so far and no payload is produced
    """

    manifest: ArchiveManifest
    requested: int
    filename: str | None = None
    payload: bytes | None = None
    is_archive: bool = False
    error: ErrorCode | None = None
    cancelled: bool = False

    @property
    def success(self) -> bool:
        return self.error is None and not self.cancelled

    @property
    def summary(self) -> Summary:
        return Summary(
            requested=self.requested,
            succeeded=self.manifest.succeeded,
            failed=self.manifest.failed,
        )


def write_zip(entries: Sequence[ArchiveEntry]) -> bytes:
    """Serialize entries into a deflated ZIP, in the given order."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for entry in entries:
            zf.writestr(entry.filename, entry.data)
    return buf.getvalue()


class ArchiveBuilder:
    """
    Bundle candidates into one output payload.

    Parameters:
        config: Pipeline settings (enable_trim, trim_threshold, jpeg_quality,
            prefix, fallback_proxies, concurrency, probe_timeout)
        client: Optional AsyncClient to reuse
        clock: Returns seconds since the epoch; used for archive timestamps
    """

    def __init__(
        self,
        config: PipelineConfig | None = None,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config or PipelineConfig()
        self._client = client
        self._clock = clock

    def _client_context(self):
        if self._client is not None:
            return contextlib.nullcontext(self._client)
        return build_client(self.config)

    async def _obtain(
        self, client: httpx.AsyncClient, candidate: CandidateDescriptor
    ) -> ArchiveEntry:
        data = await fetch_with_fallback(
            client,
            candidate.url,
            self.config.fallback_proxies,
            timeout=self.config.probe_timeout,
        )
        if not self.config.enable_trim:
            ext = guess_image_extension(data)
            return ArchiveEntry(member_filename(self.config.prefix, candidate, ext), data, candidate)

        processed = await asyncio.to_thread(
            process_image,
            candidate,
            data,
            threshold=self.config.trim_threshold,
            quality=self.config.jpeg_quality,
        )
        logger.debug(
            "trimmed",
            extra={
                "candidate": candidate.id,
                "original": [processed.original_width, processed.original_height],
                "final": [processed.width, processed.height],
            },
        )
        return ArchiveEntry(
            member_filename(self.config.prefix, candidate, processed.extension),
            processed.data,
            candidate,
        )

    async def _obtain_or_fail(
        self, client: httpx.AsyncClient, candidate: CandidateDescriptor
    ) -> ArchiveEntry | ItemFailure:
        try:
            return await self._obtain(client, candidate)
        except httpx.HTTPStatusError as e:
            failure = ItemFailure(candidate, f"HTTP {e.response.status_code}")
        except FETCH_ERRORS as e:
            failure = ItemFailure(candidate, f"fetch failed: {type(e).__name__}: {e}")
        except ThumbgrabError as e:
            failure = ItemFailure(candidate, str(e), e.code)
        except Exception as e:  # noqa: BLE001
            logger.exception("archive_unexpected_error", extra={"candidate": candidate.id})
            failure = ItemFailure(candidate, f"{type(e).__name__}: {e}")
        logger.warning(
            "archive_item_failed",
            extra={"candidate": candidate.id, "reason": failure.reason},
        )
        return failure

    async def build(
        self,
        identifier: str,
        candidates: Sequence[CandidateDescriptor],
        cancel: asyncio.Event | None = None,
    ) -> ExportResult:
        """
        Fetch, process and bundle the candidates.

        Items are fetched concurrently but assembled by a single writer in
        input order.

        Parameters:
            identifier: Canonical identifier used in the archive filename
            candidates: Descriptors to include, in the desired order
            cancel: Optional event; setting it stops in-flight fetches and
                returns the partial manifest without a payload

        Returns:
            ExportResult; ``error`` is ArchiveEmpty when nothing succeeded
        """
        slots: list[ArchiveEntry | ItemFailure | None] = [None] * len(candidates)
        semaphore = asyncio.Semaphore(self.config.concurrency)

        async with self._client_context() as client:

            async def worker(i: int, candidate: CandidateDescriptor) -> None:
                async with semaphore:
                    slots[i] = await self._obtain_or_fail(client, candidate)

            tasks = [
                asyncio.create_task(worker(i, c)) for i, c in enumerate(candidates)
            ]
            try:
                cancelled = await wait_or_cancel(tasks, cancel)
            finally:
                for task in tasks:
                    if not task.done():
                        task.cancel()

        manifest = ArchiveManifest()
        for slot in slots:
            if isinstance(slot, ArchiveEntry):
                manifest.entries.append(slot)
            elif isinstance(slot, ItemFailure):
                manifest.failures.append(slot)

        result = ExportResult(
            manifest=manifest, requested=len(candidates), cancelled=cancelled
        )
        if cancelled:
            logger.warning(
                "archive_cancelled",
                extra={
                    "identifier": identifier,
                    "requested": result.requested,
                    "resolved": manifest.succeeded + manifest.failed,
                },
            )
            return result

        if not manifest.entries:
            result.error = ErrorCode.ARCHIVE_EMPTY
        elif len(candidates) == 1:
            entry = manifest.entries[0]
            result.filename = entry.filename
            result.payload = entry.data
        else:
            result.filename = archive_filename(
                self.config.prefix, identifier, int(self._clock() * 1000)
            )
            result.payload = write_zip(manifest.entries)
            result.is_archive = True

        logger.info(
            "archive_done",
            extra={
                "identifier": identifier,
                "requested": result.requested,
                "succeeded": manifest.succeeded,
                "failed": manifest.failed,
                "archive": result.is_archive,
                "output_filename": result.filename,
            },
        )
        return result


def build_archive(
    identifier: str,
    candidates: Sequence[CandidateDescriptor],
    config: PipelineConfig | None = None,
) -> ExportResult:
    """Synchronous wrapper around ArchiveBuilder.build()."""
    return asyncio.run(ArchiveBuilder(config).build(identifier, candidates))
