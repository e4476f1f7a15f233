"""
thumbgrab CLI

Commands:
- candidates: List generated candidate URLs for an input
- probe: Report which candidates are reachable images
- fetch: Probe, trim and write the usable images as one file
- survey: Count working candidates for several identifiers
- examples: Print known example identifiers
- validate-catalog: Validate a strategy catalog file
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import signal
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, TypeVar

import httpx
import pydantic
import typer

from thumbgrab.catalog import (
    DEFAULT_CATALOG,
    StrategyCatalog,
    load_catalog,
    validate_catalog,
)
from thumbgrab.config import (
    DEFAULT_CONCURRENCY,
    DEFAULT_PREFIX,
    DEFAULT_PROBE_TIMEOUT,
    DEFAULT_TRIM_THRESHOLD,
    PipelineConfig,
)
from thumbgrab.errors import ErrorCode, InvalidIdentifier
from thumbgrab.identifier import EXAMPLE_IDENTIFIERS
from thumbgrab.pipeline.coordinator import ThumbnailPipeline
from thumbgrab.pipeline.output import export_record, write_payload

app = typer.Typer(add_completion=False, help="Find, trim and bundle title thumbnails")

T = TypeVar("T")


class JsonFormatter(logging.Formatter):
    """Simple JSON formatter for structured logs."""
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "msg": record.getMessage(),
            "logger": record.name,
        }
        # Include any custom attributes passed via `extra=`.
        reserved = {
            "name","msg","args","levelname","levelno","pathname","filename","module",
            "exc_info","exc_text","stack_info","lineno","funcName","created","msecs",
            "relativeCreated","thread","threadName","processName","process",
            "taskName",
        }
        for k, v in record.__dict__.items():
            if k in reserved or k.startswith("_"):
                continue
            try:
                json.dumps(v)
                payload[k] = v
            except TypeError:
                payload[k] = repr(v)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def setup_logging(level: str) -> logging.Logger:
    logger = logging.getLogger("thumbgrab")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    logger.handlers[:] = [handler]
    logger.propagate = False
    return logger


EXIT_EMPTY = 1
EXIT_INVALID = 2


def _load_catalog(catalog_path: str | None) -> StrategyCatalog:
    if catalog_path is None:
        return DEFAULT_CATALOG
    try:
        catalog = load_catalog(catalog_path)
    except (OSError, ValueError, httpx.HTTPError) as e:
        # pydantic.ValidationError and json.JSONDecodeError are ValueErrors
        typer.echo(f"❌ Could not load catalog {catalog_path}: {e}", err=True)
        raise typer.Exit(code=EXIT_INVALID)
    issues = validate_catalog(catalog)
    if issues:
        typer.echo(f"❌ Catalog {catalog_path} has {len(issues)} issue(s):", err=True)
        for i, issue in enumerate(issues, start=1):
            typer.echo(f"  {i:>3}. {issue.path}: {issue.message}", err=True)
        raise typer.Exit(code=EXIT_INVALID)
    return catalog


def _build_config(**kwargs: Any) -> PipelineConfig:
    try:
        return PipelineConfig(**kwargs)
    except pydantic.ValidationError as e:
        raise typer.BadParameter(str(e)) from e


async def _interruptible(job: Callable[[asyncio.Event], Awaitable[T]]) -> T:
    """Run ``job`` with an event that is set on Ctrl-C."""
    cancel = asyncio.Event()
    loop = asyncio.get_running_loop()
    handler_installed = False
    try:
        loop.add_signal_handler(signal.SIGINT, cancel.set)
        handler_installed = True
    except (NotImplementedError, RuntimeError, ValueError):
        pass
    try:
        return await job(cancel)
    finally:
        if handler_installed:
            with contextlib.suppress(NotImplementedError, RuntimeError, ValueError):
                loop.remove_signal_handler(signal.SIGINT)


def _fail_on_error(error: ErrorCode | None) -> None:
    if error is None:
        return
    messages = {
        ErrorCode.INVALID_IDENTIFIER: "Invalid identifier or URL format",
        ErrorCode.NO_CANDIDATES_GENERATED: "The catalog produced no candidates",
        ErrorCode.ALL_PROBES_FAILED: "No working thumbnail URLs found for this identifier",
        ErrorCode.ARCHIVE_EMPTY: "No thumbnails could be processed",
    }
    typer.echo(f"❌ {error.value}: {messages.get(error, error.value)}", err=True)
    raise typer.Exit(code=EXIT_INVALID if error is ErrorCode.INVALID_IDENTIFIER else EXIT_EMPTY)


@app.command("candidates")
def candidates_cmd(
    text: str = typer.Argument(..., help="Title URL or identifier"),
    catalog_path: str | None = typer.Option(None, "--catalog", help="Strategy catalog JSON path or URL"),
) -> None:
    """Print every generated candidate (no network access)."""
    pipeline = ThumbnailPipeline(catalog=_load_catalog(catalog_path))
    try:
        candidates = pipeline.candidates(text)
    except InvalidIdentifier:
        _fail_on_error(ErrorCode.INVALID_IDENTIFIER)
        return
    for c in candidates:
        typer.echo(f"{c.rank:>4}  {c.id}  {c.resolution:>9}  {c.type:<11} {c.url}")
    typer.echo(f"\n{len(candidates)} candidate(s)")


@app.command("probe")
def probe_cmd(
    text: str = typer.Argument(..., help="Title URL or identifier"),
    catalog_path: str | None = typer.Option(None, "--catalog", help="Strategy catalog JSON path or URL"),
    concurrency: int = typer.Option(DEFAULT_CONCURRENCY, "--concurrency", help="Maximum probes in flight"),
    timeout: float = typer.Option(DEFAULT_PROBE_TIMEOUT, "--timeout", help="Per-candidate timeout in seconds"),
    show_all: bool = typer.Option(False, "--all", help="Also list failed candidates"),
    log_level: str = typer.Option("WARNING", "--log-level", help="Log level"),
) -> None:
    """Probe every candidate and list the reachable images."""
    setup_logging(log_level)
    config = _build_config(concurrency=concurrency, probe_timeout=timeout)
    pipeline = ThumbnailPipeline(config, _load_catalog(catalog_path))

    discovery = asyncio.run(_interruptible(lambda cancel: pipeline.discover(text, cancel)))
    if discovery.probe is not None:
        for r in discovery.probe.results:
            if r.reachable:
                typer.echo(f"✅ {r.candidate.id}  {r.width}x{r.height}  {r.candidate.url}")
            elif show_all:
                typer.echo(f"❌ {r.candidate.id}  {r.error}  {r.candidate.url}")
        if discovery.probe.cancelled:
            typer.echo(
                f"⚠️  Cancelled: {len(discovery.probe.results)}/{discovery.probe.requested} probed",
                err=True,
            )
        typer.echo(f"\nFound {discovery.probe.succeeded} working of {discovery.probe.requested}")
    _fail_on_error(discovery.error)


@app.command("fetch")
def fetch_cmd(
    text: str = typer.Argument(..., help="Title URL or identifier"),
    out: Path = typer.Option(Path("."), "--out", help="Directory to write the image or archive into"),
    select: list[str] | None = typer.Option(
        None, "--select", help="Candidate id to include (repeatable); default is every working one"
    ),
    trim: bool = typer.Option(True, "--trim/--no-trim", help="Remove dark border bands before saving"),
    threshold: int = typer.Option(DEFAULT_TRIM_THRESHOLD, "--threshold", help="Blank threshold (0-255)"),
    concurrency: int = typer.Option(DEFAULT_CONCURRENCY, "--concurrency", help="Maximum requests in flight"),
    timeout: float = typer.Option(DEFAULT_PROBE_TIMEOUT, "--timeout", help="Per-request timeout in seconds"),
    proxy: list[str] | None = typer.Option(
        None, "--proxy", help="Fallback URL prefix tried after a failed direct download (repeatable)"
    ),
    prefix: str = typer.Option(DEFAULT_PREFIX, "--prefix", help="Leading token of output filenames"),
    catalog_path: str | None = typer.Option(None, "--catalog", help="Strategy catalog JSON path or URL"),
    as_json: bool = typer.Option(False, "--json", help="Print the result summary as JSON"),
    log_level: str = typer.Option("INFO", "--log-level", help="Log level"),
) -> None:
    """
    Find working thumbnails and write them to OUT.

    Several images are bundled into <prefix>_<id>_<timestamp>.zip; a single
    image is written as-is.

    Example:
        thumbgrab fetch https://www.netflix.com/title/80057281 --out downloads/
    """
    setup_logging(log_level)
    config = _build_config(
        concurrency=concurrency,
        probe_timeout=timeout,
        trim_threshold=threshold,
        enable_trim=trim,
        prefix=prefix,
        fallback_proxies=tuple(proxy or ()),
    )
    pipeline = ThumbnailPipeline(config, _load_catalog(catalog_path))
    out = out.expanduser()

    try:
        run = asyncio.run(
            _interruptible(lambda cancel: pipeline.run(text, ids=select or None, cancel=cancel))
        )
    except ValueError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(code=EXIT_INVALID)

    probe = run.discovery.probe
    export = run.export
    if run.cancelled:
        if export is not None:
            done = export.manifest.succeeded + export.manifest.failed
            typer.echo(f"⚠️  Cancelled after fetching {done}/{export.requested}; nothing written", err=True)
        elif probe is not None:
            typer.echo(f"⚠️  Cancelled after probing {len(probe.results)}/{probe.requested}", err=True)
        else:
            typer.echo("⚠️  Cancelled", err=True)
        raise typer.Exit(code=EXIT_EMPTY)
    _fail_on_error(run.discovery.error)

    if export is None:
        raise typer.Exit(code=EXIT_EMPTY)
    if as_json:
        typer.echo(json.dumps(export_record(export), indent=2))
    _fail_on_error(export.error)

    path = write_payload(export, out)
    summary = run.summary
    if not as_json:
        typer.echo(
            f"✅ Wrote {path} ({summary.succeeded} of {summary.requested} included, "
            f"{summary.failed} failed)"
        )
        for failure in export.manifest.failures:
            typer.echo(f"  - {failure.candidate.id}: {failure.reason}", err=True)


@app.command("survey")
def survey_cmd(
    inputs: list[str] | None = typer.Argument(None, help="Identifiers or URLs; defaults to the examples"),
    id_file: Path | None = typer.Option(None, "--file", help="File with one identifier per line"),
    catalog_path: str | None = typer.Option(None, "--catalog", help="Strategy catalog JSON path or URL"),
    concurrency: int = typer.Option(DEFAULT_CONCURRENCY, "--concurrency", help="Maximum probes in flight"),
    timeout: float = typer.Option(DEFAULT_PROBE_TIMEOUT, "--timeout", help="Per-candidate timeout in seconds"),
    log_level: str = typer.Option("WARNING", "--log-level", help="Log level"),
) -> None:
    """Count working candidates for several identifiers."""
    setup_logging(log_level)
    targets = list(inputs or [])
    if id_file is not None:
        id_file = id_file.expanduser()
        if not id_file.exists():
            typer.echo(f"Error: Identifier file not found: {id_file}", err=True)
            raise typer.Exit(code=EXIT_INVALID)
        with id_file.open("r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith("#"):
                    targets.append(line)
    if not targets:
        targets = list(EXAMPLE_IDENTIFIERS)

    config = _build_config(concurrency=concurrency, probe_timeout=timeout)
    pipeline = ThumbnailPipeline(config, _load_catalog(catalog_path))
    results = asyncio.run(pipeline.survey(targets))

    best = None
    for r in results:
        if r.error is ErrorCode.INVALID_IDENTIFIER:
            typer.echo(f"❌ {r.input}: invalid identifier")
            continue
        typer.echo(f"{r.identifier}: {r.working}/{r.total} working")
        if r.working and (best is None or r.working > best.working):
            best = r
    if best is None:
        typer.echo("\nNo working identifiers found.", err=True)
        raise typer.Exit(code=EXIT_EMPTY)
    typer.echo(f"\nBest: {best.identifier} ({best.working} working)")


@app.command("examples")
def examples_cmd() -> None:
    """Print known example identifiers."""
    for identifier in EXAMPLE_IDENTIFIERS:
        typer.echo(identifier)


@app.command("validate-catalog")
def validate_catalog_cmd(
    path_or_url: str = typer.Argument(..., help="Strategy catalog JSON path or URL"),
) -> None:
    """Validate a strategy catalog."""
    catalog = _load_catalog(path_or_url)
    total = sum(len(s.expand("0000000")) for s in catalog.strategies)
    typer.echo(
        f"✅ Catalog valid: {len(catalog.strategies)} strategies, {total} candidates per identifier."
    )


def main() -> None:
    app()


if __name__ == "__main__":
    main()
