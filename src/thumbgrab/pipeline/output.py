"""
Output naming and persistence.

Deterministic filenames for archive members and archives, and helpers to
write an export to disk and describe it as a JSON-ready record.
"""

from __future__ import annotations

from pathlib import Path
import re
from typing import TYPE_CHECKING, Any

from filetype import guess

if TYPE_CHECKING:
    from .archive import ExportResult
    from .generator import CandidateDescriptor

ARCHIVE_EXTENSION = "zip"
DEFAULT_IMAGE_EXTENSION = "jpg"

_TOKEN_PATTERN = re.compile(r"[^A-Za-z0-9-]+")


def filename_token(value: str, fallback: str = "x") -> str:
    """Reduce a value to a filename-safe token (``_`` is reserved as separator)."""
    token = _TOKEN_PATTERN.sub("-", value).strip("-")
    return token or fallback


def member_filename(prefix: str, candidate: CandidateDescriptor, extension: str) -> str:
    """
    Filename of one image inside an archive.

    Format: ``<prefix>_<identifier>_<source>_<type>_<rank>.<ext>``. The
    generation rank makes it unique within a batch.

    Every field goes through filename_token(), so an underscore inside a
    field is written as a dash: source ``netflix_cdn`` appears as
    ``netflix-cdn``. The name can then be split back into its five fields
    on ``_``.

    Example:
        >>> member_filename("netflix", candidate, "jpg")
        'netflix_80057281_tmdb_alternative_25.jpg'
    """
    parts = [
        filename_token(prefix),
        filename_token(candidate.identifier),
        filename_token(candidate.source),
        filename_token(candidate.type),
        str(candidate.rank),
    ]
    return "_".join(parts) + f".{extension}"


def archive_filename(
    prefix: str,
    identifier: str,
    timestamp_ms: int,
    extension: str = ARCHIVE_EXTENSION,
) -> str:
    """
    Filename of an archive: ``<prefix>_<identifier>_<timestamp>.<ext>``.

    Parameters:
        prefix: Leading token
        identifier: Canonical identifier
        timestamp_ms: Milliseconds since the epoch
        extension: Archive extension
    """
    return f"{filename_token(prefix)}_{filename_token(identifier)}_{timestamp_ms}.{extension}"


def guess_image_extension(data: bytes, default: str = DEFAULT_IMAGE_EXTENSION) -> str:
    """Detect the image type from its signature; returns a lowercase extension."""
    kind = guess(data)
    if kind and kind.mime.startswith("image/"):
        ext = kind.extension.lower()
        return "jpg" if ext == "jpeg" else ext
    return default


def write_payload(result: ExportResult, output_dir: Path) -> Path:
    """
    Write an export's payload into ``output_dir``.

    Creates the directory if it doesn't exist.

    Returns:
        Path of the written file

    Raises:
        ValueError: If the export has no payload
    """
    if result.payload is None or result.filename is None:
        raise ValueError("export has no payload to write")
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / result.filename
    path.write_bytes(result.payload)
    return path


def export_record(result: ExportResult) -> dict[str, Any]:
    """Describe an export as a JSON-serializable dictionary."""
    summary = result.summary
    return {
        "filename": result.filename,
        "archive": result.is_archive,
        "bytes": len(result.payload) if result.payload is not None else 0,
        "requested": summary.requested,
        "succeeded": summary.succeeded,
        "failed": summary.failed,
        "error": result.error.value if result.error else None,
        "cancelled": result.cancelled,
        "members": [entry.filename for entry in result.manifest.entries],
        "failures": [
            {"candidate": f.candidate.id, "reason": f.reason}
            for f in result.manifest.failures
        ],
    }
