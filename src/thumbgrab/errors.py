"""
Error taxonomy for the thumbnail pipeline.

Single operations (resolving an identifier, decoding or trimming one image)
raise the exception classes below. Whole-batch conditions are never raised
out of the pipeline; they are reported through the ``error`` field of the
typed results using ``ErrorCode``.
"""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """Reportable error conditions."""

    INVALID_IDENTIFIER = "InvalidIdentifier"
    NO_CANDIDATES_GENERATED = "NoCandidatesGenerated"
    ALL_PROBES_FAILED = "AllProbesFailed"
    IMAGE_DECODE_ERROR = "ImageDecodeError"
    EMPTY_AFTER_TRIM = "EmptyAfterTrim"
    ARCHIVE_EMPTY = "ArchiveEmpty"


class ThumbgrabError(Exception):
    """Base exception for all pipeline errors."""

    code: ErrorCode


class InvalidIdentifier(ThumbgrabError):
    """Raised when no identifier can be extracted from the input."""

    code = ErrorCode.INVALID_IDENTIFIER


class ImageDecodeError(ThumbgrabError):
    """Raised when fetched bytes cannot be decoded as an image."""

    code = ErrorCode.IMAGE_DECODE_ERROR


class EmptyAfterTrim(ThumbgrabError):
    """Raised when every row of an image is blank, leaving nothing to keep."""

    code = ErrorCode.EMPTY_AFTER_TRIM
