"""Pipeline configuration."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_CONCURRENCY = 6
DEFAULT_PROBE_TIMEOUT = 8.0
DEFAULT_TRIM_THRESHOLD = 30
DEFAULT_JPEG_QUALITY = 95  # 0.95 on a 0-1 scale
DEFAULT_PREFIX = "netflix"
DEFAULT_USER_AGENT = "thumbgrab/0.1"


class PipelineConfig(BaseModel):
    """
    Caller-owned settings for one pipeline run.

    Attributes:
        concurrency: Maximum number of requests in flight at once
        probe_timeout: Upper bound in seconds for a single probe or fetch
        trim_threshold: Channel value (0-255) at or below which a pixel is blank
        enable_trim: Trim border bands before archiving; raw bytes otherwise
        jpeg_quality: Quality used when re-encoding trimmed images
        prefix: Leading token of every output filename
        fallback_proxies: URL prefixes tried in order after a failed direct fetch
        user_agent: User-Agent header sent with every request
    """

    model_config = ConfigDict(frozen=True)

    concurrency: int = Field(default=DEFAULT_CONCURRENCY, ge=1)
    probe_timeout: float = Field(default=DEFAULT_PROBE_TIMEOUT, gt=0)
    trim_threshold: int = Field(default=DEFAULT_TRIM_THRESHOLD, ge=0, le=255)
    enable_trim: bool = True
    jpeg_quality: int = Field(default=DEFAULT_JPEG_QUALITY, ge=1, le=100)
    prefix: str = Field(default=DEFAULT_PREFIX, min_length=1)
    fallback_proxies: tuple[str, ...] = ()
    user_agent: str = DEFAULT_USER_AGENT
