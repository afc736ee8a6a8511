"""
Exporter configuration. Explicit arguments always win; anything left unset is read from the environment.

Environment variables:
    NEWR_API_KEY (or NEW_RELIC_API_KEY): ingest API key (required)
    NEWR_REGION: "us" (default) or "eu"
    NEWR_ENDPOINT: custom ingest domain, overrides NEWR_REGION
    NEWR_BATCH_MODE: "time" (default) or "size"
    NEWR_BATCH_TIMEOUT_SECONDS, NEWR_BATCH_MAX_ITEMS: time mode settings (default: 5s, 10 items)
    NEWR_BATCH_MIN_ITEMS: size mode setting (default: 10 items)
    NEWR_REQUEST_TIMEOUT_SECONDS: total timeout per HTTP request (default: 30s)
    NEWR_STARTUP_DELAY_SECONDS: delay before the export worker's first flush (default: 0s)
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Optional, Union

from .constants import LOG_TAG
from .http_utils import get_api_key, get_endpoint
from .types import ApiEndpoint, BatchMode, SizeBatchMode, TimeBatchMode

logger = logging.getLogger(LOG_TAG)

DEFAULT_BATCH_TIMEOUT_SECONDS = 5.0
DEFAULT_BATCH_ITEMS = 10
DEFAULT_REQUEST_TIMEOUT_SECONDS = 30.0


def _env_number(name: str, default: Union[int, float], cast=float) -> Union[int, float]:
    """Read a number from the environment, warning and falling back to default on bad values."""
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw.strip())
    except ValueError:
        logger.warning(f"Invalid {name} value '{raw}', using default {default}")
        return default


def get_batch_mode(batch_mode: Optional[BatchMode] = None) -> BatchMode:
    """Get the batch mode from parameter or NEWR_BATCH_* environment variables."""
    if batch_mode is not None:
        return batch_mode
    mode = (os.getenv("NEWR_BATCH_MODE") or "time").strip().lower()
    if mode == "size":
        return SizeBatchMode(min_items=_env_number("NEWR_BATCH_MIN_ITEMS", DEFAULT_BATCH_ITEMS, int))
    if mode != "time":
        logger.warning(f"Invalid NEWR_BATCH_MODE value '{mode}', using default 'time'")
    timeout_seconds = _env_number("NEWR_BATCH_TIMEOUT_SECONDS", DEFAULT_BATCH_TIMEOUT_SECONDS)
    if timeout_seconds <= 0:
        logger.warning(f"NEWR_BATCH_TIMEOUT_SECONDS must be > 0, got {timeout_seconds}, using default {DEFAULT_BATCH_TIMEOUT_SECONDS}")
        timeout_seconds = DEFAULT_BATCH_TIMEOUT_SECONDS
    return TimeBatchMode(
        timeout_seconds=timeout_seconds,
        max_items=_env_number("NEWR_BATCH_MAX_ITEMS", DEFAULT_BATCH_ITEMS, int),
    )


@dataclass
class ExporterConfig:
    """
    Everything the exporter needs to reach the ingest API. Validated at construction.

    Args:
        api_key: Ingest API key (defaults to NEWR_API_KEY, then NEW_RELIC_API_KEY)
        log_endpoint: Where log records go (defaults to NEWR_ENDPOINT / NEWR_REGION, else US)
        trace_endpoint: Where span records go (defaults to the same as log_endpoint)
        batch_mode: When a batch is ready (defaults to NEWR_BATCH_* env vars, else 5s / 10 items)
        request_timeout_seconds: Total timeout for one HTTP request
    """
    api_key: Optional[str] = None
    log_endpoint: Optional[ApiEndpoint] = None
    trace_endpoint: Optional[ApiEndpoint] = None
    batch_mode: Optional[BatchMode] = None
    request_timeout_seconds: Optional[float] = None
    connect_timeout_seconds: float = field(default=10.0)

    def __post_init__(self):
        self.api_key = get_api_key(self.api_key)
        if not self.api_key:
            raise ValueError("API key is required. Pass api_key or set NEWR_API_KEY.")
        self.log_endpoint = get_endpoint(self.log_endpoint)
        if self.trace_endpoint is None:
            self.trace_endpoint = self.log_endpoint
        self.batch_mode = get_batch_mode(self.batch_mode)
        if self.request_timeout_seconds is None:
            self.request_timeout_seconds = _env_number("NEWR_REQUEST_TIMEOUT_SECONDS", DEFAULT_REQUEST_TIMEOUT_SECONDS)
        if self.request_timeout_seconds <= 0:
            raise ValueError(f"request_timeout_seconds must be > 0, got {self.request_timeout_seconds}")

    @classmethod
    def from_api_key(cls, api_key: str, endpoint: Optional[ApiEndpoint] = None) -> "ExporterConfig":
        """Config for one key, sending logs and spans to the same endpoint."""
        return cls(api_key=api_key, log_endpoint=endpoint, trace_endpoint=endpoint)

    def __repr__(self) -> str:
        # keep the key out of logs
        return (f"ExporterConfig(log_endpoint={self.log_endpoint!r}, trace_endpoint={self.trace_endpoint!r}, "
            f"batch_mode={self.batch_mode!r}, request_timeout_seconds={self.request_timeout_seconds})")


def get_startup_delay(startup_delay_seconds: Optional[float] = None) -> float:
    """Get the worker's startup delay from parameter or NEWR_STARTUP_DELAY_SECONDS (default 0)."""
    if startup_delay_seconds is not None:
        return startup_delay_seconds
    return _env_number("NEWR_STARTUP_DELAY_SECONDS", 0.0)
