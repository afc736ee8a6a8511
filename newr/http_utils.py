"""
Shared HTTP utilities for the newr client.
Provides functions for compressing request bodies, reading response headers, and accessing environment variables.
Supports newr-specific env vars (NEWR_API_KEY, NEWR_REGION, NEWR_ENDPOINT) with fallback to NEW_RELIC_API_KEY.
"""

import gzip
import json
import logging
import os
from typing import Any, Dict, Mapping, Optional, Sequence

from .constants import LOG_TAG
from .exceptions import RecordSerializationError
from .types import ApiEndpoint, Region

logger = logging.getLogger(LOG_TAG)


def to_gz(records: Sequence[Any]) -> bytes:
    """
    Serialise records as a JSON array and gzip it at the fastest compression level.

    Raises:
        RecordSerializationError: if a record is not JSON-serialisable.
    """
    try:
        json_bytes = json.dumps(list(records)).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise RecordSerializationError(f"Cannot serialise batch of {len(records)} record(s): {e}") from e
    return gzip.compress(json_bytes, compresslevel=1)


def build_headers(api_key: str, extra: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """
    Build HTTP headers for ingest requests.

    Args:
        api_key: Ingest API key, sent as the Api-Key header.
        extra: Additional headers for a specific record kind (e.g. Data-Format for traces).

    Returns:
        Dictionary with Content-Type, Content-Encoding, Api-Key and any extra headers.
    """
    headers = {
        "Content-Type": "application/json",
        "Content-Encoding": "gzip",
        "Api-Key": api_key,
    }
    if extra:
        headers.update(extra)
    return headers


def parse_retry_after(headers: Mapping[str, str]) -> Optional[int]:
    """
    Read the retry-after header as a whole number of seconds.
    Returns None if the header is missing, negative, or not an integer (HTTP-date values are not supported).
    """
    value = None
    for key, header_value in headers.items():
        if key.lower() == "retry-after":
            value = header_value
            break
    if value is None:
        return None
    try:
        seconds = int(str(value).strip())
    except ValueError:
        logger.debug(f"parse_retry_after: ignoring non-numeric retry-after {value!r}")
        return None
    if seconds < 0:
        return None
    return seconds


def get_api_key(api_key: Optional[str] = None) -> str:
    """
    Get API key from parameter or environment variable.

    Checks NEWR_API_KEY first, then falls back to NEW_RELIC_API_KEY.

    Returns:
        API key or empty string if not set.
    """
    if api_key:
        return api_key
    return os.getenv("NEWR_API_KEY") or os.getenv("NEW_RELIC_API_KEY") or ""


def get_endpoint(endpoint: Optional[ApiEndpoint] = None) -> ApiEndpoint:
    """
    Get the ingest endpoint from parameter or environment variables.

    NEWR_ENDPOINT (a custom domain) wins over NEWR_REGION ("us" or "eu").
    Defaults to the US region.
    """
    if endpoint is not None:
        return endpoint

    domain = os.getenv("NEWR_ENDPOINT")
    if domain:
        return ApiEndpoint.custom(domain)

    region = (os.getenv("NEWR_REGION") or "").strip().lower()
    if region == Region.EU.value:
        return ApiEndpoint.eu()
    if region and region != Region.US.value:
        logger.warning(f"Invalid NEWR_REGION value '{region}', using default 'us'")
    return ApiEndpoint.us()


def format_http_error(status: int, reason: Optional[str], operation: str) -> str:
    """
    Format an HTTP error message for logging.

    Args:
        status: HTTP status code
        reason: HTTP reason phrase, if the transport provided one
        operation: Description of the operation that failed (e.g., "send 10 log record(s)")
    """
    return f"Failed to {operation}: {status} {reason or ''}".rstrip()
