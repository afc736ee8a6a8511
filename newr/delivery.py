"""
Delivery session: drives one snapshot of records of one kind to completion against its endpoint.

Each call to send() makes at most one request and returns a SendStatus telling the caller whether
to stop (FINISHED), continue straight away (REMAINING), or wait first (TIMEOUT).

Failure handling:
    2xx: batch accepted, move on to the rest.
    400, 401, 403, 404, 405, 409, 410, 411: the data will never be accepted, abandon everything left.
    413: halve the batch size and try again. A single record that is too large is abandoned.
    429: wait for retry-after seconds. Without a usable retry-after, abandon.
    anything else, including network errors: retry immediately, then after 1s, 2s, 4s, 8s, 16s, then abandon.
"""

import asyncio
import logging
from typing import Any, List, Mapping, Optional, Sequence

import aiohttp

from .constants import (
    LOG_TAG,
    MAX_BACKOFF_RETRIES,
    PAYLOAD_TOO_LARGE_STATUS,
    PERMANENT_REJECTION_STATUSES,
    RATE_LIMITED_STATUS,
)
from .http_utils import format_http_error, parse_retry_after
from .record_kinds import RecordKind
from .types import ApiEndpoint, SendStatus

logger = logging.getLogger(LOG_TAG)

# Transport failures are classed with 5xx. Anything else (e.g. RecordSerializationError) propagates.
TRANSIENT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, OSError)


class DeliverySession:
    """
    State: the records still to send, how many go in each request (batch_len), and the retry count
    for the current transient failure streak. batch_len starts at the snapshot size and only shrinks.
    """

    def __init__(self, kind: RecordKind, records: Sequence[Any], endpoint: ApiEndpoint, api_key: str, transport):
        self.kind = kind
        self.remaining: List[Any] = list(records)
        self.batch_len = max(1, len(self.remaining))
        self.retry_count = 0
        self.endpoint = endpoint
        self._api_key = api_key
        self._transport = transport
        self.delivered_count = 0
        self.abandoned_count = 0
        self.request_count = 0

    async def send(self) -> SendStatus:
        if not self.remaining:
            return SendStatus.finished()

        batch = self.remaining[:self.batch_len]
        request = self.kind.build_request(batch, self.endpoint, self._api_key)
        logger.debug(f"send: posting {len(batch)} {self.kind.name} record(s) to {request.url} "
            f"({len(request.body)} bytes, {len(self.remaining)} remaining)"
        )

        self.request_count += 1
        try:
            response = await self._transport.post(request.url, request.body, request.headers)
        except TRANSIENT_ERRORS as e:
            logger.warning(f"send: network error sending {self.kind.name} records: {type(e).__name__}: {e}")
            return self._backoff()

        return self.handle_response(response.status, response.headers, len(batch), response.reason)

    def handle_response(self, status: int, headers: Mapping[str, str], sent_count: int, reason: Optional[str] = None) -> SendStatus:
        """Apply one response to the session state. sent_count is how many records the request carried."""
        if 200 <= status < 300:
            del self.remaining[:sent_count]
            self.delivered_count += sent_count
            self.retry_count = 0
            logger.debug(f"handle_response: {sent_count} {self.kind.name} record(s) accepted, {len(self.remaining)} remaining")
            return SendStatus.finished() if not self.remaining else SendStatus.remaining()

        operation = f"send {sent_count} {self.kind.name} record(s)"

        if status in PERMANENT_REJECTION_STATUSES:
            logger.error(f"handle_response: {format_http_error(status, reason, operation)} - not retrying")
            return self._abandon(f"rejected with status {status}")

        if status == PAYLOAD_TOO_LARGE_STATUS:
            if self.batch_len == 1:
                logger.warning(f"handle_response: a single {self.kind.name} record is too large for the server")
                return self._abandon("single record too large")
            self.batch_len = max(1, self.batch_len // 2)
            logger.info(f"handle_response: payload too large, reducing {self.kind.name} batch size to {self.batch_len}")
            return SendStatus.remaining()

        if status == RATE_LIMITED_STATUS:
            retry_after = parse_retry_after(headers)
            if retry_after is None:
                return self._abandon("rate limited without retry-after")
            logger.info(f"handle_response: rate limited, retrying {self.kind.name} records in {retry_after}s")
            return SendStatus.timeout(retry_after)

        logger.warning(f"handle_response: {format_http_error(status, reason, operation)}")
        return self._backoff()

    def _backoff(self) -> SendStatus:
        if self.retry_count == 0:
            self.retry_count += 1
            return SendStatus.timeout(0)
        if self.retry_count <= MAX_BACKOFF_RETRIES:
            delay = 2 ** (self.retry_count - 1)
            self.retry_count += 1
            logger.debug(f"_backoff: {self.kind.name} retry #{self.retry_count - 1} in {delay}s")
            return SendStatus.timeout(delay)
        return self._abandon(f"gave up after {self.retry_count} retries")

    def _abandon(self, why: str) -> SendStatus:
        lost = len(self.remaining)
        self.remaining = []
        self.abandoned_count += lost
        logger.warning(f"_abandon: dropping {lost} {self.kind.name} record(s): {why}")
        return SendStatus.finished()

    def __repr__(self) -> str:
        return (f"DeliverySession(kind={self.kind.name}, remaining={len(self.remaining)}, "
            f"batch_len={self.batch_len}, retry_count={self.retry_count})")
