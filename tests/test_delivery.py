"""
Unit tests for delivery.py (DeliverySession state machine).
"""

import asyncio

import aiohttp
import pytest

from newr.delivery import DeliverySession
from newr.exceptions import RecordSerializationError
from newr.record_kinds import LOGS, SPANS
from newr.transport import TransportResponse
from newr.types import ApiEndpoint, SendState, SendStatus

from conftest import FakeTransport


def make_session(records, responder=None, kind=LOGS):
    transport = FakeTransport(responder)
    return DeliverySession(kind, records, ApiEndpoint.us(), "test-api-key", transport), transport


class TestSuccess:
    """2xx responses."""

    @pytest.mark.asyncio
    async def test_empty_session_is_finished(self):
        """An empty slice finishes without any request, every time."""
        session, transport = make_session([])
        assert await session.send() == SendStatus.finished()
        assert await session.send() == SendStatus.finished()
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_whole_snapshot_in_one_request(self):
        session, transport = make_session([{"n": 1}, {"n": 2}, {"n": 3}])
        assert (await session.send()).state == SendState.FINISHED
        assert transport.batches("log") == [[{"n": 1}, {"n": 2}, {"n": 3}]]
        assert session.delivered_count == 3
        assert session.abandoned_count == 0

    @pytest.mark.asyncio
    async def test_success_resets_retry_count(self):
        session, _ = make_session([1, 2], lambda kind, batch: 202)
        session.retry_count = 3
        await session.send()
        assert session.retry_count == 0

    @pytest.mark.asyncio
    async def test_request_headers(self):
        """Span requests carry the trace data format headers on top of the common ones."""
        session, transport = make_session([{"id": "a"}], kind=SPANS)
        await session.send()
        request = transport.requests[0]
        assert request["url"] == "https://trace-api.newrelic.com/trace/v1"
        assert request["headers"]["Api-Key"] == "test-api-key"
        assert request["headers"]["Content-Encoding"] == "gzip"
        assert request["headers"]["Content-Type"] == "application/json"
        assert request["headers"]["Data-Format"] == "newrelic"
        assert request["headers"]["Data-Format-Version"] == "1"


class TestPermanentRejection:
    """4xx statuses that are never retried."""

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 405, 409, 410, 411])
    @pytest.mark.asyncio
    async def test_abandons_entire_remaining_slice(self, status):
        session, transport = make_session(list(range(8)), lambda kind, batch: status)
        assert await session.send() == SendStatus.finished()
        assert len(transport.requests) == 1
        assert session.remaining == []
        assert session.abandoned_count == 8


class TestPayloadTooLarge:
    """413 responses shrink the batch."""

    @pytest.mark.asyncio
    async def test_halves_batch_len_without_advancing(self):
        session, _ = make_session(list(range(5)), lambda kind, batch: 413)
        assert await session.send() == SendStatus.remaining()
        assert session.batch_len == 2
        assert session.remaining == list(range(5))
        assert await session.send() == SendStatus.remaining()
        assert session.batch_len == 1

    @pytest.mark.asyncio
    async def test_single_record_too_large_is_abandoned(self):
        session, _ = make_session([{"huge": True}, {"small": True}], lambda kind, batch: 413)
        session.batch_len = 1
        assert await session.send() == SendStatus.finished()
        assert session.remaining == []
        assert session.abandoned_count == 2

    @pytest.mark.asyncio
    async def test_singletons_delivered_after_degrading(self):
        """413 for batches larger than one, 200 for singletons: every record is sent on its own."""
        session, transport = make_session(list(range(5)), lambda kind, batch: 413 if len(batch) > 1 else 200)
        statuses = []
        while True:
            status = await session.send()
            statuses.append(status.state)
            if status.is_finished:
                break
        assert [len(b) for b in transport.batches("log")] == [5, 2, 1, 1, 1, 1, 1]
        assert session.delivered_count == 5
        assert statuses[-1] == SendState.FINISHED


class TestRateLimited:
    """429 responses."""

    @pytest.mark.asyncio
    async def test_waits_for_retry_after(self):
        response = TransportResponse(status=429, headers={"retry-after": "3"})
        session, _ = make_session([1, 2], lambda kind, batch: response)
        assert await session.send() == SendStatus.timeout(3)
        assert session.remaining == [1, 2]

    @pytest.mark.parametrize("headers", [{}, {"retry-after": "soon"}, {"retry-after": "-4"}])
    @pytest.mark.asyncio
    async def test_abandons_without_usable_retry_after(self, headers):
        response = TransportResponse(status=429, headers=headers)
        session, _ = make_session([1, 2], lambda kind, batch: response)
        assert await session.send() == SendStatus.finished()
        assert session.abandoned_count == 2


class TestTransientFailures:
    """5xx, unexpected statuses and network errors back off exponentially."""

    @pytest.mark.asyncio
    async def test_backoff_schedule_then_abandon(self):
        session, transport = make_session([1], lambda kind, batch: 503)
        delays = []
        while True:
            status = await session.send()
            if status.is_finished:
                break
            assert status.is_timeout
            delays.append(status.delay)
        assert delays == [0, 1, 2, 4, 8, 16]
        assert len(transport.requests) == 7
        assert session.abandoned_count == 1

    @pytest.mark.parametrize("error", [aiohttp.ClientConnectionError("refused"), asyncio.TimeoutError()])
    @pytest.mark.asyncio
    async def test_network_error_is_transient(self, error):
        def responder(kind, batch):
            raise error

        session, _ = make_session([1], responder)
        assert await session.send() == SendStatus.timeout(0)
        assert session.retry_count == 1
        assert session.remaining == [1]

    @pytest.mark.asyncio
    async def test_unexpected_status_is_transient(self):
        session, _ = make_session([1], lambda kind, batch: 302)
        assert await session.send() == SendStatus.timeout(0)


class TestSerialization:

    @pytest.mark.asyncio
    async def test_unserialisable_record_raises(self):
        session, transport = make_session([object()])
        with pytest.raises(RecordSerializationError):
            await session.send()
        assert transport.requests == []
