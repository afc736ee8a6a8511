"""
Shared fixtures: a simulated ingest endpoint and a sleep that records instead of waiting.
"""

import gzip
import json

import pytest

from newr.config import ExporterConfig
from newr.transport import TransportResponse
from newr.types import SizeBatchMode


class FakeTransport:
    """
    Stands in for AiohttpTransport. `responder(kind, batch)` decides each response, where kind is
    "log" or "span" (from the URL) and batch is the decoded request body. It may return a
    TransportResponse, a status code, or raise an exception to simulate a network error.
    """

    def __init__(self, responder=None):
        self.responder = responder or (lambda kind, batch: 200)
        self.requests = []
        self.opened = 0
        self.closed = 0

    async def __aenter__(self):
        self.opened += 1
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.closed += 1

    async def post(self, url, body, headers):
        kind = "span" if url.endswith("/trace/v1") else "log"
        batch = json.loads(gzip.decompress(body))
        self.requests.append({"kind": kind, "url": url, "headers": headers, "batch": batch})
        result = self.responder(kind, batch)
        if isinstance(result, int):
            return TransportResponse(status=result)
        return result

    async def close(self):
        pass

    def batches(self, kind):
        return [r["batch"] for r in self.requests if r["kind"] == kind]


class SleepRecorder:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def sleep_recorder():
    return SleepRecorder()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def size_config():
    """Config that never flushes on its own before 1000 items, so tests call flush() explicitly."""
    return ExporterConfig(api_key="test-api-key", batch_mode=SizeBatchMode(min_items=1000))
