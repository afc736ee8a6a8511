"""
Tests for worker.py: feeding the exporter from other threads.
"""

import threading
import time

from newr.config import ExporterConfig
from newr.exceptions import RecordSerializationError
from newr.newr_exporter import NewrExporter
from newr.types import SizeBatchMode, TimeBatchMode
from newr.worker import ExportWorker

from conftest import FakeTransport


def make_worker(batch_mode, startup_delay_seconds=0.0):
    transport = FakeTransport()
    exporter = NewrExporter(ExporterConfig(api_key="test-api-key", batch_mode=batch_mode), transport=transport)
    return ExportWorker(exporter, startup_delay_seconds=startup_delay_seconds), transport


def wait_for(condition, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return False


class TestExportWorker:
    """Tests for ExportWorker."""

    def test_thread_created_lazily_on_first_submit(self):
        worker, _ = make_worker(SizeBatchMode(min_items=1000))
        assert worker.thread is None
        assert worker.submit({"log": 0}, {"span": 0})
        assert worker.is_running
        worker.shutdown(timeout=5.0)

    def test_flush_sends_queued_records(self):
        worker, transport = make_worker(SizeBatchMode(min_items=1000))
        for i in range(3):
            worker.submit({"log": i}, {"span": i})
        assert worker.flush(timeout=5.0)
        assert transport.batches("log") == [[{"log": 0}, {"log": 1}, {"log": 2}]]
        assert transport.batches("span") == [[{"span": 0}, {"span": 1}, {"span": 2}]]
        worker.shutdown(timeout=5.0)

    def test_size_mode_flushes_when_batch_complete(self):
        worker, transport = make_worker(SizeBatchMode(min_items=4))
        worker.submit({"log": 0}, {"span": 0})
        worker.submit({"log": 1}, {"span": 1})
        assert wait_for(lambda: len(transport.requests) == 2)
        worker.shutdown(timeout=5.0)

    def test_time_mode_flushes_after_idle_timeout(self):
        worker, transport = make_worker(TimeBatchMode(timeout_seconds=0.05, max_items=100))
        worker.submit({"log": 0}, {"span": 0})
        assert wait_for(lambda: len(transport.requests) == 2)
        worker.shutdown(timeout=5.0)

    def test_startup_delay_holds_back_time_trigger(self):
        """No time-triggered flush happens before the startup delay has passed."""
        worker, transport = make_worker(TimeBatchMode(timeout_seconds=0.05, max_items=100), startup_delay_seconds=0.5)
        worker.submit({"log": 0}, {"span": 0})
        time.sleep(0.2)
        assert transport.requests == []
        assert wait_for(lambda: len(transport.requests) == 2)
        worker.shutdown(timeout=5.0)

    def test_submit_during_startup_waits_for_worker_loop(self):
        """A producer that arrives while the thread is starting waits for the loop instead of failing."""
        worker, transport = make_worker(SizeBatchMode(min_items=1000))
        gate = threading.Event()
        start_worker = worker._worker

        def slow_start():
            gate.wait(5.0)
            start_worker()

        worker._worker = slow_start
        results = []
        producers = [
            threading.Thread(target=lambda i=i: results.append(worker.submit({"log": i}, {"span": i})))
            for i in range(2)
        ]
        for producer in producers:
            producer.start()
        assert wait_for(lambda: worker.is_running)
        time.sleep(0.05)
        gate.set()
        for producer in producers:
            producer.join(5.0)
        assert results == [True, True]
        assert worker.flush(timeout=5.0)
        assert sorted(record["log"] for record in transport.batches("log")[0]) == [0, 1]
        worker.shutdown(timeout=5.0)

    def test_shutdown_flushes_and_stops(self):
        worker, transport = make_worker(SizeBatchMode(min_items=1000))
        worker.submit({"log": 0}, {"span": 0})
        worker.submit({"log": 1}, {"span": 1})
        worker.shutdown(timeout=5.0)
        assert not worker.is_running
        assert transport.batches("log") == [[{"log": 0}, {"log": 1}]]
        assert worker.submit({"log": 2}, {"span": 2}) is False

    def test_shutdown_without_start(self):
        worker, transport = make_worker(SizeBatchMode(min_items=1000))
        worker.shutdown(timeout=1.0)
        assert worker.thread is None
        assert transport.requests == []

    def test_serialisation_failure_stops_worker(self):
        worker, _ = make_worker(SizeBatchMode(min_items=1000))
        worker.submit({"log": object()}, {"span": 0})
        # the waiting caller is released even though the round failed
        assert worker.flush(timeout=5.0)
        worker.thread.join(timeout=5.0)
        assert isinstance(worker.failure, RecordSerializationError)
        assert worker.submit({"log": 1}, {"span": 1}) is False
