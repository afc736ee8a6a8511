"""
Background worker that feeds a NewrExporter from any number of producer threads.
Producers call submit(); a single asyncio loop in a daemon thread consumes the queue, pushes into the
exporter, and flushes when the batch tracker's time window runs out.
"""

import asyncio
import logging
import threading
import time
from typing import Any, List, Optional

from .config import get_startup_delay
from .constants import LOG_TAG
from .exceptions import RecordSerializationError
from .newr_exporter import NewrExporter

logger = logging.getLogger(LOG_TAG)

_STOP = object()


class _FlushRequest:
    def __init__(self):
        self.done = threading.Event()


class ExportWorker:
    """
    Owns a NewrExporter and the only thread allowed to touch it.
    The thread is started lazily on the first submit() to avoid thread creation during initialization.
    """

    def __init__(self, exporter: Optional[NewrExporter] = None, startup_delay_seconds: Optional[float] = None):
        """
        Args:
            exporter: The exporter to feed (defaults to NewrExporter() configured from environment variables)
            startup_delay_seconds: No time-triggered flush happens before this delay
                (default: 0, or NEWR_STARTUP_DELAY_SECONDS)
        """
        self.exporter = exporter if exporter is not None else NewrExporter()
        self.startup_delay_seconds = get_startup_delay(startup_delay_seconds)
        self.thread: Optional[threading.Thread] = None
        self.failure: Optional[BaseException] = None
        self.shutdown_requested = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: Optional[asyncio.Queue] = None
        self._ready = threading.Event()
        self._start_lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self.thread is not None and self.thread.is_alive()

    def submit(self, log_record: Any, span_record: Any) -> bool:
        """Queue one (log, span) pair. Thread-safe. Returns False if the pair was dropped."""
        if self.shutdown_requested or self.failure is not None:
            logger.warning(f"submit: worker is {'failed' if self.failure else 'shut down'}, dropping record pair")
            return False
        if not self._ensure_started():
            return False
        return self._put((log_record, span_record))

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Ask the worker for an immediate flush round and wait for it. Returns False on timeout."""
        if not self.is_running:
            return True
        if not self._ready.wait(timeout):
            return False
        request = _FlushRequest()
        if not self._put(request):
            return False
        finished = request.done.wait(timeout)
        if not finished:
            logger.warning(f"flush: flush round did not complete within {timeout}s")
        return finished

    def shutdown(self, timeout: Optional[float] = 30.0) -> None:
        """Stop accepting records, flush what is queued, close the transport and join the thread."""
        logger.info(f"shutdown: called - stopping export worker")
        self.shutdown_requested = True
        if not self.is_running:
            logger.debug(f"shutdown: no active worker thread")
            return
        self._ready.wait(timeout)
        self._put(_STOP)
        self.thread.join(timeout)
        if self.thread.is_alive():
            logger.warning(f"shutdown: worker thread did not complete within {timeout}s")
        else:
            logger.info(f"shutdown: completed")

    def _put(self, item: Any) -> bool:
        if self._loop is None:
            logger.warning(f"_put: worker loop is not running")
            return False
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, item)
            return True
        except RuntimeError as e:
            # loop already closed
            logger.warning(f"_put: worker loop is not accepting items: {e}")
            return False

    def _ensure_started(self) -> bool:
        # Fast path: check without lock first. The loop and queue exist once _ready is set
        if self.is_running and self._ready.is_set():
            return True
        with self._start_lock:
            if self.thread is None:
                self.thread = threading.Thread(target=self._worker, daemon=True, name="NEWR-ExportWorker")
                self.thread.start()
        self._ready.wait()
        return self.is_running

    def _worker(self) -> None:
        """Thread body. Runs its own event loop, isolated from any loop in the main thread."""
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            loop.run_until_complete(self._run())
        except RecordSerializationError as e:
            self.failure = e
            logger.error(f"Export worker stopped: records could not be serialised: {e}", exc_info=True)
        except Exception as e:
            self.failure = e
            logger.error(f"Export worker stopped by unexpected error: {e}", exc_info=True)
        finally:
            try:
                loop.run_until_complete(self.exporter.close())
            except Exception as e:
                logger.error(f"Error closing exporter transport: {e}")
            loop.close()
            self._ready.set()
            logger.debug(f"Export worker thread event loop closed")

    def _next_wait(self, started: float) -> Optional[float]:
        tracker = self.exporter.tracker
        until_timeout = tracker.time_until_timeout()
        if until_timeout is None:
            return None
        wait = max(until_timeout, tracker.time_until_complete())
        delay_left = self.startup_delay_seconds - (time.monotonic() - started)
        return max(wait, delay_left)

    async def _run(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._ready.set()
        logger.debug(f"Export worker thread started")

        started = time.monotonic()
        waiting_flushes: List[_FlushRequest] = []
        try:
            while True:
                try:
                    item = await asyncio.wait_for(self._queue.get(), timeout=self._next_wait(started))
                except asyncio.TimeoutError:
                    if self.exporter.tracker.is_complete():
                        await self.exporter.flush()
                    continue

                if item is _STOP:
                    await self._drain(waiting_flushes)
                    await self.exporter.flush()
                    return
                if isinstance(item, _FlushRequest):
                    waiting_flushes.append(item)
                    await self.exporter.flush()
                    waiting_flushes.remove(item)
                    item.done.set()
                    continue
                await self.exporter.push(*item)
        finally:
            # Never leave a flush() caller blocked
            for request in waiting_flushes:
                request.done.set()

    async def _drain(self, waiting_flushes: List[_FlushRequest]) -> None:
        """Push everything queued behind the stop marker. Flush callers are released after the final flush."""
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if isinstance(item, _FlushRequest):
                waiting_flushes.append(item)
            elif item is not _STOP:
                await self.exporter.push(*item)
