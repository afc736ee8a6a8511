"""
Exporter that buffers log and span records and flushes them to the ingest API in lockstep.
Not thread-safe: push() and flush() expect a single writer. Use ExportWorker to feed it from many threads.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, List, Optional

from .batch import BatchTracker
from .config import ExporterConfig
from .constants import LOG_TAG
from .delivery import DeliverySession
from .record_kinds import LOGS, SPANS
from .transport import AiohttpTransport
from .types import FlushStats

logger = logging.getLogger(LOG_TAG)


class NewrExporter:
    """
    Owns the log and span buffers and one BatchTracker shared by both.

    A flush round swaps both buffers for fresh ones and runs one DeliverySession per buffer,
    advancing both concurrently until both report FINISHED. Records pushed while a round is
    in progress go into the fresh buffers and are sent by the next round.
    """

    def __init__(
        self,
        config: Optional[ExporterConfig] = None,
        transport=None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            config: Exporter configuration (defaults to ExporterConfig() built from environment variables)
            transport: Async context manager with an async post(url, body, headers) method.
                Defaults to an AiohttpTransport using the configured timeouts.
            sleep: Coroutine function used for backoff and rate-limit waits
            clock: Monotonic clock for the batch tracker
        """
        self.config = config if config is not None else ExporterConfig()
        self._transport = transport if transport is not None else AiohttpTransport(
            total_timeout_seconds=self.config.request_timeout_seconds,
            connect_timeout_seconds=self.config.connect_timeout_seconds,
        )
        self._sleep = sleep
        self.tracker = BatchTracker(self.config.batch_mode, clock=clock)
        self.logs_buffer: List[Any] = []
        self.spans_buffer: List[Any] = []
        self.last_flush_stats: Optional[FlushStats] = None
        logger.info(f"Initializing NewrExporter: {self.config!r}")

    @classmethod
    def from_api_key(cls, api_key: str, endpoint=None, **kwargs) -> "NewrExporter":
        return cls(ExporterConfig.from_api_key(api_key, endpoint), **kwargs)

    async def push(self, log_record: Any, span_record: Any) -> Optional[float]:
        """
        Buffer one log record and one span record. Flushes straight away if the batch is complete.

        Returns:
            None if a flush ran (or size mode has no time trigger), otherwise the number of seconds
            after which the caller should check the tracker again.
        """
        self.logs_buffer.append(log_record)
        self.spans_buffer.append(span_record)
        self.tracker.add_new_items(2)
        logger.debug(f"push: logs_buffer={len(self.logs_buffer)}, spans_buffer={len(self.spans_buffer)}")

        if self.tracker.is_complete():
            await self.flush()
            return None
        return self.tracker.time_until_timeout()

    async def flush(self) -> None:
        """
        Run one flush round. Returns when both record kinds have been delivered or abandoned.
        Safe to call with empty buffers. Raises RecordSerializationError if a record cannot be serialised.
        """
        self.tracker.reset()
        if not self.logs_buffer and not self.spans_buffer:
            logger.debug(f"flush: nothing to flush")
            return

        # Take ownership of the current records; later pushes go to the fresh buffers
        logs, self.logs_buffer = self.logs_buffer, []
        spans, self.spans_buffer = self.spans_buffer, []
        logger.debug(f"flush: flushing {len(logs)} log record(s) and {len(spans)} span record(s)")

        logs_session = DeliverySession(LOGS, logs, self.config.log_endpoint, self.config.api_key, self._transport)
        spans_session = DeliverySession(SPANS, spans, self.config.trace_endpoint, self.config.api_key, self._transport)
        waited = 0.0

        async with self._transport:
            while True:
                # Both sends settle before any error is raised, so no request outlives the transport
                results = await asyncio.gather(logs_session.send(), spans_session.send(), return_exceptions=True)
                for result in results:
                    if isinstance(result, BaseException):
                        raise result
                logs_status, spans_status = results

                if logs_status.is_finished and spans_status.is_finished:
                    break
                # One wait for both sessions: the slower one sets the pace
                if logs_status.is_timeout and spans_status.is_timeout:
                    delay = max(logs_status.delay, spans_status.delay)
                elif logs_status.is_timeout:
                    delay = logs_status.delay
                elif spans_status.is_timeout:
                    delay = spans_status.delay
                else:
                    continue
                waited += delay
                await self._sleep(delay)

        self.last_flush_stats = FlushStats(
            logs_delivered=logs_session.delivered_count,
            logs_abandoned=logs_session.abandoned_count,
            spans_delivered=spans_session.delivered_count,
            spans_abandoned=spans_session.abandoned_count,
            requests=logs_session.request_count + spans_session.request_count,
            waited_seconds=waited,
        )
        stats = self.last_flush_stats
        if stats.logs_abandoned or stats.spans_abandoned:
            logger.warning(f"flush: completed with data loss: {stats}")
        else:
            logger.info(f"flush: sent {stats.logs_delivered} log record(s) and {stats.spans_delivered} span record(s) "
                f"in {stats.requests} request(s)"
            )

    async def close(self) -> None:
        """Release the transport. Does not flush: call flush() first if buffered records matter."""
        if self.logs_buffer or self.spans_buffer:
            logger.warning(f"close: {len(self.logs_buffer)} log and {len(self.spans_buffer)} span record(s) not flushed")
        close = getattr(self._transport, "close", None)
        if close is not None:
            await close()
