"""
Decides when the exporter's buffers should be flushed.
"""

import asyncio
import time
from typing import Awaitable, Callable, Optional

from .types import BatchMode, SizeBatchMode, TimeBatchMode


class BatchTracker:
    """
    Counts items added since the last reset and reports when a batch is complete.

    TimeBatchMode: complete once max_items were added, or timeout_seconds passed since the last item.
    SizeBatchMode: complete once min_items were added. There is no time trigger.

    The tracker never touches the buffers. reset() only zeroes the counter and restarts the time window.
    """

    def __init__(self, mode: BatchMode, clock: Callable[[], float] = time.monotonic):
        if not isinstance(mode, (TimeBatchMode, SizeBatchMode)):
            raise TypeError(f"Unsupported batch mode: {mode!r}")
        self.mode = mode
        self._clock = clock
        now = clock()
        self.last_update_time = now
        self.last_reset_time = now
        self.current_item_count = 0

    def add_new_items(self, count: int) -> None:
        self.current_item_count += count
        self.last_update_time = self._clock()

    def is_complete(self) -> bool:
        if isinstance(self.mode, TimeBatchMode):
            if self.current_item_count >= self.mode.max_items:
                return True
            return self._clock() - self.last_update_time >= self.mode.timeout_seconds
        return self.current_item_count >= self.mode.min_items

    def reset(self) -> None:
        self.current_item_count = 0
        self.last_reset_time = self._clock()

    def time_until_timeout(self) -> Optional[float]:
        """Seconds until timeout_seconds have passed since the last reset (0 if overdue). None in size mode."""
        if not isinstance(self.mode, TimeBatchMode):
            return None
        elapsed = self._clock() - self.last_reset_time
        return max(0.0, self.mode.timeout_seconds - elapsed)

    def time_until_complete(self) -> Optional[float]:
        """Seconds until is_complete() turns true with no further items (0 if it already is). None in size mode."""
        if not isinstance(self.mode, TimeBatchMode):
            return None
        if self.current_item_count >= self.mode.max_items:
            return 0.0
        idle = self._clock() - self.last_update_time
        return max(0.0, self.mode.timeout_seconds - idle)

    def timeout_future(self) -> Optional[Awaitable[None]]:
        """
        An awaitable that resolves when the time window since the last reset is over, so the caller can
        re-check is_complete() even if no new items arrive. None in size mode. Must be awaited if not None.
        """
        remaining = self.time_until_timeout()
        if remaining is None:
            return None
        return asyncio.sleep(remaining)

    def __repr__(self) -> str:
        return f"BatchTracker(mode={self.mode!r}, current_item_count={self.current_item_count})"
