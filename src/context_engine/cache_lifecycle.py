# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Periodic sweep of stale cache entries.

The timer owns one daemon thread that wakes every interval seconds and calls
SummaryCache.cleanup_stale_entries(). stop() sets an event and joins the
thread, so no sweep starts after stop() returns.

A sweep may run while a collection is in flight. An entry evicted under a
concurrent lookup simply turns that lookup into a miss.
"""

import logging
import threading
from typing import Optional

from context_engine.cache import SummaryCache

logger = logging.getLogger(__name__)


class CacheCleanupTimer:
    """Recurring stale-entry sweep bound to an engine's lifetime.

    Usage:
        timer = CacheCleanupTimer(cache, interval=3600)
        timer.start()
        ...
        timer.stop()
    """

    def __init__(self, cache: SummaryCache, interval: float) -> None:
        """Initialize the timer (not started).

        Args:
            cache: Cache to sweep.
            interval: Seconds between sweeps.
        """
        self._cache = cache
        self._interval = interval
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._sweep_count = 0

    @property
    def interval(self) -> float:
        """Seconds between sweeps."""
        return self._interval

    @property
    def sweep_count(self) -> int:
        """Number of sweeps completed since construction."""
        return self._sweep_count

    def start(self) -> None:
        """Start the sweep thread, restarting it if already running."""
        if self.is_running():
            self.stop()

        self._stop_event = threading.Event()
        self._thread = threading.Thread(
            target=self._run,
            args=(self._stop_event,),
            name="context-cache-cleanup",
            daemon=True,
        )
        self._thread.start()
        logger.debug(f"Cache cleanup timer started (interval={self._interval}s)")

    def stop(self) -> None:
        """Stop the sweep thread and wait for it to exit."""
        if self._thread is None:
            return

        self._stop_event.set()
        if self._thread is not threading.current_thread():
            self._thread.join(timeout=5.0)
        self._thread = None
        logger.debug("Cache cleanup timer stopped")

    def restart(self, interval: float) -> None:
        """Restart with a new interval."""
        self._interval = interval
        self.start()

    def is_running(self) -> bool:
        """Check if the sweep thread is alive."""
        return self._thread is not None and self._thread.is_alive()

    def _run(self, stop_event: threading.Event) -> None:
        # wait() returns True only once stop() has been called
        while not stop_event.wait(self._interval):
            try:
                self._cache.cleanup_stale_entries()
            except Exception as e:
                logger.error(f"Cache cleanup sweep failed: {e}")
            self._sweep_count += 1
