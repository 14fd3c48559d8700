"""
Base class for interval-driven signal adapters.

Each adapter runs as one task on the event loop, samples its device or
resource once per interval, and forwards raw observations to a feed
callback.  A failed sample is logged and skipped; it never ends the
loop.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, Optional

from exam_proctor.core.utils import get_logger

log = get_logger("monitor")

# feed(signal, observation, timestamp)
FeedFn = Callable[[Any, Any, float], None]


class PollingMonitor:
    """
    Samples once per ``interval`` seconds until stopped or cancelled.

    Subclasses implement :meth:`sample`.
    """

    name = "monitor"

    def __init__(self, interval: float, feed: FeedFn) -> None:
        self.interval = interval
        self._feed = feed
        self._running = False
        self._task: Optional[asyncio.Task] = None

    def emit(self, signal: Any, observation: Any) -> None:
        """Forward one observation, stamped with wall-clock time."""
        if self._running:
            self._feed(signal, observation, time.time())

    async def sample(self) -> None:
        raise NotImplementedError

    async def run(self) -> None:
        """Sampling loop (one task per monitor)."""
        self._running = True
        log.info("%s started (every %.1fs)", self.name, self.interval)
        try:
            while self._running:
                await asyncio.sleep(self.interval)
                if not self._running:
                    break
                try:
                    await self.sample()
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    log.error("%s sample failed: %s", self.name, exc)
        finally:
            self._running = False

    def start(self) -> asyncio.Task:
        """Schedule :meth:`run` on the running loop."""
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(
                self.run(), name=self.name,
            )
        return self._task

    def stop(self) -> None:
        """Stop producing observations and cancel the task."""
        self._running = False
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
