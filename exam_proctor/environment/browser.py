"""
Browser focus watcher.

The exam page reports visibility and fullscreen changes to the agent
API; this watcher turns each report into an edge-triggered signal.
"""

from __future__ import annotations

import time

from exam_proctor.core.monitor import FeedFn
from exam_proctor.core.utils import get_logger
from exam_proctor.engine.violation_engine import Signal

log = get_logger("browser")

_SIGNALS = {
    "visibility": Signal.VISIBILITY,
    "fullscreen": Signal.FULLSCREEN,
}


class BrowserWatcher:
    def __init__(self, feed: FeedFn) -> None:
        self._feed = feed
        self._active = False

    def start(self) -> None:
        self._active = True

    def stop(self) -> None:
        self._active = False

    def report(self, kind: str, value: bool) -> bool:
        """Forward one report; ``False`` if ignored (stopped or unknown)."""
        signal = _SIGNALS.get(kind)
        if signal is None:
            log.warning("Unknown browser signal: %s", kind)
            return False
        if not self._active:
            return False
        log.info("Browser %s → %s", kind, value)
        self._feed(signal, value, time.time())
        return True
