"""
Device watcher.

Captures the list of recording devices when the exam begins and feeds
``Signal.DEVICES`` as soon as that list changes (a device plugged in or
removed mid-exam).
"""

from __future__ import annotations

import asyncio
from typing import Callable, Optional, Sequence, Tuple

from exam_proctor.core.config import ProctorConfig
from exam_proctor.core.monitor import FeedFn, PollingMonitor
from exam_proctor.core.utils import get_logger
from exam_proctor.engine.violation_engine import Signal

log = get_logger("devices")


class DeviceWatcher(PollingMonitor):
    name = "device-watcher"

    def __init__(
        self,
        config: ProctorConfig,
        probe: Callable[[], Sequence[str]],
        feed: FeedFn,
    ) -> None:
        super().__init__(config.device_poll_interval, feed)
        self.probe = probe
        self.baseline: Optional[Tuple[str, ...]] = None

    async def _list_devices(self) -> Tuple[str, ...]:
        # the probe queries the audio backend and may block
        return tuple(sorted(await asyncio.to_thread(self.probe)))

    async def capture_baseline(self) -> None:
        try:
            self.baseline = await self._list_devices()
        except Exception as exc:
            log.error("Device baseline failed: %s", exc)
            return
        log.info("Device baseline: %d input device(s)", len(self.baseline))

    async def sample(self) -> None:
        current = await self._list_devices()
        if self.baseline is None:
            self.baseline = current
            return
        if current != self.baseline:
            log.error("Device list changed: %s → %s", self.baseline, current)
            self.baseline = current
            self.emit(Signal.DEVICES, True)
