"""Connectivity monitor: polls the exam server once per second."""

from __future__ import annotations

from typing import Awaitable, Callable

from exam_proctor.core.config import ProctorConfig
from exam_proctor.core.monitor import FeedFn, PollingMonitor
from exam_proctor.core.utils import get_logger
from exam_proctor.engine.violation_engine import Signal

log = get_logger("network")


class ConnectivityMonitor(PollingMonitor):
    """Feeds ``Signal.CONNECTIVITY`` with ``True`` (online) / ``False``."""

    name = "connectivity-monitor"

    def __init__(
        self,
        config: ProctorConfig,
        probe: Callable[[], Awaitable[bool]],
        feed: FeedFn,
    ) -> None:
        super().__init__(config.connectivity_poll_interval, feed)
        self.probe = probe
        self._online = True

    async def sample(self) -> None:
        try:
            online = bool(await self.probe())
        except Exception as exc:
            log.debug("Connectivity probe error: %s", exc)
            online = False
        if online != self._online:
            self._online = online
            if online:
                log.info("Connection restored.")
            else:
                log.warning("Connection lost — counting offline seconds.")
        self.emit(Signal.CONNECTIVITY, online)
