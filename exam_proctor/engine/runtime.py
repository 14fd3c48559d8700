"""
Proctor runtime.

Wires one candidate's signal adapters to the violation evaluator and the
lifecycle controller, all on a single event loop:

    adapters ──feed()──▶ ViolationEvaluator ──▶ ExamController

On the terminal transition every adapter is stopped and the devices are
released; cleanup is best-effort.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, Dict, List, Optional, Sequence

from exam_proctor.core.config import ProctorConfig
from exam_proctor.core.monitor import PollingMonitor
from exam_proctor.core.state import ExamSession
from exam_proctor.core.utils import get_logger
from exam_proctor.engine.lifecycle import ExamController
from exam_proctor.engine.notices import NoticeBoard
from exam_proctor.engine.violation_engine import Signal, ViolationEvaluator
from exam_proctor.environment.browser import BrowserWatcher
from exam_proctor.environment.devices import DeviceWatcher
from exam_proctor.environment.network import ConnectivityMonitor
from exam_proctor.vision.face_detection import FaceMonitor
from exam_proctor.vision.yolo_detector import PhoneMonitor

log = get_logger("runtime")


class ProctorRuntime:
    """
    One proctored exam attempt.

    *server* provides ``record_violation``, ``capture_evidence``,
    ``submit`` and ``is_online`` (``ExamServerClient`` in production).
    Every device argument is optional so that partial setups (and tests)
    can run with only the adapters they need.

    Usage::

        runtime = ProctorRuntime(config, "a@b.c", client, camera=camera, ...)
        session = await runtime.run()
    """

    def __init__(
        self,
        config: ProctorConfig,
        candidate_id: str,
        server: Any,
        camera: Any = None,
        face_detector: Any = None,
        object_detector: Any = None,
        microphone: Any = None,
        device_probe: Optional[Callable[[], Sequence[str]]] = None,
        notices: Optional[NoticeBoard] = None,
        monitor_connectivity: bool = True,
    ) -> None:
        self.cfg = config
        self.candidate_id = candidate_id
        self.server = server
        self.camera = camera
        self.face_detector = face_detector
        self.object_detector = object_detector
        self.microphone = microphone
        self.device_probe = device_probe
        self.monitor_connectivity = monitor_connectivity

        self.notices = notices or NoticeBoard()
        self.evaluator = ViolationEvaluator(config, candidate_id)
        self.controller = ExamController(
            config,
            candidate_id,
            audit=server,
            submitter=server,
            notifier=self.notices,
            capture_frame=self._capture_frame,
            on_stop=self.stop_adapters,
        )
        self.browser = BrowserWatcher(self.feed)

        self._monitors: List[PollingMonitor] = []
        self._countdown: Optional[asyncio.Task] = None
        self._release: Optional[asyncio.Task] = None

    # ── Single dispatch point ────────────────────────────────────

    def feed(self, signal: Signal, observation: Any, timestamp: float) -> None:
        """Route one raw observation through the evaluator to the controller."""
        if not self.controller.is_running:
            return
        for decision in self.evaluator.dispatch(signal, observation, timestamp):
            self.controller.handle(decision)

    # ── Startup ──────────────────────────────────────────────────

    async def start(self) -> ExamSession:
        """Begin the exam, acquire devices and start every adapter."""
        session = self.controller.begin()
        loop = asyncio.get_running_loop()
        self._countdown = loop.create_task(
            self.controller.run_countdown(), name="countdown",
        )
        self.browser.start()

        if self.monitor_connectivity:
            self._monitors.append(
                ConnectivityMonitor(self.cfg, self.server.is_online, self.feed),
            )

        if self.camera is not None:
            if not await self._acquire("camera", self.camera.open, self.camera.release):
                return session
            if self.face_detector is not None:
                self._monitors.append(
                    FaceMonitor(self.cfg, self.camera, self.face_detector, self.feed),
                )
            if self.object_detector is not None:
                self._monitors.append(
                    PhoneMonitor(self.cfg, self.camera, self.object_detector, self.feed),
                )

        if self.microphone is not None:
            if not await self._acquire(
                "microphone", self.microphone.start, self.microphone.stop,
            ):
                return session
            from exam_proctor.audio.voice_monitor import VoiceMonitor

            self._monitors.append(VoiceMonitor(self.cfg, self.microphone, self.feed))

        if self.device_probe is not None:
            watcher = DeviceWatcher(self.cfg, self.device_probe, self.feed)
            await watcher.capture_baseline()
            self._monitors.append(watcher)

        if self.controller.is_running:
            for monitor in self._monitors:
                monitor.start()
            log.info("Proctoring active — %d adapter(s)", len(self._monitors))
        return session

    async def _acquire(
        self,
        device: str,
        opener: Callable[[], None],
        closer: Callable[[], None],
    ) -> bool:
        """
        Open a device off-loop; any failure is an immediate violation.

        Returns ``False`` when startup must stop: the device could not be
        opened, or the exam ended while it was opening (the device is
        then closed again).
        """
        try:
            await asyncio.to_thread(opener)
        except Exception as exc:
            # DeviceUnavailableError or a raw backend error alike
            log.error("Cannot acquire %s: %s", device, exc)
            self.feed(Signal.ACQUISITION, device, time.time())
            return False

        if not self.controller.is_running:
            log.info("Exam ended while acquiring %s; releasing it.", device)
            try:
                await asyncio.to_thread(closer)
            except Exception as exc:
                log.debug("Device release error ignored: %s", exc)
            return False
        return True

    async def run(self) -> ExamSession:
        """Start, then wait for the attempt to finish."""
        await self.start()
        await self.controller.wait_closed()
        if self._release is not None:
            await self._release
        return self.controller.session

    # ── Shutdown ─────────────────────────────────────────────────

    def stop_adapters(self) -> None:
        """Stop every adapter and schedule device release."""
        self.browser.stop()
        for monitor in self._monitors:
            monitor.stop()
        if self._countdown is not None and not self._countdown.done():
            if self._countdown is not asyncio.current_task():
                self._countdown.cancel()
        if self._release is None:
            self._release = asyncio.get_running_loop().create_task(
                self._release_devices(),
            )
        log.info("Adapters stopped.")

    async def _release_devices(self) -> None:
        for device in (self.camera, self.microphone):
            if device is None:
                continue
            closer = getattr(device, "release", None) or getattr(device, "stop", None)
            try:
                await asyncio.to_thread(closer)
            except Exception as exc:
                log.debug("Device release error ignored: %s", exc)

    # ── Evidence / status ────────────────────────────────────────

    def _capture_frame(self) -> Optional[bytes]:
        if self.camera is None:
            return None
        return self.camera.capture_still()

    def status(self) -> Dict[str, Any]:
        """Snapshot of the session for the exam page."""
        s = self.controller.session
        return {
            "candidate_id": s.candidate_id,
            "state": s.state.value,
            "remaining_seconds": max(s.remaining_seconds, 0),
            "remaining_display": s.remaining_display,
            "cause": s.cause,
            "camera_on": bool(self.camera is not None and self.camera.is_open),
            "microphone_on": bool(
                self.microphone is not None and self.microphone.is_active
            ),
            "notices": [
                {"message": n.message, "level": n.level, "timestamp": n.timestamp}
                for n in self.notices.recent()
            ],
        }
