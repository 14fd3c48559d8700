"""
YOLOv8 object detection module.

``YOLODetector`` wraps an ultralytics model behind ``detect(frame)``;
``PhoneMonitor`` polls it every few seconds on the camera's latest
frame, with inference running off the event loop.
"""

from __future__ import annotations

import asyncio
from typing import List, Optional

import numpy as np

from exam_proctor.core.config import ProctorConfig
from exam_proctor.core.monitor import FeedFn, PollingMonitor
from exam_proctor.core.utils import get_logger
from exam_proctor.engine.violation_engine import Detection, Signal
from exam_proctor.vision.camera import CameraSource

log = get_logger("yolo")


class YOLODetector:
    """YOLOv8 object detector returning ``Detection`` objects."""

    def __init__(self, config: ProctorConfig) -> None:
        self.cfg = config
        self._model = None

    def load_model(self) -> None:
        """Load the YOLOv8 model (called once at startup)."""
        from ultralytics import YOLO

        log.info("Loading YOLOv8 from %s …", self.cfg.yolo_model_path)
        self._model = YOLO(self.cfg.yolo_model_path)
        log.info("YOLO using %s", "GPU (CUDA)" if self.cfg.yolo_use_gpu else "CPU")

    def detect(self, frame: np.ndarray) -> List[Detection]:
        """Run inference on a single frame; errors propagate."""
        if self._model is None:
            raise RuntimeError("YOLO model not loaded")
        device = "0" if self.cfg.yolo_use_gpu else "cpu"
        results = self._model(frame, verbose=False, device=device)
        detections: List[Detection] = []
        for result in results:
            for box in result.boxes:
                detections.append(Detection(
                    label=result.names[int(box.cls)].lower(),
                    confidence=float(box.conf),
                ))
        return detections


class PhoneMonitor(PollingMonitor):
    """Feeds ``Signal.OBJECTS`` with detections, or ``None`` on failure."""

    name = "phone-monitor"

    def __init__(
        self,
        config: ProctorConfig,
        camera: CameraSource,
        detector,
        feed: FeedFn,
    ) -> None:
        super().__init__(config.phone_poll_interval, feed)
        self.camera = camera
        self.detector = detector

    async def sample(self) -> None:
        frame = self.camera.latest_frame
        if frame is None:
            return
        detections: Optional[List[Detection]]
        try:
            detections = await asyncio.to_thread(self.detector.detect, frame)
        except Exception as exc:
            log.error("YOLO inference error: %s", exc)
            detections = None
        self.emit(Signal.OBJECTS, detections)
