"""
Face detection module.

``HaarFaceDetector`` counts faces in a frame; ``FaceMonitor`` is the
signal adapter that reads the camera at a fixed cadence, runs the
detector off the event loop and feeds the face count to the evaluator.

All detector internals are hidden behind ``detect(frame) -> int``, so a
stub can stand in for the cascade in tests.
"""

from __future__ import annotations

import asyncio
from typing import List, Optional, Tuple

import cv2
import numpy as np

from exam_proctor.core.config import ProctorConfig
from exam_proctor.core.monitor import FeedFn, PollingMonitor
from exam_proctor.core.utils import get_logger, load_cascade
from exam_proctor.engine.violation_engine import Signal
from exam_proctor.vision.camera import CameraSource

log = get_logger("face")


class HaarFaceDetector:
    """Detects frontal faces via OpenCV's Haar cascade."""

    def __init__(
        self,
        config: ProctorConfig,
        cascade: Optional[cv2.CascadeClassifier] = None,
    ) -> None:
        self.cfg = config
        self.cascade = cascade or load_cascade("haarcascade_frontalface_default.xml")
        if self.cascade is None:
            raise RuntimeError("Face cascade could not be loaded")

    def find_faces(self, frame: np.ndarray) -> List[Tuple[int, int, int, int]]:
        gray = cv2.equalizeHist(cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY))
        return list(
            self.cascade.detectMultiScale(
                gray,
                scaleFactor=self.cfg.face_scale_factor,
                minNeighbors=self.cfg.face_min_neighbors,
                minSize=self.cfg.face_min_size,
                flags=cv2.CASCADE_SCALE_IMAGE,
            )
        )

    def detect(self, frame: np.ndarray) -> int:
        """Return the number of faces in *frame*."""
        return len(self.find_faces(frame))


class FaceMonitor(PollingMonitor):
    """
    Camera + face detector adapter.

    Feeds ``Signal.FACE`` with the face count (``None`` when the detector
    fails) and ``Signal.CAMERA_TRACK`` once the camera stops delivering.
    """

    name = "face-monitor"

    def __init__(
        self,
        config: ProctorConfig,
        camera: CameraSource,
        detector,
        feed: FeedFn,
    ) -> None:
        super().__init__(config.face_sample_interval, feed)
        self.camera = camera
        self.detector = detector

    async def sample(self) -> None:
        frame = await asyncio.to_thread(self.camera.read)
        if frame is None:
            self.emit(Signal.CAMERA_TRACK, True)
            return

        try:
            faces: Optional[int] = await asyncio.to_thread(self.detector.detect, frame)
        except Exception as exc:
            log.error("Face detector error: %s", exc)
            faces = None
        self.emit(Signal.FACE, faces)
