"""
Camera source.

Wraps ``cv2.VideoCapture``.  Opening the device is the acquisition
point; a failed read afterwards means the camera track has ended.
The latest frame is cached so that the phone poller and evidence
capture never compete with the face loop for the device.
"""

from __future__ import annotations

import threading
from typing import Optional

import cv2
import numpy as np

from exam_proctor.core.config import ProctorConfig
from exam_proctor.core.errors import DeviceUnavailableError
from exam_proctor.core.utils import encode_jpeg, get_logger

log = get_logger("camera")


class CameraSource:
    """
    Usage::

        camera = CameraSource(config)
        camera.open()               # raises DeviceUnavailableError
        frame = camera.read()       # None once the track has ended
        jpeg = camera.capture_still()
        camera.release()
    """

    def __init__(self, config: ProctorConfig) -> None:
        self.cfg = config
        self._cap: Optional[cv2.VideoCapture] = None
        self._lock = threading.Lock()
        self._io_lock = threading.Lock()
        self._latest: Optional[np.ndarray] = None
        self._ended = False

    def open(self) -> None:
        """Acquire the camera (blocking; run off the event loop)."""
        cap = cv2.VideoCapture(self.cfg.camera_index)
        if not cap.isOpened():
            cap.release()
            raise DeviceUnavailableError(
                "camera", f"index {self.cfg.camera_index} could not be opened",
            )
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.cfg.frame_width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.cfg.frame_height)
        self._cap = cap
        self._ended = False
        log.info("Camera ON (index=%d)", self.cfg.camera_index)

    def read(self) -> Optional[np.ndarray]:
        """Grab one frame; ``None`` when the device stopped delivering."""
        with self._io_lock:
            if self._cap is None:
                return None
            ret, frame = self._cap.read()
        if not ret or frame is None:
            if not self._ended:
                log.error("Lost camera stream.")
            self._ended = True
            return None
        with self._lock:
            self._latest = frame
        return frame

    @property
    def latest_frame(self) -> Optional[np.ndarray]:
        with self._lock:
            return None if self._latest is None else self._latest.copy()

    def capture_still(self) -> Optional[bytes]:
        """JPEG of the most recent frame, for evidence."""
        frame = self.latest_frame
        if frame is None:
            return None
        return encode_jpeg(frame, self.cfg.jpeg_quality)

    def release(self) -> None:
        """Close the device; waits for an in-flight read."""
        with self._io_lock:
            self._release()

    def _release(self) -> None:
        if self._cap is not None:
            try:
                self._cap.release()
            except Exception as exc:
                log.debug("Camera release error ignored: %s", exc)
            self._cap = None
            log.info("Camera released.")

    @property
    def is_open(self) -> bool:
        return self._cap is not None and not self._ended
