"""
Shared utilities for the Exam Proctor system.

- Structured logging (replaces all ``print()`` calls)
- Folder setup
- Haar cascade loading
- JPEG encoding / snapshot saving
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime
from typing import Optional

import cv2
import numpy as np

from exam_proctor.core.config import ProctorConfig

# ─── Structured Logger ────────────────────────────────────────────

_LOG_FORMAT = (
    "%(asctime)s │ %(levelname)-7s │ %(name)-18s │ %(message)s"
)
_DATE_FORMAT = "%H:%M:%S"


def get_logger(name: str, level: int = logging.INFO) -> logging.Logger:
    """Create a structured logger with consistent formatting."""
    logger = logging.getLogger(f"proctor.{name}")
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt=_DATE_FORMAT))
        logger.addHandler(handler)
    logger.setLevel(level)
    return logger


log = get_logger("utils")


# ─── Folder Setup ─────────────────────────────────────────────────

def setup_folders(config: ProctorConfig) -> None:
    """Create all required output directories."""
    for folder in (config.base_folder, config.snap_folder):
        os.makedirs(folder, exist_ok=True)
    log.info("Output folders ready: %s/", config.base_folder)


# ─── Haar Cascade Loading ─────────────────────────────────────────

def load_cascade(filename: str) -> Optional[cv2.CascadeClassifier]:
    """Load a Haar cascade from OpenCV's built-in data directory."""
    path = os.path.join(cv2.data.haarcascades, filename)
    if not os.path.exists(path):
        path = filename
    cascade = cv2.CascadeClassifier(path)
    return cascade if not cascade.empty() else None


# ─── Image Encoding ───────────────────────────────────────────────

def encode_jpeg(frame: np.ndarray, quality: int = 85) -> Optional[bytes]:
    """JPEG-encode a BGR frame, returning ``None`` if encoding fails."""
    ok, buf = cv2.imencode(".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), quality])
    if not ok:
        return None
    return buf.tobytes()


def decode_image(data: bytes) -> Optional[np.ndarray]:
    """Decode encoded image bytes into a BGR frame, or ``None``."""
    if not data:
        return None
    arr = np.frombuffer(data, dtype=np.uint8)
    return cv2.imdecode(arr, cv2.IMREAD_COLOR)


# ─── Snapshot Saver ───────────────────────────────────────────────

def save_snapshot(
    frame: np.ndarray,
    folder: str,
    prefix: str = "snap",
) -> str:
    """Save a JPEG snapshot and return the file path."""
    ts = datetime.now().strftime("%Y-%m-%d_%H-%M-%S-%f")
    path = os.path.join(folder, f"{prefix}_{ts}.jpg")
    cv2.imwrite(path, frame)
    return path
