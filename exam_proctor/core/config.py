"""
Centralized configuration for the Exam Proctor system.

All magic numbers are extracted here. Every value can be overridden
via an environment variable with the ``PROCTOR_`` prefix.

Example:
    ``PROCTOR_EXAM_DURATION_SECONDS=3600 python -m exam_proctor.main``
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional, Tuple


def _env(key: str, default: str) -> str:
    """Read ``PROCTOR_<key>`` from environment, falling back to *default*."""
    return os.environ.get(f"PROCTOR_{key}", default)


def _env_int(key: str, default: int) -> int:
    return int(_env(key, str(default)))


def _env_float(key: str, default: float) -> float:
    return float(_env(key, str(default)))


def _env_bool(key: str, default: bool) -> bool:
    return _env(key, str(default)).lower() in ("1", "true", "yes")


def _parse_time(value: str) -> Optional[datetime]:
    """Parse an ISO timestamp; an empty string means "unbounded"."""
    value = value.strip()
    if not value:
        return None
    return datetime.fromisoformat(value)


# ─── GPU detection ────────────────────────────────────────────────
def detect_gpu() -> bool:
    """Return ``True`` if a CUDA-capable GPU is available for YOLO."""
    try:
        import torch
        return torch.cuda.is_available()
    except ImportError:
        return False


@dataclass(frozen=True)
class ProctorConfig:
    """Immutable, centralized configuration for the entire system."""

    # ── Exam ──────────────────────────────────────────────────────
    exam_duration_seconds: int = _env_int("EXAM_DURATION_SECONDS", 50 * 60)
    advisory_remaining_seconds: int = _env_int("ADVISORY_REMAINING_SECONDS", 300)
    tick_interval: float = _env_float("TICK_INTERVAL", 1.0)

    # Naive local ISO timestamps, e.g. ``2025-01-25T13:20:00``.
    exam_start_time: str = _env("EXAM_START_TIME", "")
    exam_end_time: str = _env("EXAM_END_TIME", "")

    # ── Folders ───────────────────────────────────────────────────
    base_folder: str = _env("BASE_FOLDER", "proctor_data")
    snap_folder: str = ""

    # ── Camera ────────────────────────────────────────────────────
    camera_index: int = _env_int("CAMERA_INDEX", 0)
    frame_width: int = _env_int("FRAME_WIDTH", 640)
    frame_height: int = _env_int("FRAME_HEIGHT", 480)
    jpeg_quality: int = _env_int("JPEG_QUALITY", 85)

    # ── Face Detection ────────────────────────────────────────────
    face_sample_interval: float = _env_float("FACE_SAMPLE_INTERVAL", 0.2)
    face_scale_factor: float = _env_float("FACE_SCALE_FACTOR", 1.1)
    face_min_neighbors: int = _env_int("FACE_MIN_NEIGHBORS", 5)
    face_min_size: Tuple[int, int] = (60, 60)
    face_absence_seconds: float = _env_float("FACE_ABSENCE_SECONDS", 3.0)
    multi_face_seconds: float = _env_float("MULTI_FACE_SECONDS", 1.0)

    # ── Voice ─────────────────────────────────────────────────────
    audio_sample_rate: int = _env_int("AUDIO_SAMPLE_RATE", 48000)
    voice_window_size: int = _env_int("VOICE_WINDOW_SIZE", 2048)
    voice_sample_interval: float = _env_float("VOICE_SAMPLE_INTERVAL", 1.0)
    voice_rms_threshold: float = _env_float("VOICE_RMS_THRESHOLD", 0.1)
    voice_warn_count: int = _env_int("VOICE_WARN_COUNT", 5)
    voice_terminate_count: int = _env_int("VOICE_TERMINATE_COUNT", 12)

    # ── Phone (YOLOv8) ────────────────────────────────────────────
    phone_poll_interval: float = _env_float("PHONE_POLL_INTERVAL", 2.0)
    phone_confidence: float = _env_float("PHONE_CONFIDENCE", 0.6)
    yolo_model_path: str = _env("YOLO_MODEL_PATH", "yolov8n.pt")
    yolo_use_gpu: bool = _env_bool("YOLO_USE_GPU", True)

    phone_classes: Tuple[str, ...] = field(default_factory=lambda: (
        "cell phone",
    ))

    # ── Connectivity ──────────────────────────────────────────────
    connectivity_poll_interval: float = _env_float("CONNECTIVITY_POLL_INTERVAL", 1.0)
    offline_warn_count: int = _env_int("OFFLINE_WARN_COUNT", 5)
    offline_submit_count: int = _env_int("OFFLINE_SUBMIT_COUNT", 15)

    # ── Devices ───────────────────────────────────────────────────
    device_poll_interval: float = _env_float("DEVICE_POLL_INTERVAL", 2.0)

    # ── Exam server API ───────────────────────────────────────────
    api_host: str = _env("API_HOST", "0.0.0.0")
    api_port: int = _env_int("API_PORT", 3000)
    server_url: str = _env("SERVER_URL", "http://127.0.0.1:3000")
    http_timeout: float = _env_float("HTTP_TIMEOUT", 5.0)
    probe_timeout: float = _env_float("PROBE_TIMEOUT", 0.8)

    # ── Agent API (local, used by the exam page) ──────────────────
    agent_host: str = _env("AGENT_HOST", "127.0.0.1")
    agent_port: int = _env_int("AGENT_PORT", 8000)

    # ── User-visible messages ─────────────────────────────────────
    messages: Dict[str, str] = field(default_factory=lambda: {
        "terminated":   "{cause}. Exam terminated.",
        "submitted":    "Exam submitted",
        "advisory":     "5 minutes remaining",
    })

    def __post_init__(self) -> None:
        # Derive folder paths from base_folder
        object.__setattr__(self, "snap_folder", os.path.join(self.base_folder, "snapshots"))

        # Auto-detect GPU
        if self.yolo_use_gpu and not detect_gpu():
            object.__setattr__(self, "yolo_use_gpu", False)

    @property
    def exam_window(self) -> Tuple[Optional[datetime], Optional[datetime]]:
        """Return the ``(start, end)`` admission window; ``None`` = open."""
        return _parse_time(self.exam_start_time), _parse_time(self.exam_end_time)
