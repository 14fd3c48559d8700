"""
Pytest configuration and stub collaborators for Exam Proctor tests.

Detectors, devices and the exam server are replaced by deterministic
stand-ins so every test is hardware- and network-free.
"""
import itertools
from dataclasses import replace

import httpx
import numpy as np
import pytest

from exam_proctor.core.config import ProctorConfig
from exam_proctor.core.errors import DeviceUnavailableError
from exam_proctor.engine.notices import NoticeBoard


class FakeServer:
    """Audit sink + submitter + connectivity probe."""

    def __init__(self, online=True, fail_audit=False, fail_submit=False):
        self.online = online
        self.fail_audit = fail_audit
        self.fail_submit = fail_submit
        self.records = []
        self.evidence = []
        self.submissions = []

    async def record_violation(self, candidate_id, cause, timestamp):
        if self.fail_audit:
            raise httpx.ConnectError("audit endpoint unreachable")
        self.records.append((candidate_id, cause, timestamp))

    async def capture_evidence(self, candidate_id, cause, image):
        if self.fail_audit:
            raise httpx.ConnectError("evidence endpoint unreachable")
        self.evidence.append((candidate_id, cause, image))

    async def submit(self, candidate_id, answers):
        self.submissions.append((candidate_id, list(answers)))
        if self.fail_submit:
            raise httpx.ConnectError("submit endpoint unreachable")
        return True

    async def is_online(self):
        return self.online

    @property
    def causes(self):
        return [cause for _, cause, _ in self.records]


class FakeCamera:
    """Camera that delivers ``frames`` good reads, then ends (None = forever)."""

    def __init__(self, fail_open=False, frames=None):
        self.fail_open = fail_open
        self.frames = frames
        self.opened = False
        self.released = False
        self.reads = 0
        self._latest = None

    def open(self):
        if self.fail_open:
            raise DeviceUnavailableError("camera", "no device")
        self.opened = True

    def read(self):
        if not self.opened or self.released:
            return None
        if self.frames is not None and self.reads >= self.frames:
            return None
        self.reads += 1
        self._latest = np.zeros((48, 64, 3), dtype=np.uint8)
        return self._latest

    @property
    def latest_frame(self):
        return self._latest

    def capture_still(self):
        return b"jpeg-bytes" if self._latest is not None else None

    def release(self):
        self.released = True

    @property
    def is_open(self):
        return self.opened and not self.released


class StubFaceDetector:
    """Returns the given face counts in order, repeating the last one."""

    def __init__(self, *counts):
        self._counts = itertools.chain(counts, itertools.repeat(counts[-1]))

    def detect(self, frame):
        value = next(self._counts)
        if isinstance(value, Exception):
            raise value
        return value


class StubObjectDetector:
    def __init__(self, detections):
        self.detections = detections
        self.calls = 0

    def detect(self, frame):
        self.calls += 1
        return list(self.detections)


class FakeMicrophone:
    def __init__(self, level=0.0, window_size=2048, fail_start=False, start_error=None):
        self.level = level
        self.window_size = window_size
        self.fail_start = fail_start
        self.start_error = start_error
        self.started = False
        self.stopped = False

    def start(self):
        if self.start_error is not None:
            raise self.start_error
        if self.fail_start:
            raise DeviceUnavailableError("microphone", "permission denied")
        self.started = True

    def stop(self):
        self.stopped = True

    def latest_window(self):
        return np.full(self.window_size, self.level, dtype=np.float32)

    @property
    def is_active(self):
        return self.started and not self.stopped


@pytest.fixture
def config(tmp_path):
    """Production thresholds, 650 s exam, no GPU, data under tmp_path."""
    return ProctorConfig(
        exam_duration_seconds=650,
        yolo_use_gpu=False,
        base_folder=str(tmp_path / "proctor_data"),
        exam_start_time="",
        exam_end_time="",
    )


@pytest.fixture
def fast_config(config):
    """Short intervals for end-to-end runtime tests."""
    return replace(
        config,
        face_sample_interval=0.005,
        face_absence_seconds=0.03,
        multi_face_seconds=0.01,
        voice_sample_interval=0.002,
        phone_poll_interval=0.005,
        connectivity_poll_interval=0.002,
        device_poll_interval=0.005,
        tick_interval=60.0,
    )


@pytest.fixture
def server():
    return FakeServer()


@pytest.fixture
def notices():
    return NoticeBoard()


@pytest.fixture
def server_factory():
    """Build a ``FakeServer`` with failure switches."""
    return FakeServer
