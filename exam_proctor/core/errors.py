"""Exception types shared across the Exam Proctor system."""

from __future__ import annotations


class ProctorError(Exception):
    """Base class for all Exam Proctor errors."""


class DeviceUnavailableError(ProctorError):
    """A camera or microphone could not be acquired."""

    def __init__(self, device: str, detail: str = "") -> None:
        self.device = device
        self.detail = detail
        super().__init__(f"{device} unavailable" + (f": {detail}" if detail else ""))


class ExamStateError(ProctorError):
    """A lifecycle operation was requested in the wrong exam state."""


class AdmissionError(ProctorError):
    """The exam server refused to admit the candidate."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)
