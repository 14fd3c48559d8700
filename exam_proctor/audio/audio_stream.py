"""
Audio stream capture module.

Handles microphone auto-detection and raw audio buffering via
``sounddevice``.  The callback keeps a rolling window of the most
recent samples so the voice monitor can read a fixed-size time-domain
window at its own cadence.
"""

from __future__ import annotations

import threading
from typing import Optional, Tuple

import numpy as np
import sounddevice as sd

from exam_proctor.core.errors import DeviceUnavailableError
from exam_proctor.core.utils import get_logger

log = get_logger("audio.stream")


def list_input_devices() -> Tuple[str, ...]:
    """Names of all devices that can record audio."""
    return tuple(
        dev["name"] for dev in sd.query_devices() if dev["max_input_channels"] > 0
    )


class MicrophoneStream:
    """
    Manages the microphone input stream.

    Usage::

        mic = MicrophoneStream(sample_rate=48000, window_size=2048)
        mic.start()                 # raises DeviceUnavailableError
        window = mic.latest_window()
        mic.stop()
    """

    def __init__(self, sample_rate: int = 48000, window_size: int = 2048) -> None:
        self.sample_rate = sample_rate
        self.window_size = window_size
        self._lock = threading.Lock()
        self._window = np.zeros(window_size, dtype=np.float32)
        self._stream: Optional[sd.InputStream] = None
        self._device_index: Optional[int] = None
        self._ended = False

    # ── Auto-detect microphone ───────────────────────────────────

    @staticmethod
    def find_input_device() -> int:
        """Return the index of the first available input device."""
        devices = sd.query_devices()
        for i, dev in enumerate(devices):
            if dev["max_input_channels"] > 0:
                log.info("Using mic: %s (index=%d)", dev["name"], i)
                return i
        raise DeviceUnavailableError("microphone", "no input device detected")

    # ── Callbacks ────────────────────────────────────────────────

    def _callback(
        self,
        indata: np.ndarray,
        frames: int,
        time_info: dict,
        status: sd.CallbackFlags,
    ) -> None:
        if status:
            log.warning("Audio stream status: %s", status)
        mono = np.mean(indata, axis=1).astype(np.float32)
        n = self.window_size
        with self._lock:
            if len(mono) >= n:
                self._window = mono[-n:].copy()
            else:
                self._window = np.concatenate((self._window[len(mono):], mono))

    def _finished(self) -> None:
        if self._stream is not None:
            log.error("Microphone stream ended.")
        self._ended = True

    # ── Lifecycle ────────────────────────────────────────────────

    def start(self) -> None:
        """Open the microphone stream (blocking; run off the event loop)."""
        try:
            self._device_index = self.find_input_device()
            self._stream = sd.InputStream(
                device=self._device_index,
                channels=1,
                samplerate=self.sample_rate,
                callback=self._callback,
                finished_callback=self._finished,
            )
            self._stream.start()
        except (sd.PortAudioError, OSError) as exc:
            self._stream = None
            raise DeviceUnavailableError("microphone", str(exc)) from exc
        self._ended = False
        log.info("Microphone ON (sr=%d)", self.sample_rate)

    def stop(self) -> None:
        """Close the microphone stream gracefully."""
        stream, self._stream = self._stream, None
        if stream is not None:
            try:
                stream.stop()
                stream.close()
            except Exception as exc:
                log.debug("Error stopping audio stream ignored: %s", exc)
            log.info("Microphone released.")

    def latest_window(self) -> np.ndarray:
        """Copy of the most recent ``window_size`` samples."""
        with self._lock:
            return self._window.copy()

    @property
    def is_active(self) -> bool:
        return self._stream is not None and self._stream.active and not self._ended
