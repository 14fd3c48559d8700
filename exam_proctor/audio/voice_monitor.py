"""
Voice activity monitor.

Once per sample interval, reads the microphone's latest time-domain
window, computes its RMS energy and feeds it to the evaluator.  Feeds
``Signal.MICROPHONE_TRACK`` once the stream has stopped.
"""

from __future__ import annotations

from exam_proctor.audio.audio_features import rms_energy
from exam_proctor.core.config import ProctorConfig
from exam_proctor.core.monitor import FeedFn, PollingMonitor
from exam_proctor.core.utils import get_logger
from exam_proctor.engine.violation_engine import Signal

log = get_logger("audio.voice")


class VoiceMonitor(PollingMonitor):
    """
    Lifecycle::

        monitor = VoiceMonitor(config, microphone, runtime.feed)
        monitor.start()         # task on the running loop
        …
        monitor.stop()

    *microphone* is anything with ``latest_window()`` and ``is_active``
    (``MicrophoneStream`` in production).
    """

    name = "voice-monitor"

    def __init__(self, config: ProctorConfig, microphone, feed: FeedFn) -> None:
        super().__init__(config.voice_sample_interval, feed)
        self.microphone = microphone
        self.threshold = config.voice_rms_threshold

    async def sample(self) -> None:
        if not self.microphone.is_active:
            self.emit(Signal.MICROPHONE_TRACK, True)
            return
        rms = rms_energy(self.microphone.latest_window())
        if rms > self.threshold:
            log.debug("Voice energy %.3f above %.3f", rms, self.threshold)
        self.emit(Signal.VOICE, rms)
