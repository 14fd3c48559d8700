"""
Event-based violation engine.

Converts raw per-signal observations into debounced decisions:
``ViolationEvent`` (terminating) or ``SignalWarning`` (non-terminating).
Every signal owns its own evaluator and ``SignalState``; elapsed time is
measured between consecutive samples of that signal only.

``ViolationEvaluator.dispatch`` is the single entry point used by the
runtime to route named signals to their evaluators.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Union

from exam_proctor.core.config import ProctorConfig
from exam_proctor.core.state import SignalState
from exam_proctor.core.utils import get_logger

log = get_logger("engine.violation")


class Signal(str, Enum):
    """Named event sources feeding the evaluator."""

    FACE = "face"
    VOICE = "voice"
    OBJECTS = "objects"
    CONNECTIVITY = "connectivity"
    VISIBILITY = "visibility"
    FULLSCREEN = "fullscreen"
    CAMERA_TRACK = "camera_track"
    MICROPHONE_TRACK = "microphone_track"
    DEVICES = "devices"
    ACQUISITION = "acquisition"


class ViolationCause(str, Enum):
    """User-facing cause codes."""

    FACE_NOT_DETECTED = "Face not detected"
    MULTIPLE_FACES = "Multiple faces detected"
    VOICE_DETECTED = "Voice detected"
    REPEATED_VOICE = "Repeated voice detected"
    PHONE_DETECTED = "Mobile phone detected"
    TAB_SWITCHED = "Tab switched"
    FULLSCREEN_EXITED = "Exited fullscreen"
    CAMERA_OFF = "Camera turned off"
    MICROPHONE_OFF = "Microphone turned off"
    DEVICE_CHANGED = "Device changed"
    DEVICE_UNAVAILABLE = "Device unavailable"
    INTERNET_DISCONNECTED = "Internet disconnected"
    CONNECTION_LOST = "Connection lost"

    @property
    def ends_as_submission(self) -> bool:
        """Causes that close the exam through the plain submission path."""
        return self is ViolationCause.CONNECTION_LOST

    @property
    def audited(self) -> bool:
        """Whether a warning with this cause is sent to the audit sink."""
        return self is not ViolationCause.INTERNET_DISCONNECTED


@dataclass(frozen=True)
class ViolationEvent:
    """A confirmed, terminating violation."""

    cause: ViolationCause
    timestamp: float
    candidate_id: str = ""


@dataclass(frozen=True)
class SignalWarning:
    """A non-terminating advisory raised part-way through a streak."""

    cause: ViolationCause
    timestamp: float
    count: int = 0


@dataclass(frozen=True)
class Detection:
    """A single object-detector hit."""

    label: str
    confidence: float


Decision = Union[ViolationEvent, SignalWarning]


# ─── Evaluators ───────────────────────────────────────────────────

class DurationEvaluator:
    """
    Accumulates the wall-clock time during which a condition holds on
    consecutive samples, and fires once the total reaches ``threshold``.

    Used for face absence and multiple faces.
    """

    def __init__(
        self,
        cause: ViolationCause,
        threshold: float,
        condition: Callable[[int], bool],
    ) -> None:
        self.cause = cause
        self.threshold = threshold
        self.condition = condition
        self.state = SignalState()

    def observe(self, value: Optional[int], timestamp: float) -> Optional[ViolationEvent]:
        s = self.state
        delta = s.advance(timestamp)
        if value is None:
            # Detector gave nothing this tick
            return None
        if not self.condition(value):
            s.reset()
            return None
        s.accumulated += delta
        if s.accumulated >= self.threshold and not s.triggered:
            s.triggered = True
            log.error(
                "%s — held for %.2fs (threshold %.1fs)",
                self.cause.value, s.accumulated, self.threshold,
            )
            return ViolationEvent(self.cause, timestamp)
        return None


class StreakEvaluator:
    """
    Discrete counter with hard reset.

    Each sample where the condition holds increments the counter; any
    other sample resets it and clears the warned flag.  A warning is
    emitted once per streak at ``warn_at``; the terminating event fires
    at ``terminate_at``.

    Used for voice activity and connectivity.
    """

    def __init__(
        self,
        warn_cause: ViolationCause,
        terminate_cause: ViolationCause,
        warn_at: int,
        terminate_at: int,
        condition: Callable[[object], bool],
    ) -> None:
        self.warn_cause = warn_cause
        self.terminate_cause = terminate_cause
        self.warn_at = warn_at
        self.terminate_at = terminate_at
        self.condition = condition
        self.state = SignalState()

    @property
    def count(self) -> int:
        return int(self.state.accumulated)

    def observe(self, value: object, timestamp: float) -> List[Decision]:
        s = self.state
        s.advance(timestamp)
        if value is None:
            return []
        if not self.condition(value):
            s.reset()
            return []

        s.accumulated += 1
        out: List[Decision] = []
        if self.count == self.warn_at and not s.warned:
            s.warned = True
            log.warning("%s — streak of %d samples", self.warn_cause.value, self.count)
            out.append(SignalWarning(self.warn_cause, timestamp, self.count))
        if self.count >= self.terminate_at and not s.triggered:
            s.triggered = True
            log.error("%s — streak of %d samples", self.terminate_cause.value, self.count)
            out.append(ViolationEvent(self.terminate_cause, timestamp))
        return out


class DetectionEvaluator:
    """
    Fires on the first detection of a watched class above the
    confidence threshold; no accumulation.
    """

    def __init__(
        self,
        cause: ViolationCause,
        labels: Iterable[str],
        min_confidence: float,
    ) -> None:
        self.cause = cause
        self.labels = {label.lower() for label in labels}
        self.min_confidence = min_confidence
        self.state = SignalState()

    def observe(
        self,
        detections: Optional[Sequence[Detection]],
        timestamp: float,
    ) -> Optional[ViolationEvent]:
        s = self.state
        s.advance(timestamp)
        if detections is None or s.triggered:
            return None
        for det in detections:
            if det.label.lower() in self.labels and det.confidence > self.min_confidence:
                s.triggered = True
                log.error("%s (%.0f%%)", self.cause.value, det.confidence * 100)
                return ViolationEvent(self.cause, timestamp)
        return None


class EdgeTrigger:
    """Edge-triggered browser/device event: fires whenever it is seen."""

    def __init__(self, cause: ViolationCause, condition: Callable[[object], bool]) -> None:
        self.cause = cause
        self.condition = condition

    def observe(self, value: object, timestamp: float) -> Optional[ViolationEvent]:
        if self.condition(value):
            log.error("%s", self.cause.value)
            return ViolationEvent(self.cause, timestamp)
        return None


# ─── Dispatch ─────────────────────────────────────────────────────

class ViolationEvaluator:
    """
    Owns one evaluator per signal and routes observations to them.

    Observations per signal:
        FACE              number of faces, or ``None`` on detector failure
        VOICE             RMS energy of the latest window, or ``None``
        OBJECTS           list of ``Detection``, or ``None``
        CONNECTIVITY      ``True`` when online, ``False`` when offline
        VISIBILITY        ``True`` when the exam page is hidden
        FULLSCREEN        ``True`` while fullscreen, ``False`` on exit
        CAMERA_TRACK      ``True`` when the camera track has ended
        MICROPHONE_TRACK  ``True`` when the microphone track has ended
        DEVICES           ``True`` when the device list changed
        ACQUISITION       name of the device that could not be acquired

    Usage::

        evaluator = ViolationEvaluator(config, candidate_id="a@b.c")
        for decision in evaluator.dispatch(Signal.FACE, 0, time.time()):
            controller.handle(decision)
    """

    def __init__(self, config: ProctorConfig, candidate_id: str = "") -> None:
        self.cfg = config
        self.candidate_id = candidate_id

        self.face_absence = DurationEvaluator(
            ViolationCause.FACE_NOT_DETECTED,
            config.face_absence_seconds,
            lambda faces: faces == 0,
        )
        self.multi_face = DurationEvaluator(
            ViolationCause.MULTIPLE_FACES,
            config.multi_face_seconds,
            lambda faces: faces >= 2,
        )
        self.voice = StreakEvaluator(
            ViolationCause.VOICE_DETECTED,
            ViolationCause.REPEATED_VOICE,
            config.voice_warn_count,
            config.voice_terminate_count,
            lambda rms: rms > config.voice_rms_threshold,
        )
        self.phone = DetectionEvaluator(
            ViolationCause.PHONE_DETECTED,
            config.phone_classes,
            config.phone_confidence,
        )
        self.connectivity = StreakEvaluator(
            ViolationCause.INTERNET_DISCONNECTED,
            ViolationCause.CONNECTION_LOST,
            config.offline_warn_count,
            config.offline_submit_count,
            lambda online: not online,
        )
        self._edges: Dict[Signal, EdgeTrigger] = {
            Signal.VISIBILITY: EdgeTrigger(ViolationCause.TAB_SWITCHED, bool),
            Signal.FULLSCREEN: EdgeTrigger(
                ViolationCause.FULLSCREEN_EXITED, lambda active: not active,
            ),
            Signal.CAMERA_TRACK: EdgeTrigger(ViolationCause.CAMERA_OFF, bool),
            Signal.MICROPHONE_TRACK: EdgeTrigger(ViolationCause.MICROPHONE_OFF, bool),
            Signal.DEVICES: EdgeTrigger(ViolationCause.DEVICE_CHANGED, bool),
            Signal.ACQUISITION: EdgeTrigger(ViolationCause.DEVICE_UNAVAILABLE, bool),
        }

    def signal_states(self) -> Dict[str, SignalState]:
        """Debounce state per signal, for status reporting and tests."""
        return {
            "face_absence": self.face_absence.state,
            "multi_face": self.multi_face.state,
            "voice": self.voice.state,
            "phone": self.phone.state,
            "connectivity": self.connectivity.state,
        }

    def dispatch(
        self,
        signal: Signal,
        observation: object,
        timestamp: float,
    ) -> List[Decision]:
        """Route one observation and return the decisions it produced."""
        decisions: List[Optional[Decision]] = []

        if signal is Signal.FACE:
            decisions.append(self.face_absence.observe(observation, timestamp))
            decisions.append(self.multi_face.observe(observation, timestamp))
        elif signal is Signal.VOICE:
            decisions.extend(self.voice.observe(observation, timestamp))
        elif signal is Signal.OBJECTS:
            decisions.append(self.phone.observe(observation, timestamp))
        elif signal is Signal.CONNECTIVITY:
            decisions.extend(self.connectivity.observe(observation, timestamp))
        elif signal in self._edges:
            decisions.append(self._edges[signal].observe(observation, timestamp))
        else:
            log.warning("Unknown signal: %s", signal)

        return [self._stamp(d) for d in decisions if d is not None]

    def _stamp(self, decision: Decision) -> Decision:
        if isinstance(decision, ViolationEvent) and not decision.candidate_id:
            return ViolationEvent(decision.cause, decision.timestamp, self.candidate_id)
        return decision
