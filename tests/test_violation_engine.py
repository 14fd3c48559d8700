"""
Tests for the violation engine: duration, streak, detection and edge
evaluators and the per-signal dispatch.
"""
import pytest

from exam_proctor.engine.violation_engine import (
    Detection,
    Signal,
    SignalWarning,
    ViolationCause,
    ViolationEvaluator,
    ViolationEvent,
)


@pytest.fixture
def evaluator(config):
    return ViolationEvaluator(config, candidate_id="ada@example.com")


def feed_series(evaluator, signal, samples):
    """Dispatch ``(observation, timestamp)`` pairs and collect decisions."""
    out = []
    for obs, ts in samples:
        out.extend(evaluator.dispatch(signal, obs, ts))
    return out


class TestFaceAbsence:
    """Face absence fires after 3 s of continuous zero-face samples."""

    def test_fires_at_threshold(self, evaluator):
        assert feed_series(evaluator, Signal.FACE, [(0, 100.0), (0, 101.0), (0, 102.0)]) == []
        decisions = evaluator.dispatch(Signal.FACE, 0, 103.0)
        assert decisions == [
            ViolationEvent(ViolationCause.FACE_NOT_DETECTED, 103.0, "ada@example.com"),
        ]

    def test_first_sample_contributes_nothing(self, evaluator):
        evaluator.dispatch(Signal.FACE, 0, 100.0)
        assert evaluator.face_absence.state.accumulated == 0.0

    def test_face_present_resets(self, evaluator):
        feed_series(evaluator, Signal.FACE, [(0, 100.0), (0, 101.0), (0, 102.0)])
        evaluator.dispatch(Signal.FACE, 1, 102.5)
        assert evaluator.face_absence.state.accumulated == 0.0

        assert feed_series(
            evaluator, Signal.FACE, [(0, 103.0), (0, 104.0), (0, 105.0)],
        ) == []
        decisions = evaluator.dispatch(Signal.FACE, 0, 105.5)
        assert [d.cause for d in decisions] == [ViolationCause.FACE_NOT_DETECTED]

    def test_fires_once_per_streak(self, evaluator):
        decisions = feed_series(
            evaluator, Signal.FACE, [(0, float(t)) for t in range(100, 110)],
        )
        assert len(decisions) == 1

    def test_detector_failure_advances_without_accumulating(self, evaluator):
        decisions = feed_series(
            evaluator,
            Signal.FACE,
            [(0, 100.0), (None, 101.0), (None, 102.0), (0, 103.0), (0, 104.0)],
        )
        assert decisions == []
        assert evaluator.face_absence.state.accumulated == pytest.approx(2.0)
        assert evaluator.face_absence.state.last_sample == 104.0

        decisions = evaluator.dispatch(Signal.FACE, 0, 105.0)
        assert [d.cause for d in decisions] == [ViolationCause.FACE_NOT_DETECTED]

    def test_other_signals_do_not_move_face_clock(self, evaluator):
        evaluator.dispatch(Signal.FACE, 0, 100.0)
        evaluator.dispatch(Signal.VOICE, 0.01, 150.0)
        evaluator.dispatch(Signal.FACE, 0, 101.0)
        assert evaluator.face_absence.state.accumulated == pytest.approx(1.0)


class TestMultipleFaces:
    """Two or more faces for one second terminates."""

    def test_fires_after_one_second(self, evaluator):
        assert feed_series(evaluator, Signal.FACE, [(2, 100.0), (2, 100.5)]) == []
        decisions = evaluator.dispatch(Signal.FACE, 3, 101.0)
        assert [d.cause for d in decisions] == [ViolationCause.MULTIPLE_FACES]

    def test_single_face_resets(self, evaluator):
        feed_series(evaluator, Signal.FACE, [(2, 100.0), (2, 100.8)])
        evaluator.dispatch(Signal.FACE, 1, 100.9)
        assert evaluator.multi_face.state.accumulated == 0.0
        assert evaluator.dispatch(Signal.FACE, 2, 101.5) == []

    def test_zero_faces_resets_multi_face(self, evaluator):
        evaluator.dispatch(Signal.FACE, 2, 100.0)
        evaluator.dispatch(Signal.FACE, 2, 100.5)
        evaluator.dispatch(Signal.FACE, 0, 100.6)
        assert evaluator.multi_face.state.accumulated == 0.0
        assert evaluator.face_absence.state.accumulated == pytest.approx(0.1)


class TestVoice:
    """Voice warns once at 5 loud samples and terminates at 12."""

    LOUD = 0.5
    QUIET = 0.02

    def loud(self, evaluator, n, start=0.0):
        return feed_series(
            evaluator, Signal.VOICE, [(self.LOUD, start + i) for i in range(n)],
        )

    def test_warning_once_at_five(self, evaluator):
        assert self.loud(evaluator, 4) == []
        decisions = evaluator.dispatch(Signal.VOICE, self.LOUD, 4.0)
        assert decisions == [SignalWarning(ViolationCause.VOICE_DETECTED, 4.0, 5)]
        assert self.loud(evaluator, 6, start=5.0) == []

    def test_terminates_at_twelve(self, evaluator):
        decisions = self.loud(evaluator, 12)
        assert [type(d) for d in decisions] == [SignalWarning, ViolationEvent]
        assert decisions[-1].cause is ViolationCause.REPEATED_VOICE
        assert decisions[-1].candidate_id == "ada@example.com"

    def test_quiet_sample_resets_counter_and_warning(self, evaluator):
        self.loud(evaluator, 5)
        evaluator.dispatch(Signal.VOICE, self.QUIET, 5.0)
        state = evaluator.voice.state
        assert state.accumulated == 0
        assert state.warned is False

        decisions = self.loud(evaluator, 5, start=6.0)
        assert [d.cause for d in decisions] == [ViolationCause.VOICE_DETECTED]

    def test_threshold_is_strict(self, evaluator, config):
        at_threshold = config.voice_rms_threshold
        decisions = feed_series(
            evaluator, Signal.VOICE, [(at_threshold, float(i)) for i in range(12)],
        )
        assert decisions == []
        assert evaluator.voice.count == 0

    def test_interrupted_streak_never_terminates(self, evaluator):
        for cycle in range(5):
            self.loud(evaluator, 11, start=cycle * 20.0)
            evaluator.dispatch(Signal.VOICE, self.QUIET, cycle * 20.0 + 11)
        assert evaluator.voice.state.triggered is False


class TestConnectivity:
    """Offline warns at 5 samples and ends the exam at 15."""

    def test_warning_then_connection_lost(self, evaluator):
        decisions = feed_series(
            evaluator, Signal.CONNECTIVITY, [(False, float(i)) for i in range(15)],
        )
        assert decisions[0] == SignalWarning(ViolationCause.INTERNET_DISCONNECTED, 4.0, 5)
        assert decisions[1].cause is ViolationCause.CONNECTION_LOST
        assert decisions[1].cause.ends_as_submission
        assert len(decisions) == 2

    def test_reconnect_resets(self, evaluator):
        feed_series(evaluator, Signal.CONNECTIVITY, [(False, float(i)) for i in range(14)])
        evaluator.dispatch(Signal.CONNECTIVITY, True, 14.0)
        decisions = feed_series(
            evaluator, Signal.CONNECTIVITY, [(False, 15.0 + i) for i in range(14)],
        )
        assert [d.cause for d in decisions] == [ViolationCause.INTERNET_DISCONNECTED]

    def test_disconnect_warning_is_not_audited(self):
        assert ViolationCause.INTERNET_DISCONNECTED.audited is False
        assert ViolationCause.VOICE_DETECTED.audited is True


class TestPhoneDetection:
    def test_phone_above_confidence(self, evaluator):
        decisions = evaluator.dispatch(
            Signal.OBJECTS, [Detection("person", 0.99), Detection("cell phone", 0.61)], 1.0,
        )
        assert [d.cause for d in decisions] == [ViolationCause.PHONE_DETECTED]

    def test_confidence_must_exceed_threshold(self, evaluator):
        assert evaluator.dispatch(Signal.OBJECTS, [Detection("cell phone", 0.6)], 1.0) == []

    def test_other_classes_ignored(self, evaluator):
        assert evaluator.dispatch(Signal.OBJECTS, [Detection("book", 0.95)], 1.0) == []

    def test_detector_failure_ignored(self, evaluator):
        assert evaluator.dispatch(Signal.OBJECTS, None, 1.0) == []
        assert evaluator.phone.state.last_sample == 1.0


class TestEdgeTriggers:
    """Browser and device events fire on their first occurrence."""

    @pytest.mark.parametrize("signal, value, cause", [
        (Signal.VISIBILITY, True, ViolationCause.TAB_SWITCHED),
        (Signal.FULLSCREEN, False, ViolationCause.FULLSCREEN_EXITED),
        (Signal.CAMERA_TRACK, True, ViolationCause.CAMERA_OFF),
        (Signal.MICROPHONE_TRACK, True, ViolationCause.MICROPHONE_OFF),
        (Signal.DEVICES, True, ViolationCause.DEVICE_CHANGED),
        (Signal.ACQUISITION, "camera", ViolationCause.DEVICE_UNAVAILABLE),
    ])
    def test_fires(self, evaluator, signal, value, cause):
        decisions = evaluator.dispatch(signal, value, 7.0)
        assert decisions == [ViolationEvent(cause, 7.0, "ada@example.com")]

    def test_benign_values_ignored(self, evaluator):
        assert evaluator.dispatch(Signal.VISIBILITY, False, 1.0) == []
        assert evaluator.dispatch(Signal.FULLSCREEN, True, 1.0) == []

    def test_cause_strings(self):
        assert ViolationCause.TAB_SWITCHED.value == "Tab switched"
        assert ViolationCause.FACE_NOT_DETECTED.value == "Face not detected"
        assert ViolationCause.REPEATED_VOICE.value == "Repeated voice detected"
