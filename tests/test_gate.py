"""Tests for the exam window gate and the attempt store."""
from dataclasses import replace
from datetime import datetime

import pytest

from exam_proctor.api.gate import AttemptStore, ExamWindowGate
from exam_proctor.api.models import AdmissionReason, AuditRecord, EvidenceRecord

BEFORE = datetime(2026, 5, 4, 9, 59)
DURING = datetime(2026, 5, 4, 10, 30)
AFTER = datetime(2026, 5, 4, 11, 1)


@pytest.fixture
def windowed_config(config):
    return replace(
        config,
        exam_start_time="2026-05-04T10:00:00",
        exam_end_time="2026-05-04T11:00:00",
    )


@pytest.fixture
def store():
    return AttemptStore()


@pytest.fixture
def gate(windowed_config, store):
    return ExamWindowGate(windowed_config, store, clock=lambda: DURING)


class TestExamWindow:
    def test_before_start(self, gate):
        admission = gate.admit("ada@example.com", now=BEFORE)
        assert not admission.admitted
        assert admission.reason is AdmissionReason.NOT_STARTED
        assert admission.reason.value == "not started yet"

    def test_after_end(self, gate):
        admission = gate.admit("ada@example.com", now=AFTER)
        assert admission.reason is AdmissionReason.ENDED

    def test_inside_window(self, gate, store):
        admission = gate.admit("ada@example.com", name="Ada", college="Analytical")
        assert admission.admitted
        assert store.candidates["ada@example.com"].name == "Ada"

    def test_open_window_when_unset(self, config, store):
        gate = ExamWindowGate(config, store)
        assert gate.check_window(datetime(1999, 1, 1)) is None
        assert gate.check_window(datetime(2099, 1, 1)) is None

    def test_rejected_login_is_not_recorded(self, gate, store):
        gate.admit("ada@example.com", now=BEFORE)
        assert "ada@example.com" not in store.candidates
        assert gate.admit("ada@example.com").admitted


class TestOneAttempt:
    def test_second_login_rejected(self, gate):
        assert gate.admit("ada@example.com").admitted
        admission = gate.admit("ada@example.com")
        assert admission.reason is AdmissionReason.ALREADY_ATTEMPTED

    def test_login_after_submission_rejected(self, gate, store):
        gate.admit("ada@example.com")
        assert gate.accept_submission("ada@example.com", ["a"]).admitted
        assert store.has_attempted("ada@example.com")
        assert gate.admit("ada@example.com").reason is AdmissionReason.ALREADY_ATTEMPTED

    def test_answers_written_once(self, gate, store):
        assert gate.accept_submission("ada@example.com", ["a", "b"]).admitted
        second = gate.accept_submission("ada@example.com", ["c"])
        assert second.reason is AdmissionReason.ALREADY_ATTEMPTED
        assert store.results["ada@example.com"]["answers"] == ["a", "b"]

    def test_submission_after_window_rejected(self, gate, store):
        gate.admit("ada@example.com")
        rejected = gate.accept_submission("ada@example.com", ["a"], now=AFTER)
        assert rejected.reason is AdmissionReason.ENDED
        assert "ada@example.com" not in store.results


class TestAuditStore:
    def test_evidence_links_latest_matching_record(self, store):
        store.append_audit(AuditRecord(
            candidate_id="ada@example.com", cause="Voice detected", timestamp=1.0,
        ))
        store.append_audit(AuditRecord(
            candidate_id="ada@example.com", cause="Tab switched", timestamp=2.0,
        ))
        store.append_evidence(EvidenceRecord(
            email="ada@example.com", reason="Tab switched", path="/tmp/x.jpg", timestamp=2.1,
        ))

        records = store.audit_for("ada@example.com")
        assert [r.evidence_ref for r in records] == [None, "/tmp/x.jpg"]
        assert store.audit_for("bob@example.com") == []

    def test_evidence_arriving_first_is_linked_later(self, store):
        store.append_evidence(EvidenceRecord(
            email="ada@example.com", reason="Tab switched", path="/tmp/a.jpg", timestamp=1.0,
        ))
        store.append_audit(AuditRecord(
            candidate_id="ada@example.com", cause="Voice detected", timestamp=1.1,
        ))
        store.append_audit(AuditRecord(
            candidate_id="ada@example.com", cause="Tab switched", timestamp=1.2,
        ))
        store.append_audit(AuditRecord(
            candidate_id="ada@example.com", cause="Tab switched", timestamp=1.3,
        ))

        refs = [r.evidence_ref for r in store.audit_for("ada@example.com")]
        assert refs == [None, "/tmp/a.jpg", None]
