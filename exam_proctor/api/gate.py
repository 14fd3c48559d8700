"""
Exam window gate and attempt store.

The gate admits a candidate only inside the configured time window and
only once per identity.  The store provides the two guarantees the exam
needs from persistence: admission is recorded atomically, and answers
are written at most once per identity.
"""

from __future__ import annotations

import base64
import binascii
import os
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from exam_proctor.api.models import AdmissionReason, AuditRecord, EvidenceRecord
from exam_proctor.core.config import ProctorConfig
from exam_proctor.core.utils import decode_image, get_logger, save_snapshot

log = get_logger("api.gate")


@dataclass(frozen=True)
class Admission:
    admitted: bool
    reason: Optional[AdmissionReason] = None


@dataclass
class CandidateRecord:
    email: str
    name: Optional[str] = None
    phone: Optional[str] = None
    college: Optional[str] = None
    admitted_at: Optional[float] = None
    attempted: bool = False


class AttemptStore:
    """
    In-process store for candidates, results, audit logs and evidence.

    All mutators hold one lock, so check-and-write pairs are atomic
    even when called from worker threads.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.candidates: Dict[str, CandidateRecord] = {}
        self.results: Dict[str, Dict[str, Any]] = {}
        self.audit_log: List[AuditRecord] = []
        self.evidence: List[EvidenceRecord] = []

    def try_admit(self, email: str, **profile: Optional[str]) -> bool:
        """Record an admission; ``False`` if the identity already has one."""
        with self._lock:
            rec = self.candidates.get(email)
            if rec is not None and (rec.attempted or rec.admitted_at is not None):
                return False
            self.candidates[email] = CandidateRecord(
                email=email, admitted_at=time.time(), **profile,
            )
            return True

    def has_attempted(self, email: str) -> bool:
        with self._lock:
            rec = self.candidates.get(email)
            return rec is not None and rec.attempted

    def record_submission(self, email: str, answers: List[Any]) -> bool:
        """One-time write of a candidate's answers."""
        with self._lock:
            if email in self.results:
                return False
            self.results[email] = {
                "email": email,
                "answers": list(answers),
                "submitted_at": time.time(),
            }
            rec = self.candidates.setdefault(email, CandidateRecord(email=email))
            rec.attempted = True
            return True

    def append_audit(self, record: AuditRecord) -> None:
        """Store a record; evidence that arrived first is linked now."""
        with self._lock:
            if record.evidence_ref is None:
                linked = {a.evidence_ref for a in self.audit_log}
                for ev in reversed(self.evidence):
                    if (
                        ev.email == record.candidate_id
                        and ev.reason == record.cause
                        and ev.path not in linked
                    ):
                        record.evidence_ref = ev.path
                        break
            self.audit_log.append(record)

    def append_evidence(self, record: EvidenceRecord) -> None:
        """Store evidence and link it to the matching audit record."""
        with self._lock:
            self.evidence.append(record)
            for audit in reversed(self.audit_log):
                if (
                    audit.candidate_id == record.email
                    and audit.cause == record.reason
                    and audit.evidence_ref is None
                ):
                    audit.evidence_ref = record.path
                    break

    def audit_for(self, email: str) -> List[AuditRecord]:
        with self._lock:
            return [r for r in self.audit_log if r.candidate_id == email]


class ExamWindowGate:
    """
    Time window + one-attempt admission.

    Usage::

        gate = ExamWindowGate(config, store)
        admission = gate.admit("a@b.c")
        if not admission.admitted:
            print(admission.reason.value)
    """

    def __init__(
        self,
        config: ProctorConfig,
        store: AttemptStore,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.cfg = config
        self.store = store
        self._clock = clock
        self.start, self.end = config.exam_window

    def check_window(self, now: Optional[datetime] = None) -> Optional[AdmissionReason]:
        """Return the rejection reason for *now*, or ``None`` if open."""
        now = now or self._clock()
        if self.start is not None and now < self.start:
            return AdmissionReason.NOT_STARTED
        if self.end is not None and now > self.end:
            return AdmissionReason.ENDED
        return None

    def admit(
        self,
        email: str,
        now: Optional[datetime] = None,
        **profile: Optional[str],
    ) -> Admission:
        """Login gate."""
        reason = self.check_window(now)
        if reason is None and not self.store.try_admit(email, **profile):
            reason = AdmissionReason.ALREADY_ATTEMPTED
        if reason is not None:
            log.warning("Admission rejected for %s: %s", email, reason.value)
            return Admission(False, reason)
        log.info("Admitted %s", email)
        return Admission(True)

    def accept_submission(
        self,
        email: str,
        answers: List[Any],
        now: Optional[datetime] = None,
    ) -> Admission:
        """Submission gate: time-locked, one write per identity."""
        reason = self.check_window(now)
        if reason is None and not self.store.record_submission(email, answers):
            reason = AdmissionReason.ALREADY_ATTEMPTED
        if reason is not None:
            log.warning("Submission rejected for %s: %s", email, reason.value)
            return Admission(False, reason)
        log.info("Submission stored for %s (%d answers)", email, len(answers))
        return Admission(True)


class EvidenceStore:
    """Writes still-image evidence to the snapshot folder."""

    def __init__(self, config: ProctorConfig, store: AttemptStore) -> None:
        self.cfg = config
        self.store = store

    def save_base64(self, email: str, reason: str, image_b64: str) -> EvidenceRecord:
        """Decode, validate and persist an image; raises ``ValueError``."""
        try:
            raw = base64.b64decode(image_b64, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError(f"invalid base64 image: {exc}") from exc
        frame = decode_image(raw)
        if frame is None:
            raise ValueError("image could not be decoded")

        os.makedirs(self.cfg.snap_folder, exist_ok=True)
        safe = "".join(c if c.isalnum() or c in "-_." else "_" for c in email)
        path = save_snapshot(frame, self.cfg.snap_folder, prefix=safe)
        record = EvidenceRecord(
            email=email, reason=reason, path=path, timestamp=time.time(),
        )
        self.store.append_evidence(record)
        log.info("Evidence saved for %s (%s): %s", email, reason, path)
        return record
