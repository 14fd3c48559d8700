"""
Exam lifecycle controller.

Single authority over the ``ExamSession``.  Every way out of RUNNING
(violation, timer expiry, manual submit, connection loss) goes through
one compare-and-set on the session state, so exactly one of them wins
and all later triggers are no-ops.

Side effects (audit record, evidence upload, submission) are scheduled
as tasks on the running loop and are best-effort: a failure is logged
and never blocks or reverts the transition.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, List, Optional, Protocol, Set

from exam_proctor.core.config import ProctorConfig
from exam_proctor.core.errors import ExamStateError
from exam_proctor.core.state import ExamSession, ExamState
from exam_proctor.core.utils import get_logger
from exam_proctor.engine.violation_engine import (
    Decision,
    SignalWarning,
    ViolationEvent,
)

log = get_logger("engine.lifecycle")


class AuditSink(Protocol):
    async def record_violation(self, candidate_id: str, cause: str, timestamp: float) -> None: ...

    async def capture_evidence(self, candidate_id: str, cause: str, image: bytes) -> None: ...


class Submitter(Protocol):
    async def submit(self, candidate_id: str, answers: List[Any]) -> bool: ...


class Notifier(Protocol):
    def notify(self, message: str, level: str = "info") -> None: ...


class ExamController:
    """
    Drives one exam session through
    NOT_STARTED → RUNNING → {TERMINATED, SUBMITTED}.

    Must be used from a running event loop.

    Usage::

        controller = ExamController(config, "a@b.c", audit, submitter, notices)
        controller.begin()
        controller.on_violation(event)
        await controller.wait_closed()
    """

    def __init__(
        self,
        config: ProctorConfig,
        candidate_id: str,
        audit: AuditSink,
        submitter: Submitter,
        notifier: Notifier,
        capture_frame: Optional[Callable[[], Optional[bytes]]] = None,
        on_stop: Optional[Callable[[], None]] = None,
        on_complete: Optional[Callable[[ExamSession], None]] = None,
    ) -> None:
        self.cfg = config
        self.audit = audit
        self.submitter = submitter
        self.notifier = notifier
        self._capture_frame = capture_frame
        self._on_stop = on_stop
        self._on_complete = on_complete

        self.session = ExamSession(
            candidate_id=candidate_id,
            remaining_seconds=config.exam_duration_seconds,
        )
        self._tasks: Set[asyncio.Task] = set()
        self._closed = asyncio.Event()

    # ── Properties ───────────────────────────────────────────────

    @property
    def state(self) -> ExamState:
        return self.session.state

    @property
    def is_running(self) -> bool:
        return self.session.state is ExamState.RUNNING

    # ── Transitions ──────────────────────────────────────────────

    def begin(self) -> ExamSession:
        """NOT_STARTED → RUNNING."""
        s = self.session
        if s.state is not ExamState.NOT_STARTED:
            raise ExamStateError(f"Cannot begin exam in state {s.state.value}")
        s.state = ExamState.RUNNING
        s.started_at = time.time()
        s.remaining_seconds = self.cfg.exam_duration_seconds
        log.info(
            "Exam started for %s (%s remaining)",
            s.candidate_id, s.remaining_display,
        )
        return s

    def _claim(self, target: ExamState, cause: Optional[str] = None) -> bool:
        """Compare-and-set RUNNING → *target*. No awaits in here."""
        s = self.session
        if s.state is not ExamState.RUNNING:
            return False
        s.state = target
        s.cause = cause
        s.ended_at = time.time()
        return True

    def handle(self, decision: Decision) -> None:
        """Route an evaluator decision."""
        if isinstance(decision, ViolationEvent):
            self.on_violation(decision)
        elif isinstance(decision, SignalWarning):
            self.on_warning(decision)

    def on_violation(self, event: ViolationEvent) -> bool:
        """
        RUNNING → TERMINATED.  Returns ``False`` (and does nothing) if
        the session is not running.
        """
        if event.cause.ends_as_submission:
            return self._submit(event.cause.value)

        cause = event.cause.value
        if not self._claim(ExamState.TERMINATED, cause):
            log.debug("Ignoring %s — exam already %s", cause, self.state.value)
            return False

        s = self.session
        log.error("EXAM TERMINATED — %s (%s)", cause, s.candidate_id)

        # evidence goes out after the record it belongs to
        self._spawn(self._record(cause, event.timestamp, evidence=self._capture()))

        self.notifier.notify(
            self.cfg.messages["terminated"].format(cause=cause), "error",
        )
        self._stop_adapters()
        self._spawn(self._finish())
        return True

    def on_warning(self, warning: SignalWarning) -> None:
        """Non-terminating: audit or notify, never change state."""
        if not self.is_running:
            return
        if warning.cause.audited:
            self._spawn(self._record(warning.cause.value, warning.timestamp))
        else:
            self.notifier.notify(warning.cause.value, "warning")

    def on_timer_expiry(self) -> bool:
        """RUNNING → SUBMITTED when the countdown runs out."""
        return self._submit("time up")

    def on_manual_submit(self) -> bool:
        """RUNNING → SUBMITTED on the candidate's request."""
        return self._submit("manual submit")

    def _submit(self, reason: str) -> bool:
        if not self._claim(ExamState.SUBMITTED):
            log.debug("Ignoring submit (%s) — exam already %s", reason, self.state.value)
            return False
        log.info("Exam submitting — %s", reason)
        self._stop_adapters()
        self._spawn(self._finish())
        return True

    # ── Answers ──────────────────────────────────────────────────

    def update_answers(self, answers: List[Any]) -> bool:
        """Replace the answer state; only allowed while running."""
        if not self.is_running:
            return False
        self.session.answers = list(answers)
        return True

    # ── Countdown ────────────────────────────────────────────────

    def tick(self) -> None:
        """One countdown second."""
        s = self.session
        if s.state is not ExamState.RUNNING:
            return
        s.remaining_seconds -= 1
        if (
            s.remaining_seconds == self.cfg.advisory_remaining_seconds
            and not s.advisory_shown
        ):
            s.advisory_shown = True
            self.notifier.notify(self.cfg.messages["advisory"], "warning")
        if s.remaining_seconds <= 0:
            self.on_timer_expiry()

    async def run_countdown(self) -> None:
        """Tick once per ``tick_interval`` until the exam leaves RUNNING."""
        while self.is_running:
            await asyncio.sleep(self.cfg.tick_interval)
            self.tick()

    # ── Side effects ─────────────────────────────────────────────

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _capture(self) -> Optional[bytes]:
        if self._capture_frame is None:
            return None
        try:
            return self._capture_frame()
        except Exception as exc:
            log.warning("Evidence capture failed: %s", exc)
            return None

    def _stop_adapters(self) -> None:
        if self._on_stop is None:
            return
        try:
            self._on_stop()
        except Exception as exc:
            log.debug("Adapter shutdown error ignored: %s", exc)

    async def _record(
        self,
        cause: str,
        timestamp: float,
        evidence: Optional[bytes] = None,
    ) -> None:
        try:
            await self.audit.record_violation(self.session.candidate_id, cause, timestamp)
        except Exception as exc:
            log.warning("Audit record failed (%s): %s", cause, exc)
        if evidence is not None:
            await self._upload_evidence(cause, evidence)

    async def _upload_evidence(self, cause: str, image: bytes) -> None:
        try:
            await self.audit.capture_evidence(self.session.candidate_id, cause, image)
        except Exception as exc:
            log.warning("Evidence upload failed (%s): %s", cause, exc)

    async def _finish(self) -> None:
        """The one submission attempt, then local cleanup."""
        s = self.session
        ok = False
        try:
            ok = await self.submitter.submit(s.candidate_id, list(s.answers))
        except Exception as exc:
            log.error("Submission failed: %s", exc)

        if ok:
            log.info("Answers submitted for %s", s.candidate_id)
        else:
            log.warning("Answers for %s were not persisted", s.candidate_id)

        self.notifier.notify(self.cfg.messages["submitted"], "info")
        s.clear()

        if self._on_complete is not None:
            try:
                self._on_complete(s)
            except Exception as exc:
                log.error("Completion callback failed: %s", exc)
        self._closed.set()

    async def wait_closed(self) -> None:
        """Wait for the submission path and pending side effects."""
        await self._closed.wait()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @property
    def closed(self) -> bool:
        return self._closed.is_set()
