"""
Runtime state for the Exam Proctor system.

``ExamSession`` is the single mutable record of the exam lifecycle and is
owned by ``ExamController``.  ``SignalState`` is the private debounce
state of one violation evaluator.  Nothing here is global: every
runtime builds its own instances.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional


class ExamState(str, Enum):
    """Lifecycle states of an exam session."""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    TERMINATED = "terminated"
    SUBMITTED = "submitted"

    @property
    def is_terminal(self) -> bool:
        return self in (ExamState.TERMINATED, ExamState.SUBMITTED)


@dataclass
class ExamSession:
    """The candidate's exam attempt on this runtime."""

    candidate_id: str
    remaining_seconds: int
    state: ExamState = ExamState.NOT_STARTED
    started_at: Optional[float] = None
    ended_at: Optional[float] = None
    cause: Optional[str] = None
    advisory_shown: bool = False
    answers: List[Any] = field(default_factory=list)

    @property
    def remaining_display(self) -> str:
        """Remaining time as ``MM:SS``."""
        rem = max(self.remaining_seconds, 0)
        return f"{rem // 60:02d}:{rem % 60:02d}"

    def clear(self) -> None:
        """Drop the locally held answer state once the attempt is over."""
        self.answers = []


@dataclass
class SignalState:
    """
    Debounce state for a single monitored signal.

    ``accumulated`` holds seconds for duration-based signals and a
    sample count for counter-based ones.
    """

    accumulated: float = 0.0
    last_sample: Optional[float] = None
    warned: bool = False
    triggered: bool = False

    def reset(self) -> None:
        """Contrary observation: drop the streak."""
        self.accumulated = 0.0
        self.warned = False
        self.triggered = False

    def advance(self, timestamp: Optional[float] = None) -> float:
        """
        Move ``last_sample`` to *timestamp* and return the elapsed
        seconds since the previous sample of this signal.
        """
        now = time.time() if timestamp is None else timestamp
        delta = 0.0 if self.last_sample is None else max(now - self.last_sample, 0.0)
        self.last_sample = now
        return delta
