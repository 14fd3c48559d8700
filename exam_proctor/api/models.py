"""
Pydantic models for the FastAPI backends.

These models define the request / response schemas for the exam
server endpoints, the WebSocket relay and the local agent API.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, Field


# ─── Enums ────────────────────────────────────────────────────────

class AdmissionReason(str, Enum):
    NOT_STARTED = "not started yet"
    ENDED = "exam ended"
    ALREADY_ATTEMPTED = "already attempted"


# ─── Exam server: Request / Response ──────────────────────────────

class LoginRequest(BaseModel):
    """Request body for ``POST /login``."""

    email: str = Field(min_length=1)
    name: Optional[str] = None
    phone: Optional[str] = None
    college: Optional[str] = None


class LoginResponse(BaseModel):
    success: bool = True


class ViolationLogRequest(BaseModel):
    """Request body for ``POST /log``."""

    email: str = Field(min_length=1)
    type: str = Field(min_length=1)
    candidate: Optional[str] = None
    timestamp: Optional[float] = None


class SnapshotUpload(BaseModel):
    """Request body for ``POST /upload-snapshot`` (base64 image)."""

    email: str = Field(min_length=1)
    reason: str
    image: str


class SubmitRequest(BaseModel):
    """Request body for ``POST /submit``."""

    email: str = Field(min_length=1)
    answers: List[Any] = Field(default_factory=list)


class SubmitResponse(BaseModel):
    success: bool = True


# ─── Event Models ─────────────────────────────────────────────────

class AuditRecord(BaseModel):
    """Append-only violation record; also relayed to observers."""

    type: str = "violation"
    candidate_id: str
    candidate: Optional[str] = None
    cause: str
    timestamp: float
    evidence_ref: Optional[str] = None


class EvidenceRecord(BaseModel):
    email: str
    reason: str
    path: str
    timestamp: float


class HealthStatus(BaseModel):
    """Response for ``GET /health``."""

    status: str = "healthy"
    version: str
    exam_window_open: bool
    uptime_seconds: float


# ─── Agent API ────────────────────────────────────────────────────

class BrowserSignal(BaseModel):
    """Edge-triggered report from the exam page."""

    kind: Literal["visibility", "fullscreen"]
    # visibility: True when hidden; fullscreen: True while fullscreen
    value: bool


class AnswersUpdate(BaseModel):
    answers: List[Any] = Field(default_factory=list)


class NoticeOut(BaseModel):
    message: str
    level: str
    timestamp: float


class SessionStatus(BaseModel):
    """Response for ``GET /status`` on the agent."""

    candidate_id: str
    state: str
    remaining_seconds: int
    remaining_display: str
    cause: Optional[str] = None
    camera_on: bool
    microphone_on: bool
    notices: List[NoticeOut]


class ActionResponse(BaseModel):
    accepted: bool
    state: str
