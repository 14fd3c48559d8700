"""
FastAPI exam server.

Authority side of the exam: admission, audit log, evidence, submission,
and a WebSocket relay that forwards every violation record to passive
observers (live monitoring dashboards).

Endpoints:
    POST  /login            — time window + one-attempt admission
    POST  /log              — append a violation record and relay it
    POST  /upload-snapshot  — store a still image as evidence
    POST  /submit           — time-locked, one-time answer write
    GET   /health           — server health / connectivity probe
    WS    /ws/violations    — real-time violation relay
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from exam_proctor import __version__
from exam_proctor.api.gate import AttemptStore, EvidenceStore, ExamWindowGate
from exam_proctor.api.models import (
    AuditRecord,
    HealthStatus,
    LoginRequest,
    LoginResponse,
    SnapshotUpload,
    SubmitRequest,
    SubmitResponse,
    ViolationLogRequest,
)
from exam_proctor.core.config import ProctorConfig
from exam_proctor.core.utils import get_logger

log = get_logger("api")

# ─── WebSocket Manager ───────────────────────────────────────────

class ConnectionManager:
    """Manages observer WebSocket connections for violation broadcasting."""

    def __init__(self) -> None:
        self._connections: list[WebSocket] = []

    async def connect(self, ws: WebSocket) -> None:
        await ws.accept()
        self._connections.append(ws)
        log.info("Observer connected (%d total)", len(self._connections))

    def disconnect(self, ws: WebSocket) -> None:
        if ws in self._connections:
            self._connections.remove(ws)
        log.info("Observer disconnected (%d total)", len(self._connections))

    async def broadcast(self, data: Dict[str, Any]) -> None:
        """Send a JSON message to all observers; drop the dead ones."""
        dead: list[WebSocket] = []
        for ws in self._connections:
            try:
                await ws.send_json(data)
            except Exception:
                dead.append(ws)
        for ws in dead:
            self.disconnect(ws)


# ─── App Factory ──────────────────────────────────────────────────

def create_app(
    config: ProctorConfig,
    store: Optional[AttemptStore] = None,
    gate: Optional[ExamWindowGate] = None,
) -> FastAPI:
    """Create and configure the exam server application."""
    store = store or AttemptStore()
    gate = gate or ExamWindowGate(config, store)
    evidence = EvidenceStore(config, store)
    observers = ConnectionManager()
    start_time = time.time()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        start, end = gate.start, gate.end
        log.info("Exam server started on %s:%d", config.api_host, config.api_port)
        log.info("Exam window: %s → %s", start or "open", end or "open")
        yield
        log.info("Exam server shutting down.")

    app = FastAPI(
        title="Exam Proctor Server",
        version=__version__,
        description="Admission, audit and submission authority for proctored exams",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.store = store
    app.state.gate = gate
    app.state.observers = observers

    # ── Endpoints ────────────────────────────────────────────────

    @app.post("/login", response_model=LoginResponse)
    async def login(req: LoginRequest) -> LoginResponse:
        """Admit a candidate inside the exam window, once."""
        admission = gate.admit(
            req.email, name=req.name, phone=req.phone, college=req.college,
        )
        if not admission.admitted:
            raise HTTPException(status_code=403, detail=admission.reason.value)
        return LoginResponse()

    @app.post("/log", status_code=200)
    async def log_violation(req: ViolationLogRequest) -> Dict[str, bool]:
        """Append a violation record and relay it to observers."""
        record = AuditRecord(
            candidate_id=req.email,
            candidate=req.candidate,
            cause=req.type,
            timestamp=req.timestamp or time.time(),
        )
        store.append_audit(record)
        log.warning("Violation logged — %s: %s", req.email, req.type)
        await observers.broadcast(record.model_dump())
        return {"success": True}

    @app.post("/upload-snapshot", status_code=200)
    async def upload_snapshot(req: SnapshotUpload) -> Dict[str, str]:
        """Store a still image tagged with the violation reason."""
        try:
            record = evidence.save_base64(req.email, req.reason, req.image)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        return {"path": record.path}

    @app.post("/submit", response_model=SubmitResponse)
    async def submit(req: SubmitRequest) -> SubmitResponse:
        """Persist answers once, inside the exam window."""
        admission = gate.accept_submission(req.email, req.answers)
        if not admission.admitted:
            raise HTTPException(status_code=403, detail=admission.reason.value)
        return SubmitResponse()

    @app.get("/health", response_model=HealthStatus)
    async def health() -> HealthStatus:
        """Health check endpoint."""
        return HealthStatus(
            version=__version__,
            exam_window_open=gate.check_window() is None,
            uptime_seconds=round(time.time() - start_time, 1),
        )

    @app.websocket("/ws/violations")
    async def websocket_violations(ws: WebSocket) -> None:
        """Real-time WebSocket stream of violation records."""
        await observers.connect(ws)
        try:
            while True:
                # Keep connection alive; observers never send commands
                await ws.receive_text()
        except WebSocketDisconnect:
            observers.disconnect(ws)

    return app
