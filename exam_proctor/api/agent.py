"""
Local agent API.

Served by the proctor agent on the candidate's machine.  The exam page
uses it to report browser focus changes, save answers, submit, and read
the session status (timer, device state, notices).

Endpoints:
    GET   /status           — session state, timer, notices
    PUT   /answers          — replace the current answer state
    POST  /signals/browser  — visibility / fullscreen change
    POST  /submit           — manual submission
"""

from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from exam_proctor import __version__
from exam_proctor.api.models import (
    ActionResponse,
    AnswersUpdate,
    BrowserSignal,
    SessionStatus,
)
from exam_proctor.core.utils import get_logger
from exam_proctor.engine.runtime import ProctorRuntime

log = get_logger("api.agent")


def create_agent_app(runtime: ProctorRuntime) -> FastAPI:
    """Create the agent application bound to one runtime."""
    app = FastAPI(
        title="Exam Proctor Agent",
        version=__version__,
        description="Local bridge between the exam page and the proctor runtime",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    controller = runtime.controller

    @app.get("/status", response_model=SessionStatus)
    async def status() -> SessionStatus:
        return SessionStatus(**runtime.status())

    @app.put("/answers", response_model=ActionResponse)
    async def save_answers(req: AnswersUpdate) -> ActionResponse:
        accepted = controller.update_answers(req.answers)
        if not accepted:
            raise HTTPException(status_code=409, detail="exam is not running")
        return ActionResponse(accepted=True, state=controller.state.value)

    @app.post("/signals/browser", response_model=ActionResponse)
    async def browser_signal(req: BrowserSignal) -> ActionResponse:
        accepted = runtime.browser.report(req.kind, req.value)
        return ActionResponse(accepted=accepted, state=controller.state.value)

    @app.post("/submit", response_model=ActionResponse)
    async def submit() -> ActionResponse:
        accepted = controller.on_manual_submit()
        log.info("Manual submit requested (accepted=%s)", accepted)
        return ActionResponse(accepted=accepted, state=controller.state.value)

    return app
