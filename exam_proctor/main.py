"""
Exam Proctor — Main Entry Point.

Two execution modes:

    1. **Agent** (default) — logs the candidate in with the exam server,
       then runs camera / microphone / object / connectivity / device
       proctoring plus the local agent API for the exam page.

    2. **Server** (``--serve``) — runs the exam server (admission, audit,
       evidence, submission, violation relay).

Usage::

    python -m exam_proctor.main --serve
    python -m exam_proctor.main --candidate ada@example.com --name "Ada"
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from dataclasses import replace
from typing import Any, Dict, Optional

import uvicorn

from exam_proctor.api.client import ExamServerClient
from exam_proctor.core.config import ProctorConfig
from exam_proctor.core.errors import AdmissionError, DeviceUnavailableError
from exam_proctor.core.state import ExamSession
from exam_proctor.core.utils import get_logger, setup_folders
from exam_proctor.engine.runtime import ProctorRuntime
from exam_proctor.vision.camera import CameraSource
from exam_proctor.vision.face_detection import HaarFaceDetector
from exam_proctor.vision.yolo_detector import YOLODetector

log = get_logger("main")


# ─── Server mode ──────────────────────────────────────────────────

def run_server(config: ProctorConfig) -> None:
    """Run the exam server in the foreground."""
    from exam_proctor.api.server import create_app

    setup_folders(config)
    app = create_app(config)
    uvicorn.run(app, host=config.api_host, port=config.api_port, log_level="warning")


# ─── Agent mode ───────────────────────────────────────────────────

class _UnavailableMicrophone:
    """Stands in for a microphone whose audio backend failed to load."""

    is_active = False

    def __init__(self, detail: str) -> None:
        self.detail = detail

    def start(self) -> None:
        raise DeviceUnavailableError("microphone", self.detail)

    def stop(self) -> None:
        pass


def build_runtime(
    config: ProctorConfig,
    email: str,
    client: ExamServerClient,
) -> ProctorRuntime:
    """Assemble the runtime with every available adapter."""
    object_detector: Optional[YOLODetector] = YOLODetector(config)
    try:
        object_detector.load_model()
    except Exception as exc:
        log.warning("Phone detection not available: %s", exc)
        object_detector = None

    microphone = None
    device_probe = None
    try:
        from exam_proctor.audio.audio_stream import MicrophoneStream, list_input_devices

        microphone = MicrophoneStream(
            sample_rate=config.audio_sample_rate,
            window_size=config.voice_window_size,
        )
        device_probe = list_input_devices
    except OSError as exc:
        # PortAudio missing: the microphone counts as unavailable
        log.error("Audio backend not available: %s", exc)
        microphone = _UnavailableMicrophone(str(exc))

    runtime = ProctorRuntime(
        config,
        email,
        client,
        camera=CameraSource(config),
        face_detector=HaarFaceDetector(config),
        object_detector=object_detector,
        microphone=microphone,
        device_probe=device_probe,
    )
    return runtime


async def run_agent(
    config: ProctorConfig,
    email: str,
    name: Optional[str] = None,
    phone: Optional[str] = None,
    college: Optional[str] = None,
) -> Optional[ExamSession]:
    """Admission, then one proctored attempt alongside the agent API."""
    from exam_proctor.api.agent import create_agent_app

    async with ExamServerClient(config, candidate_name=name) as client:
        try:
            await client.login(email, name=name, phone=phone, college=college)
        except AdmissionError as exc:
            log.error("Admission refused: %s", exc.reason)
            return None

        runtime = build_runtime(config, email, client)
        server = uvicorn.Server(uvicorn.Config(
            create_agent_app(runtime),
            host=config.agent_host,
            port=config.agent_port,
            log_level="warning",
        ))
        api_task = asyncio.get_running_loop().create_task(server.serve())

        log.info("=" * 60)
        log.info("  EXAM PROCTOR — candidate %s", email)
        log.info("  Duration: %ds | Agent API: http://%s:%d",
                 config.exam_duration_seconds, config.agent_host, config.agent_port)
        log.info("=" * 60)

        try:
            session = await runtime.run()
        finally:
            server.should_exit = True
            await api_task

        log.info("=" * 60)
        log.info("  EXAM ENDED — %s", session.state.value.upper())
        if session.cause:
            log.info("  Cause : %s", session.cause)
        log.info("=" * 60)
        return session


# ─── CLI ──────────────────────────────────────────────────────────

def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Exam Proctor — proctored online exam agent and server",
    )
    parser.add_argument(
        "--serve", action="store_true",
        help="Run the exam server instead of the proctor agent",
    )
    parser.add_argument("--candidate", help="Candidate email (agent mode)")
    parser.add_argument("--name", help="Candidate name")
    parser.add_argument("--phone", help="Candidate phone")
    parser.add_argument("--college", help="Candidate college")
    parser.add_argument(
        "--server-url", default=None,
        help="Exam server base URL (agent mode)",
    )
    parser.add_argument(
        "--port", type=int, default=None,
        help="Port to listen on (server port with --serve, agent port otherwise)",
    )
    parser.add_argument(
        "--camera", type=int, default=None,
        help="Camera index (default: 0)",
    )
    parser.add_argument(
        "--duration", type=int, default=None,
        help="Exam duration in minutes (default: 50)",
    )

    args = parser.parse_args()

    # Build config from CLI args (env defaults are read at import time)
    overrides: Dict[str, Any] = {}
    if args.server_url:
        overrides["server_url"] = args.server_url
    if args.port is not None:
        overrides["api_port" if args.serve else "agent_port"] = args.port
    if args.camera is not None:
        overrides["camera_index"] = args.camera
    if args.duration is not None:
        overrides["exam_duration_seconds"] = args.duration * 60

    config = replace(ProctorConfig(), **overrides)

    if args.serve:
        run_server(config)
        return

    if not args.candidate:
        parser.error("--candidate is required in agent mode")

    session = asyncio.run(run_agent(
        config, args.candidate, name=args.name, phone=args.phone, college=args.college,
    ))
    if session is None:
        sys.exit(1)


if __name__ == "__main__":
    main()
