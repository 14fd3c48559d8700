"""
HTTP client for the exam server, used by the proctor agent.

Implements the audit sink (violation log + evidence), the submitter and
the connectivity probe consumed by the lifecycle controller and the
connectivity monitor.
"""

from __future__ import annotations

import base64
import time
from typing import Any, List, Optional

import httpx

from exam_proctor.core.config import ProctorConfig
from exam_proctor.core.errors import AdmissionError
from exam_proctor.core.utils import get_logger

log = get_logger("api.client")


class ExamServerClient:
    """
    Async client for the exam server endpoints.

    Usage::

        async with ExamServerClient(config) as client:
            await client.login("a@b.c", name="Ada")
            await client.record_violation("a@b.c", "Tab switched", time.time())
    """

    def __init__(
        self,
        config: ProctorConfig,
        candidate_name: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.cfg = config
        self.candidate_name = candidate_name
        self._client = httpx.AsyncClient(
            base_url=config.server_url,
            timeout=config.http_timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "ExamServerClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ── Admission ────────────────────────────────────────────────

    async def login(
        self,
        email: str,
        name: Optional[str] = None,
        phone: Optional[str] = None,
        college: Optional[str] = None,
    ) -> None:
        """Ask the exam server for admission; raises ``AdmissionError``."""
        resp = await self._client.post("/login", json={
            "email": email,
            "name": name,
            "phone": phone,
            "college": college,
        })
        if resp.status_code == 403:
            raise AdmissionError(resp.json().get("detail", "rejected"))
        resp.raise_for_status()
        self.candidate_name = name or self.candidate_name
        log.info("Admitted to exam as %s", email)

    # ── Audit sink ───────────────────────────────────────────────

    async def record_violation(self, candidate_id: str, cause: str, timestamp: float) -> None:
        resp = await self._client.post("/log", json={
            "candidate": self.candidate_name,
            "email": candidate_id,
            "type": cause,
            "timestamp": timestamp,
        })
        resp.raise_for_status()

    async def capture_evidence(self, candidate_id: str, cause: str, image: bytes) -> None:
        resp = await self._client.post("/upload-snapshot", json={
            "email": candidate_id,
            "reason": cause,
            "image": base64.b64encode(image).decode("ascii"),
        })
        resp.raise_for_status()

    # ── Submission ───────────────────────────────────────────────

    async def submit(self, candidate_id: str, answers: List[Any]) -> bool:
        """One submission attempt; ``False`` on any failure."""
        try:
            resp = await self._client.post("/submit", json={
                "email": candidate_id,
                "answers": answers,
            })
        except httpx.HTTPError as exc:
            log.error("Submit request failed: %s", exc)
            return False
        if resp.status_code != 200:
            log.error("Submit rejected (%d): %s", resp.status_code, resp.text)
            return False
        return True

    # ── Connectivity probe ───────────────────────────────────────

    async def is_online(self) -> bool:
        """``True`` if the exam server answers its health check."""
        started = time.monotonic()
        try:
            resp = await self._client.get("/health", timeout=self.cfg.probe_timeout)
        except httpx.HTTPError as exc:
            log.debug("Health probe failed after %.2fs: %s", time.monotonic() - started, exc)
            return False
        return resp.status_code == 200
