"""User-visible notices (termination reason, advisories, confirmations)."""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass
from typing import Deque, List

from exam_proctor.core.utils import get_logger

log = get_logger("notices")


@dataclass(frozen=True)
class Notice:
    message: str
    level: str
    timestamp: float


class NoticeBoard:
    """Keeps the most recent notices for the exam page to display."""

    def __init__(self, maxlen: int = 50) -> None:
        self._notices: Deque[Notice] = deque(maxlen=maxlen)

    def notify(self, message: str, level: str = "info") -> None:
        self._notices.append(Notice(message, level, time.time()))
        log.info("NOTICE [%s] %s", level, message)

    def recent(self) -> List[Notice]:
        return list(self._notices)

    @property
    def messages(self) -> List[str]:
        return [n.message for n in self._notices]
