"""In-memory channel that HTTP clients poll for open questions."""

from __future__ import annotations

import logging

from parley.data.schemas import QuestionBatch
from parley.integrations.channels.base import NotificationChannel, QuestionNotice

logger = logging.getLogger(__name__)


class OutboxChannel(NotificationChannel):
    """Keeps open notices until the coordinator withdraws them."""

    def __init__(self) -> None:
        self._notices: dict[str, QuestionNotice] = {}

    @property
    def name(self) -> str:
        return "outbox"

    async def notify(self, request_id: str, batch: QuestionBatch, session_id: str) -> None:
        self._notices[request_id] = QuestionNotice(
            request_id=request_id,
            session_id=session_id,
            batch=batch,
        )
        logger.debug("Outbox holds question %s for session %s", request_id, session_id[:8])

    async def withdraw(self, request_id: str) -> None:
        self._notices.pop(request_id, None)

    def get(self, request_id: str) -> QuestionNotice | None:
        return self._notices.get(request_id)

    def open_notices(self, session_id: str | None = None) -> list[QuestionNotice]:
        """Open notices, optionally filtered by session, in arrival order."""
        return [n for n in self._notices.values() if session_id is None or n.session_id == session_id]
