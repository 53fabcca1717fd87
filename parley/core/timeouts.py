"""Per-request timers that fail a pending request when it goes unanswered."""

from __future__ import annotations

import asyncio
import logging

from parley.core.errors import QuestionTimeoutError
from parley.core.pending import PendingRequestTable

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 300.0  # 5 minutes


class TimeoutGuard:
    """Schedules ``table.fail(request_id, QuestionTimeoutError())`` after a delay."""

    def __init__(self, table: PendingRequestTable) -> None:
        self._table = table
        self._handles: dict[str, asyncio.TimerHandle] = {}

    def __len__(self) -> int:
        return len(self._handles)

    def armed(self, request_id: str) -> bool:
        return request_id in self._handles

    def arm(self, request_id: str, seconds: float = DEFAULT_TIMEOUT_SECONDS) -> None:
        """Start the timer for ``request_id``, replacing any existing one."""
        self.disarm(request_id)
        loop = asyncio.get_running_loop()
        self._handles[request_id] = loop.call_later(seconds, self._fire, request_id)

    def disarm(self, request_id: str) -> bool:
        """Cancel the timer. Returns False if it had already fired or never existed."""
        handle = self._handles.pop(request_id, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def _fire(self, request_id: str) -> None:
        self._handles.pop(request_id, None)
        if self._table.fail(request_id, QuestionTimeoutError()):
            logger.info("Question %s timed out", request_id)
