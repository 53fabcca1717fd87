"""Pending question requests awaiting exactly one settlement."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field

from parley.core.errors import IdentifierCollisionError
from parley.data.schemas import AnswerSet

logger = logging.getLogger(__name__)


@dataclass
class PendingRequest:
    """A registered request and the future its caller awaits."""

    request_id: str
    session_id: str
    future: asyncio.Future[AnswerSet]
    created_at: float = field(default_factory=time.monotonic)


class PendingRequestTable:
    """Maps request ids to unsettled futures.

    Settlement claims an entry with a single ``dict.pop`` and resolves its
    future without yielding to the event loop, so for every registered id at
    most one of ``settle``/``fail`` has an effect.
    """

    def __init__(self) -> None:
        self._entries: dict[str, PendingRequest] = {}

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def register(self, request_id: str, session_id: str = "") -> asyncio.Future[AnswerSet]:
        """Create the future for ``request_id`` on the running loop."""
        if request_id in self._entries:
            msg = f"Request id already pending: {request_id}"
            raise IdentifierCollisionError(msg)
        future: asyncio.Future[AnswerSet] = asyncio.get_running_loop().create_future()
        self._entries[request_id] = PendingRequest(
            request_id=request_id,
            session_id=session_id,
            future=future,
        )
        return future

    def _claim(self, request_id: str) -> PendingRequest | None:
        entry = self._entries.pop(request_id, None)
        if entry is None or entry.future.done():
            return None
        return entry

    def settle(self, request_id: str, answers: AnswerSet) -> bool:
        """Resolve with answers. Returns False when already settled or unknown."""
        entry = self._claim(request_id)
        if entry is None:
            return False
        entry.future.set_result(answers)
        return True

    def fail(self, request_id: str, error: BaseException) -> bool:
        """Resolve with ``error``. Returns False when already settled or unknown."""
        entry = self._claim(request_id)
        if entry is None:
            return False
        entry.future.set_exception(error)
        return True

    def discard(self, request_id: str) -> None:
        """Drop an entry without resolving it (caller already stopped waiting)."""
        self._entries.pop(request_id, None)

    def pending_for(self, session_id: str) -> list[str]:
        """Request ids still open for a session, oldest first."""
        entries = [e for e in self._entries.values() if e.session_id == session_id]
        entries.sort(key=lambda e: e.created_at)
        return [e.request_id for e in entries]
