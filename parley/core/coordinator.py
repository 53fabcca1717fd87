"""Question rendezvous: suspend an agent until a human answers."""

from __future__ import annotations

import asyncio
import logging
import secrets
import time

from parley.core.errors import ChannelUnavailableError, QuestionCancelledError
from parley.core.pending import PendingRequestTable
from parley.core.timeouts import DEFAULT_TIMEOUT_SECONDS, TimeoutGuard
from parley.data.schemas import AnswerSet, QuestionBatch
from parley.integrations.channels.base import NotificationChannel
from parley.integrations.channels.router import ChannelRegistry

logger = logging.getLogger(__name__)


def new_request_id() -> str:
    """Return a collision-resistant id like ``ask_1718000000000_9f2c1a7b``."""
    return f"ask_{time.time_ns() // 1_000_000}_{secrets.token_hex(4)}"


def format_answers(answers: AnswerSet) -> str:
    """Render an answer set as ``header: value`` lines for the model."""
    lines = "\n".join(f"{header}: {value}" for header, value in answers.items())
    return f"User's answers:\n{lines}"


class QuestionCoordinator:
    """Registers question batches, notifies a surface, and awaits one settlement.

    Args:
        channels: Session -> channel registry used to deliver batches.
        table: Pending-request table. A fresh one is created when omitted.
        timeout_seconds: Bound on how long ``ask`` waits for a human.
    """

    def __init__(
        self,
        channels: ChannelRegistry | None = None,
        table: PendingRequestTable | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.channels = channels if channels is not None else ChannelRegistry()
        self.table = table if table is not None else PendingRequestTable()
        self.timeouts = TimeoutGuard(self.table)
        self.timeout_seconds = timeout_seconds
        # prevent fire-and-forget tasks from being garbage collected
        self._background_tasks: set[asyncio.Task[None]] = set()

    async def ask(self, batch: QuestionBatch, session_id: str) -> AnswerSet:
        """Deliver ``batch`` and wait for the answer set.

        Raises:
            ChannelUnavailableError: No channel serves ``session_id``.
            QuestionTimeoutError: Nobody answered in time.
            QuestionCancelledError: The user dismissed the questions.
        """
        request_id = new_request_id()
        future = self.table.register(request_id, session_id)
        self.timeouts.arm(request_id, self.timeout_seconds)
        logger.info(
            "Asking %d question(s) as %s for session %s",
            len(batch),
            request_id,
            session_id[:8],
        )

        channel = self.channels.get(session_id)
        try:
            if channel is None:
                logger.error("No question channel registered for session %s", session_id[:8])
                self.table.fail(request_id, ChannelUnavailableError())
            else:
                await self._notify(channel, request_id, batch, session_id)
            answers = await future
        finally:
            self.timeouts.disarm(request_id)
            self.table.discard(request_id)
            if channel is not None:
                self._withdraw_later(channel, request_id)

        logger.info("Question %s answered", request_id)
        return answers

    async def _notify(
        self,
        channel: NotificationChannel,
        request_id: str,
        batch: QuestionBatch,
        session_id: str,
    ) -> None:
        try:
            await channel.notify(request_id, batch, session_id)
        except Exception as exc:
            logger.exception("Channel %s failed to deliver %s", channel.name, request_id)
            error = ChannelUnavailableError(f"Question channel '{channel.name}' failed: {exc}")
            self.table.fail(request_id, error)

    def _withdraw_later(self, channel: NotificationChannel, request_id: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(channel.withdraw(request_id))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    def answer(self, request_id: str, answers: AnswerSet) -> bool:
        """Settle ``request_id`` with ``answers``. False if it already settled."""
        settled = self.table.settle(request_id, dict(answers))
        if settled:
            self.timeouts.disarm(request_id)
        else:
            logger.info("Ignoring late answer for %s", request_id)
        return settled

    def cancel(self, request_id: str) -> bool:
        """Settle ``request_id`` as cancelled. False if it already settled."""
        settled = self.table.fail(request_id, QuestionCancelledError())
        if settled:
            self.timeouts.disarm(request_id)
            logger.info("Question %s cancelled by user", request_id)
        return settled

    def pending(self, session_id: str) -> list[str]:
        """Request ids still waiting on the user of ``session_id``."""
        return self.table.pending_for(session_id)
