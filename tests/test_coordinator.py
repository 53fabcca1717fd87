"""Tests for parley.core.coordinator."""

from __future__ import annotations

import asyncio
import re
from unittest.mock import AsyncMock, patch

import pytest

from parley.core.coordinator import QuestionCoordinator, format_answers, new_request_id
from parley.core.errors import ChannelUnavailableError, QuestionCancelledError, QuestionTimeoutError
from parley.data.schemas import QuestionBatch, parse_question_batch
from parley.integrations.channels.base import NotificationChannel
from parley.integrations.channels.outbox import OutboxChannel


def _batch() -> QuestionBatch:
    return parse_question_batch(
        [
            {
                "question": "Which language?",
                "header": "Lang",
                "options": [{"label": "A", "description": ""}, {"label": "B", "description": ""}],
                "multiSelect": False,
            }
        ]
    )


class RecordingChannel(NotificationChannel):
    """Channel that remembers every notify call."""

    def __init__(self, name: str = "recording") -> None:
        self._name = name
        self.calls: list[tuple[str, QuestionBatch, str]] = []
        self.withdrawn: list[str] = []
        self.delivered = asyncio.Event()

    @property
    def name(self) -> str:
        return self._name

    async def notify(self, request_id: str, batch: QuestionBatch, session_id: str) -> None:
        self.calls.append((request_id, batch, session_id))
        self.delivered.set()

    async def withdraw(self, request_id: str) -> None:
        self.withdrawn.append(request_id)


async def _start(
    coordinator: QuestionCoordinator, channel: RecordingChannel, session_id: str = "s1"
) -> tuple[asyncio.Task[dict[str, str]], str]:
    """Start an ask call and return (task, request_id) once the channel saw it."""
    task = asyncio.create_task(coordinator.ask(_batch(), session_id))
    await asyncio.wait_for(channel.delivered.wait(), timeout=1)
    return task, channel.calls[-1][0]


def _make(timeout: float = 5) -> tuple[QuestionCoordinator, RecordingChannel]:
    coordinator = QuestionCoordinator(timeout_seconds=timeout)
    channel = RecordingChannel()
    coordinator.channels.register("s1", channel)
    return coordinator, channel


class TestHelpers:
    def test_request_id_shape(self) -> None:
        assert re.fullmatch(r"ask_\d+_[0-9a-f]{8}", new_request_id())

    def test_request_ids_unique(self) -> None:
        assert len({new_request_id() for _ in range(1000)}) == 1000

    def test_format_answers(self) -> None:
        text = format_answers({"Lang": "A", "Tools": "X, Y"})
        assert text == "User's answers:\nLang: A\nTools: X, Y"


class TestAsk:
    async def test_answer_resolves_ask(self) -> None:
        coordinator, channel = _make()
        task, request_id = await _start(coordinator, channel)

        assert coordinator.answer(request_id, {"Lang": "A"}) is True
        assert await task == {"Lang": "A"}

    async def test_notifies_exactly_once_with_session(self) -> None:
        coordinator, channel = _make()
        task, request_id = await _start(coordinator, channel, "s1")
        coordinator.answer(request_id, {"Lang": "B"})
        await task

        assert len(channel.calls) == 1
        rid, batch, session_id = channel.calls[0]
        assert rid == request_id
        assert batch.headers() == ["Lang"]
        assert session_id == "s1"

    async def test_cancel_raises_cancelled(self) -> None:
        coordinator, channel = _make()
        task, request_id = await _start(coordinator, channel)

        assert coordinator.cancel(request_id) is True
        with pytest.raises(QuestionCancelledError, match="cancelled by user"):
            await task

    async def test_timeout_raises(self) -> None:
        coordinator, channel = _make(timeout=0.05)
        with pytest.raises(QuestionTimeoutError, match="timed out"):
            await coordinator.ask(_batch(), "s1")
        assert len(coordinator.table) == 0
        assert len(coordinator.timeouts) == 0

    async def test_answer_before_timeout_wins(self) -> None:
        coordinator, channel = _make(timeout=0.05)
        task, request_id = await _start(coordinator, channel)
        await asyncio.sleep(0.01)
        coordinator.answer(request_id, {"Lang": "A"})

        assert await task == {"Lang": "A"}
        assert not coordinator.timeouts.armed(request_id)
        await asyncio.sleep(0.08)
        # Timer never fired: a late cancel still finds nothing to settle
        assert coordinator.cancel(request_id) is False


class TestAtMostOnce:
    async def test_late_answers_ignored(self) -> None:
        coordinator, channel = _make()
        task, request_id = await _start(coordinator, channel)

        assert coordinator.answer(request_id, {"Lang": "A"}) is True
        assert coordinator.answer(request_id, {"Lang": "B"}) is False
        assert coordinator.cancel(request_id) is False
        assert await task == {"Lang": "A"}

    async def test_cancel_then_answer_ignored(self) -> None:
        coordinator, channel = _make()
        task, request_id = await _start(coordinator, channel)

        assert coordinator.cancel(request_id) is True
        assert coordinator.answer(request_id, {"Lang": "A"}) is False
        with pytest.raises(QuestionCancelledError):
            await task

    async def test_answer_after_timeout_ignored(self) -> None:
        coordinator, channel = _make(timeout=0.02)
        task, request_id = await _start(coordinator, channel)
        with pytest.raises(QuestionTimeoutError):
            await task
        assert coordinator.answer(request_id, {"Lang": "A"}) is False
        assert coordinator.cancel(request_id) is False

    async def test_interleaved_settlers_one_winner(self) -> None:
        coordinator, channel = _make(timeout=0.02)
        task, request_id = await _start(coordinator, channel)

        async def _answer() -> bool:
            await asyncio.sleep(0.02)
            return coordinator.answer(request_id, {"Lang": "A"})

        async def _cancel() -> bool:
            await asyncio.sleep(0.02)
            return coordinator.cancel(request_id)

        results = await asyncio.gather(_answer(), _cancel(), task, return_exceptions=True)
        outcome = results[2]
        effective = [r for r in results[:2] if r is True]
        if isinstance(outcome, QuestionTimeoutError):
            assert effective == []
        else:
            assert len(effective) == 1


class TestCleanup:
    async def test_no_leak_after_answer(self) -> None:
        coordinator, channel = _make()
        task, request_id = await _start(coordinator, channel)
        coordinator.answer(request_id, {"Lang": "A"})
        await task

        assert request_id not in coordinator.table
        assert not coordinator.timeouts.armed(request_id)
        assert coordinator.pending("s1") == []

    async def test_no_leak_after_cancel(self) -> None:
        coordinator, channel = _make()
        task, request_id = await _start(coordinator, channel)
        coordinator.cancel(request_id)
        with pytest.raises(QuestionCancelledError):
            await task

        assert len(coordinator.table) == 0
        assert len(coordinator.timeouts) == 0

    async def test_channel_withdrawn_after_settlement(self) -> None:
        coordinator, channel = _make()
        task, request_id = await _start(coordinator, channel)
        coordinator.answer(request_id, {"Lang": "A"})
        await task
        await asyncio.sleep(0)

        assert channel.withdrawn == [request_id]

    async def test_caller_cancellation_cleans_up(self) -> None:
        coordinator, channel = _make()
        task, request_id = await _start(coordinator, channel)
        assert coordinator.pending("s1") == [request_id]

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert request_id not in coordinator.table
        assert not coordinator.timeouts.armed(request_id)
        assert coordinator.answer(request_id, {"Lang": "A"}) is False


class TestChannelResolution:
    async def test_missing_channel_fails_immediately(self) -> None:
        coordinator = QuestionCoordinator()
        with pytest.raises(ChannelUnavailableError, match="not configured"):
            await asyncio.wait_for(coordinator.ask(_batch(), "nobody"), timeout=1)
        assert len(coordinator.table) == 0
        assert len(coordinator.timeouts) == 0

    async def test_notify_failure_becomes_channel_error(self) -> None:
        coordinator = QuestionCoordinator()
        channel = OutboxChannel()
        coordinator.channels.register("s1", channel)
        with (
            patch.object(channel, "notify", new_callable=AsyncMock, side_effect=RuntimeError("down")),
            pytest.raises(ChannelUnavailableError, match="down"),
        ):
            await coordinator.ask(_batch(), "s1")
        assert len(coordinator.table) == 0

    async def test_sessions_routed_to_own_channels(self) -> None:
        coordinator = QuestionCoordinator()
        first, second = RecordingChannel("first"), RecordingChannel("second")
        coordinator.channels.register("s1", first)
        coordinator.channels.register("s2", second)

        t1, r1 = await _start(coordinator, first, "s1")
        t2, r2 = await _start(coordinator, second, "s2")
        assert [c[2] for c in first.calls] == ["s1"]
        assert [c[2] for c in second.calls] == ["s2"]
        assert coordinator.pending("s1") == [r1]
        assert coordinator.pending("s2") == [r2]

        coordinator.answer(r2, {"Lang": "B"})
        coordinator.answer(r1, {"Lang": "A"})
        assert await t1 == {"Lang": "A"}
        assert await t2 == {"Lang": "B"}

    async def test_default_channel_used_when_session_unbound(self) -> None:
        coordinator = QuestionCoordinator()
        fallback = RecordingChannel("fallback")
        coordinator.channels.set_default(fallback)

        task, request_id = await _start(coordinator, fallback, "anon")
        coordinator.answer(request_id, {"Lang": "A"})
        assert await task == {"Lang": "A"}
