"""Abstract base for surfaces that display question batches."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from parley.data.schemas import QuestionBatch


@dataclass
class QuestionNotice:
    """A batch handed to a surface, as the surface remembers it."""

    request_id: str
    session_id: str
    batch: QuestionBatch
    created_at: str = field(default_factory=lambda: datetime.now(UTC).isoformat())

    def to_payload(self) -> dict[str, Any]:
        return {
            "request_id": self.request_id,
            "session_id": self.session_id,
            "questions": self.batch.to_payload(),
            "created_at": self.created_at,
        }


class NotificationChannel(ABC):
    """A surface that renders question batches and reports answers back.

    Answers and cancellations do not flow back through ``notify``; the
    surface calls the coordinator's ``answer``/``cancel`` when the user acts.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique channel name (e.g. 'telegram')."""

    @abstractmethod
    async def notify(self, request_id: str, batch: QuestionBatch, session_id: str) -> None:
        """Present ``batch`` to the user of ``session_id``."""

    async def withdraw(self, request_id: str) -> None:  # noqa: B027
        """Forget a request that has settled. Default: nothing to clean up."""

    async def initialize(self) -> None:  # noqa: B027
        """Start the channel (called during app startup)."""

    async def shutdown(self) -> None:  # noqa: B027
        """Clean shutdown (called during app teardown)."""
