"""Channel registry: which surface shows questions for which session."""

from __future__ import annotations

import logging

from parley.integrations.channels.base import NotificationChannel

logger = logging.getLogger(__name__)


class ChannelRegistry:
    """Maps session ids to notification channels.

    Each session registers its own surface so concurrent sessions never
    receive each other's questions. An optional default channel serves
    sessions that did not register one.
    """

    def __init__(self) -> None:
        self._channels: dict[str, NotificationChannel] = {}
        self._default: NotificationChannel | None = None

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._channels

    def register(self, session_id: str, channel: NotificationChannel) -> None:
        """Bind ``channel`` to ``session_id``, replacing any previous binding."""
        previous = self._channels.get(session_id)
        if previous is not None and previous is not channel:
            logger.warning(
                "Session %s: replacing channel %s with %s",
                session_id[:8],
                previous.name,
                channel.name,
            )
        self._channels[session_id] = channel

    def unregister(self, session_id: str, channel: NotificationChannel | None = None) -> None:
        """Remove the binding for ``session_id``.

        When ``channel`` is given, only remove it if it is still the bound one,
        so a session ending late cannot unbind its successor.
        """
        current = self._channels.get(session_id)
        if current is None:
            return
        if channel is not None and current is not channel:
            return
        del self._channels[session_id]

    def set_default(self, channel: NotificationChannel | None) -> None:
        self._default = channel

    @property
    def default(self) -> NotificationChannel | None:
        return self._default

    def get(self, session_id: str) -> NotificationChannel | None:
        """Channel for ``session_id``, falling back to the default."""
        channel = self._channels.get(session_id)
        if channel is None:
            return self._default
        return channel

    def sessions(self) -> list[str]:
        return list(self._channels)

    def channels(self) -> list[NotificationChannel]:
        """Distinct registered channels, default included."""
        seen: list[NotificationChannel] = []
        for channel in [*self._channels.values(), self._default]:
            if channel is not None and all(channel is not c for c in seen):
                seen.append(channel)
        return seen
