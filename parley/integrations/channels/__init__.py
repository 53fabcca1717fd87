"""Notification channels package — ABC, session registry, surfaces."""

from parley.integrations.channels.base import NotificationChannel, QuestionNotice
from parley.integrations.channels.outbox import OutboxChannel
from parley.integrations.channels.router import ChannelRegistry
from parley.integrations.channels.telegram import TelegramWizardChannel

__all__ = [
    "ChannelRegistry",
    "NotificationChannel",
    "OutboxChannel",
    "QuestionNotice",
    "TelegramWizardChannel",
]
