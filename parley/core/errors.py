"""Failure kinds surfaced by the question rendezvous."""


class AskError(Exception):
    """Base class for failures local to a single ask call."""


class ChannelUnavailableError(AskError):
    """No notification channel is registered for the session."""

    def __init__(self, message: str = "Question callback not configured") -> None:
        super().__init__(message)


class QuestionTimeoutError(AskError):
    """Nobody answered within the configured bound."""

    def __init__(self, message: str = "Question timed out waiting for user response") -> None:
        super().__init__(message)


class QuestionCancelledError(AskError):
    """The user dismissed the question wizard."""

    def __init__(self, message: str = "Question cancelled by user") -> None:
        super().__init__(message)


class IdentifierCollisionError(AskError):
    """A request id was registered twice."""


class BatchValidationError(AskError, ValueError):
    """A question batch does not have the accepted shape."""
