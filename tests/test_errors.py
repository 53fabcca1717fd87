"""Tests for parley.core.errors."""

from parley.core.errors import (
    AskError,
    BatchValidationError,
    ChannelUnavailableError,
    IdentifierCollisionError,
    QuestionCancelledError,
    QuestionTimeoutError,
)


class TestErrors:
    def test_all_are_ask_errors(self) -> None:
        for cls in (
            BatchValidationError,
            ChannelUnavailableError,
            IdentifierCollisionError,
            QuestionCancelledError,
            QuestionTimeoutError,
        ):
            assert issubclass(cls, AskError)

    def test_default_messages(self) -> None:
        assert str(ChannelUnavailableError()) == "Question callback not configured"
        assert str(QuestionTimeoutError()) == "Question timed out waiting for user response"
        assert str(QuestionCancelledError()) == "Question cancelled by user"

    def test_custom_message(self) -> None:
        assert str(ChannelUnavailableError("channel 'x' failed")) == "channel 'x' failed"

    def test_timeout_is_not_builtin_timeout(self) -> None:
        assert not issubclass(QuestionTimeoutError, TimeoutError)
