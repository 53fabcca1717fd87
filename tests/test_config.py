"""Tests for parley.core.config."""

import pytest

from parley.core.config import Settings


class TestSettings:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("PARLEY_QUESTION_TIMEOUT_SECONDS", raising=False)
        cfg = Settings(_env_file=None)
        assert cfg.question_timeout_seconds == 300
        assert cfg.header_max_length == 12
        assert cfg.telegram_bot_token == ""

    def test_env_prefix(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PARLEY_QUESTION_TIMEOUT_SECONDS", "30")
        monkeypatch.setenv("PARLEY_TELEGRAM_ADMIN_CHAT_ID", "555")
        cfg = Settings(_env_file=None)
        assert cfg.question_timeout_seconds == 30
        assert cfg.telegram_admin_chat_id == 555
