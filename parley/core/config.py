"""Configuration via environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    # Anthropic
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-5"

    # Telegram surface
    telegram_bot_token: str = ""
    telegram_admin_chat_id: int = 0

    # Questions
    question_timeout_seconds: float = 300.0
    header_max_length: int = 12

    # App
    chat_api_key: str = ""
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "env_prefix": "PARLEY_"}


settings = Settings()
