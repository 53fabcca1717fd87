"""FastAPI entrypoint: agent chat plus the question answer/cancel surface."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field

from parley.core.config import settings
from parley.core.coordinator import QuestionCoordinator
from parley.core.orchestrator import run_conversation
from parley.core.registry import ASK_USER_QUESTION, make_ask_handler, register_handler
from parley.integrations.channels import ChannelRegistry, NotificationChannel, OutboxChannel, TelegramWizardChannel

logger = logging.getLogger(__name__)

_coordinator: QuestionCoordinator | None = None
_outbox: OutboxChannel | None = None
_telegram: TelegramWizardChannel | None = None


def get_coordinator() -> QuestionCoordinator:
    """Return the process coordinator, building it with an outbox default on first use."""
    global _coordinator, _outbox  # noqa: PLW0603
    if _coordinator is None:
        _outbox = OutboxChannel()
        channels = ChannelRegistry()
        channels.set_default(_outbox)
        _coordinator = QuestionCoordinator(
            channels=channels,
            timeout_seconds=settings.question_timeout_seconds,
        )
    return _coordinator


def get_outbox() -> OutboxChannel:
    get_coordinator()
    if _outbox is None:
        msg = "Outbox channel not initialized"
        raise RuntimeError(msg)
    return _outbox


def _available_channels() -> dict[str, NotificationChannel]:
    channels: dict[str, NotificationChannel] = {"outbox": get_outbox()}
    if _telegram is not None:
        channels[_telegram.name] = _telegram
    return channels


def _register_tool_handlers(coordinator: QuestionCoordinator) -> None:
    """Wire real handler implementations into the tool registry."""
    register_handler(
        ASK_USER_QUESTION,
        make_ask_handler(coordinator, header_max_length=settings.header_max_length),
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the coordinator and start the Telegram surface alongside the server."""
    global _coordinator, _outbox, _telegram  # noqa: PLW0603

    logging.basicConfig(level=settings.log_level)
    coordinator = get_coordinator()
    _register_tool_handlers(coordinator)

    if settings.telegram_bot_token:
        _telegram = TelegramWizardChannel(on_answer=coordinator.answer, on_cancel=coordinator.cancel)
        await _telegram.initialize()
        coordinator.channels.set_default(_telegram)
        logger.info("Telegram question surface started")
    else:
        logger.warning("PARLEY_TELEGRAM_BOT_TOKEN not set — questions go to the HTTP outbox only")

    yield

    for channel in coordinator.channels.channels():
        await channel.shutdown()
    _coordinator = None
    _outbox = None
    _telegram = None


app = FastAPI(title="Parley", version="0.1.0", lifespan=lifespan)

_bearer_scheme = HTTPBearer()


class ChatRequest(BaseModel):
    """Body for the /chat endpoint."""

    message: str
    session_id: str = Field(min_length=1)


class ChatResponse(BaseModel):
    """Response for the /chat endpoint."""

    response: str


class HealthResponse(BaseModel):
    """Response for the /health endpoint."""

    status: str


class ChannelBinding(BaseModel):
    """Body for binding a session to a question surface."""

    channel: str


class AnswerRequest(BaseModel):
    """Body for answering a pending question batch."""

    answers: dict[str, str]


class SettleResponse(BaseModel):
    """Whether this call settled the request (False when it was already settled)."""

    settled: bool


class QuestionNoticeResponse(BaseModel):
    """An open question batch waiting for the session's user."""

    request_id: str
    session_id: str
    questions: list[dict[str, Any]]
    created_at: str


async def _verify_api_key(
    credentials: HTTPAuthorizationCredentials = Depends(_bearer_scheme),  # noqa: B008
) -> str:
    """Validate the Bearer token against the configured chat_api_key."""
    if not settings.chat_api_key or credentials.credentials != settings.chat_api_key:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")
    return credentials.credentials


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(status="ok")


@app.post("/chat", response_model=ChatResponse)
async def chat(
    body: ChatRequest,
    _key: str = Depends(_verify_api_key),
) -> ChatResponse:
    """Run a conversation turn; blocks while the agent waits on questions. Requires Bearer auth."""
    result = await run_conversation(user_message=body.message, session_id=body.session_id)
    return ChatResponse(response=result)


@app.put("/sessions/{session_id}/channel", status_code=204)
async def bind_channel(
    session_id: str,
    body: ChannelBinding,
    _key: str = Depends(_verify_api_key),
) -> None:
    """Route this session's questions to a named surface."""
    channel = _available_channels().get(body.channel)
    if channel is None:
        raise HTTPException(status_code=404, detail=f"Unknown channel: {body.channel}")
    get_coordinator().channels.register(session_id, channel)


@app.delete("/sessions/{session_id}/channel", status_code=204)
async def unbind_channel(
    session_id: str,
    _key: str = Depends(_verify_api_key),
) -> None:
    """Drop the session's binding; its questions fall back to the default surface."""
    get_coordinator().channels.unregister(session_id)


@app.get("/sessions/{session_id}/questions", response_model=list[QuestionNoticeResponse])
async def list_questions(
    session_id: str,
    _key: str = Depends(_verify_api_key),
) -> list[QuestionNoticeResponse]:
    """Open question batches delivered to the outbox for this session."""
    return [QuestionNoticeResponse(**n.to_payload()) for n in get_outbox().open_notices(session_id)]


@app.post("/questions/{request_id}/answer", response_model=SettleResponse)
async def answer_question(
    request_id: str,
    body: AnswerRequest,
    _key: str = Depends(_verify_api_key),
) -> SettleResponse:
    """Deliver the user's answers. Late or duplicate answers report settled=false."""
    return SettleResponse(settled=get_coordinator().answer(request_id, body.answers))


@app.post("/questions/{request_id}/cancel", response_model=SettleResponse)
async def cancel_question(
    request_id: str,
    _key: str = Depends(_verify_api_key),
) -> SettleResponse:
    """Cancel a pending question batch."""
    return SettleResponse(settled=get_coordinator().cancel(request_id))
