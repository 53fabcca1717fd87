"""Agent loop that lets Claude pause on ask_user_question calls."""

import logging

import anthropic

from parley.core.config import settings
from parley.core.registry import dispatch_tool, get_tool_schemas

logger = logging.getLogger(__name__)

MAX_TOOL_ROUNDS = 15

SYSTEM_PROMPT = (
    "You are a careful assistant. When a request is ambiguous or a decision depends on the "
    "user's preferences, call the ask_user_question tool instead of guessing. Keep headers "
    "short, offer 2-4 distinct options, and continue the task with the answers you receive."
)

EXHAUSTED_REPLY = "Stopped after reaching the maximum number of tool rounds without a final answer."


async def _run_tool_calls(
    calls: list[anthropic.types.ToolUseBlock],
    session_id: str,
) -> list[anthropic.types.ToolResultBlockParam]:
    """Dispatch each call in order; an ask blocks here until the user settles it."""
    results: list[anthropic.types.ToolResultBlockParam] = []
    for call in calls:
        output = await dispatch_tool(
            name=call.name,
            input_data=dict(call.input) if isinstance(call.input, dict) else {},
            session_id=session_id,
        )
        results.append(
            {
                "type": "tool_result",
                "tool_use_id": call.id,
                "content": output,
                "is_error": output.startswith("Error:"),
            }
        )
    return results


async def run_conversation(
    user_message: str,
    session_id: str,
    conversation_history: list[anthropic.types.MessageParam] | None = None,
) -> str:
    """Drive Claude until it answers without tools.

    Questions raised through ask_user_question are delivered to the
    channel bound to ``session_id``.
    """
    client = anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key)
    transcript: list[anthropic.types.MessageParam] = [
        *(conversation_history or []),
        {"role": "user", "content": user_message},
    ]
    tools = get_tool_schemas()

    for _ in range(MAX_TOOL_ROUNDS):
        reply = await client.messages.create(
            model=settings.anthropic_model,
            max_tokens=4096,
            system=SYSTEM_PROMPT,
            tools=tools,  # type: ignore[arg-type]
            messages=transcript,
        )
        calls = [block for block in reply.content if block.type == "tool_use"]
        if not calls:
            return "\n".join(block.text for block in reply.content if block.type == "text")

        logger.debug("Session %s: %d tool call(s)", session_id[:8], len(calls))
        transcript.append({"role": "assistant", "content": reply.content})
        transcript.append({"role": "user", "content": await _run_tool_calls(calls, session_id)})

    logger.warning("Session %s gave up after %d tool rounds", session_id[:8], MAX_TOOL_ROUNDS)
    return EXHAUSTED_REPLY
