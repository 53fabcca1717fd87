"""Tool registry with async dispatch."""

import logging
from collections.abc import Awaitable, Callable
from typing import TypedDict

from parley.core.coordinator import QuestionCoordinator, format_answers
from parley.core.errors import AskError
from parley.data.schemas import DEFAULT_HEADER_MAX_LENGTH, parse_question_batch

logger = logging.getLogger(__name__)


class ToolSchema(TypedDict):
    """Claude API tool definition."""

    name: str
    description: str
    input_schema: dict[str, object]


class ToolDef(TypedDict):
    """Registry entry for a single tool."""

    handler: Callable[..., Awaitable[str]]
    schema: ToolSchema


ASK_USER_QUESTION = "ask_user_question"

ASK_USER_QUESTION_DESCRIPTION = (
    "Ask the user questions when you need clarification, want to validate assumptions, "
    "or need to make a decision you're unsure about. This allows you to:\n"
    "1. Gather user preferences or requirements\n"
    "2. Clarify ambiguous instructions\n"
    "3. Get decisions on implementation choices\n"
    "4. Offer choices about what direction to take\n\n"
    'Users can select from predefined options or provide custom input via "Other".'
)


async def _placeholder_handler(**_kwargs: object) -> str:
    """Placeholder until real handlers are wired during app init."""
    return "Error: Question callback not configured"


TOOL_REGISTRY: dict[str, ToolDef] = {
    ASK_USER_QUESTION: {
        "handler": _placeholder_handler,
        "schema": {
            "name": ASK_USER_QUESTION,
            "description": ASK_USER_QUESTION_DESCRIPTION,
            "input_schema": {
                "type": "object",
                "properties": {
                    "questions": {
                        "type": "array",
                        "minItems": 1,
                        "maxItems": 4,
                        "description": "Questions to ask (1-4 questions)",
                        "items": {
                            "type": "object",
                            "properties": {
                                "question": {
                                    "type": "string",
                                    "description": "The complete question to ask the user",
                                },
                                "header": {
                                    "type": "string",
                                    "maxLength": DEFAULT_HEADER_MAX_LENGTH,
                                    "description": "Short label displayed as a chip/tag (max 12 chars)",
                                },
                                "options": {
                                    "type": "array",
                                    "minItems": 2,
                                    "maxItems": 4,
                                    "description": "Available choices (2-4 options)",
                                    "items": {
                                        "type": "object",
                                        "properties": {
                                            "label": {
                                                "type": "string",
                                                "description": "The display text for this option (1-5 words)",
                                            },
                                            "description": {
                                                "type": "string",
                                                "description": "Explanation of what this option means",
                                            },
                                        },
                                        "required": ["label", "description"],
                                    },
                                },
                                "multiSelect": {
                                    "type": "boolean",
                                    "description": "Allow multiple selections if true",
                                },
                            },
                            "required": ["question", "header", "options", "multiSelect"],
                        },
                    },
                },
                "required": ["questions"],
            },
        },
    },
}


def get_tool_schemas() -> list[ToolSchema]:
    """Return list of Claude API tool definitions from the registry."""
    return [tool["schema"] for tool in TOOL_REGISTRY.values()]


def register_handler(tool_name: str, handler: Callable[..., Awaitable[str]]) -> None:
    """Wire a real handler into an existing registry entry."""
    if tool_name not in TOOL_REGISTRY:
        msg = f"Unknown tool: {tool_name}"
        raise KeyError(msg)
    TOOL_REGISTRY[tool_name]["handler"] = handler


def make_ask_handler(
    coordinator: QuestionCoordinator,
    header_max_length: int = DEFAULT_HEADER_MAX_LENGTH,
) -> Callable[..., Awaitable[str]]:
    """Build the ask_user_question handler bound to ``coordinator``."""

    async def _ask_user_question(session_id: str = "", **kwargs: object) -> str:
        try:
            batch = parse_question_batch(kwargs.get("questions"), header_max_length=header_max_length)
            answers = await coordinator.ask(batch, session_id)
        except AskError as exc:
            logger.error("Question error: %s", exc)
            return f"Error: {exc}"
        return format_answers(answers)

    return _ask_user_question


async def dispatch_tool(
    name: str,
    input_data: dict[str, object],
    session_id: str = "",
) -> str:
    """Look up and execute a tool.

    Args:
        name: Tool name from the registry.
        input_data: Arguments for the tool handler.
        session_id: Conversation the call belongs to, passed to the handler.

    Returns:
        The tool's string result, or an error message.
    """
    if name not in TOOL_REGISTRY:
        logger.error("Unknown tool requested: %s", name)
        return f"Error: unknown tool '{name}'"

    tool = TOOL_REGISTRY[name]
    arguments = {k: v for k, v in input_data.items() if k != "session_id"}

    try:
        result = await tool["handler"](session_id=session_id, **arguments)
    except Exception:
        logger.exception("Error executing tool %s", name)
        return f"Error: tool '{name}' execution failed"

    return result
