"""Question batch schemas and boundary validation."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from parley.core.errors import BatchValidationError

OTHER = "__other__"  # selection sentinel meaning "free-text answer"
ANSWER_DELIMITER = ", "

MIN_QUESTIONS = 1
MAX_QUESTIONS = 4
MIN_OPTIONS = 2
MAX_OPTIONS = 4
DEFAULT_HEADER_MAX_LENGTH = 12

# header -> joined answer value
AnswerSet = dict[str, str]


@dataclass(frozen=True)
class QuestionOption:
    """One predefined choice."""

    label: str
    description: str = ""


@dataclass(frozen=True)
class Question:
    """A single multiple-choice question."""

    prompt: str
    header: str  # display chip and aggregation key
    options: tuple[QuestionOption, ...]
    multi_select: bool = False

    def option_labels(self) -> list[str]:
        return [opt.label for opt in self.options]


@dataclass(frozen=True)
class QuestionBatch:
    """An ordered group of questions asked together."""

    questions: tuple[Question, ...]

    def __len__(self) -> int:
        return len(self.questions)

    def headers(self) -> list[str]:
        return [q.header for q in self.questions]

    def to_payload(self) -> list[dict[str, Any]]:
        """Render the batch in the wire shape used by notifications and the API."""
        return [
            {
                "question": q.prompt,
                "header": q.header,
                "options": [{"label": o.label, "description": o.description} for o in q.options],
                "multiSelect": q.multi_select,
            }
            for q in self.questions
        ]


def _require_text(value: object, where: str, *, allow_empty: bool = False) -> str:
    if not isinstance(value, str):
        msg = f"{where}: expected a string"
        raise BatchValidationError(msg)
    if not allow_empty and not value.strip():
        msg = f"{where}: must not be empty"
        raise BatchValidationError(msg)
    return value


def _parse_option(raw: object, where: str) -> QuestionOption:
    if not isinstance(raw, Mapping):
        msg = f"{where}: expected an object"
        raise BatchValidationError(msg)
    label = _require_text(raw.get("label"), f"{where}.label")
    if label == OTHER:
        msg = f"{where}.label: '{OTHER}' is reserved"
        raise BatchValidationError(msg)
    description = _require_text(raw.get("description", ""), f"{where}.description", allow_empty=True)
    return QuestionOption(label=label, description=description)


def _parse_question(raw: object, where: str, header_max_length: int) -> Question:
    if not isinstance(raw, Mapping):
        msg = f"{where}: expected an object"
        raise BatchValidationError(msg)

    prompt = _require_text(raw.get("question"), f"{where}.question")
    header = _require_text(raw.get("header"), f"{where}.header")
    if len(header) > header_max_length:
        msg = f"{where}.header: at most {header_max_length} characters, got {len(header)}"
        raise BatchValidationError(msg)

    raw_options = raw.get("options")
    if not isinstance(raw_options, Sequence) or isinstance(raw_options, str):
        msg = f"{where}.options: expected a list"
        raise BatchValidationError(msg)
    if not MIN_OPTIONS <= len(raw_options) <= MAX_OPTIONS:
        msg = f"{where}.options: expected {MIN_OPTIONS}-{MAX_OPTIONS} options, got {len(raw_options)}"
        raise BatchValidationError(msg)
    options = tuple(_parse_option(opt, f"{where}.options[{i}]") for i, opt in enumerate(raw_options))

    labels = [opt.label for opt in options]
    if len(set(labels)) != len(labels):
        msg = f"{where}.options: labels must be unique"
        raise BatchValidationError(msg)

    multi_select = raw.get("multiSelect", False)
    if not isinstance(multi_select, bool):
        msg = f"{where}.multiSelect: expected a boolean"
        raise BatchValidationError(msg)

    return Question(prompt=prompt, header=header, options=options, multi_select=multi_select)


def parse_question_batch(
    raw: object,
    header_max_length: int = DEFAULT_HEADER_MAX_LENGTH,
) -> QuestionBatch:
    """Validate raw tool input and build a QuestionBatch.

    Args:
        raw: List of question objects with ``question``, ``header``,
            ``options`` and ``multiSelect`` keys.
        header_max_length: Upper bound on header length.

    Raises:
        BatchValidationError: Naming the first offending field.
    """
    if not isinstance(raw, Sequence) or isinstance(raw, str):
        msg = "questions: expected a list"
        raise BatchValidationError(msg)
    if not MIN_QUESTIONS <= len(raw) <= MAX_QUESTIONS:
        msg = f"questions: expected {MIN_QUESTIONS}-{MAX_QUESTIONS} questions, got {len(raw)}"
        raise BatchValidationError(msg)

    questions = tuple(_parse_question(q, f"questions[{i}]", header_max_length) for i, q in enumerate(raw))

    seen: set[str] = set()
    for q in questions:
        if q.header in seen:
            msg = f"questions: duplicate header '{q.header}'"
            raise BatchValidationError(msg)
        seen.add(q.header)

    return QuestionBatch(questions=questions)
