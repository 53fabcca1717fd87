"""Step-by-step answer collection for one question batch.

Presentation surfaces drive an ``AnswerStateMachine`` from user input: pick
options, toggle the free-text "Other" choice, move between steps, then submit
or cancel. Only the final aggregated answer set leaves the machine; it is
handed to ``on_submit`` (usually ``QuestionCoordinator.answer``).

Invalid moves (advancing with nothing selected, submitting before the last
step, anything after submit/cancel) are refused: the method returns ``False``
or ``None`` and the state is unchanged.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum

from parley.data.schemas import ANSWER_DELIMITER, OTHER, AnswerSet, Question, QuestionBatch

logger = logging.getLogger(__name__)

SubmitFn = Callable[[str, AnswerSet], object]
CancelFn = Callable[[str], object]


class WizardStatus(StrEnum):
    """Lifecycle of a wizard."""

    ACTIVE = "active"
    SUBMITTED = "submitted"
    CANCELLED = "cancelled"


@dataclass
class StepState:
    """Selections and free text for one question."""

    selected: list[str] = field(default_factory=list)  # labels in selection order, may hold OTHER
    other_text: str = ""

    def values(self) -> list[str]:
        """Answer strings for this step: regular labels first, then trimmed free text."""
        values = [label for label in self.selected if label != OTHER]
        if OTHER in self.selected:
            values.append(self.other_text.strip())
        return [v for v in values if v]


class AnswerStateMachine:
    """Drives the multi-step question wizard for one request."""

    def __init__(
        self,
        request_id: str,
        batch: QuestionBatch,
        on_submit: SubmitFn | None = None,
        on_cancel: CancelFn | None = None,
    ) -> None:
        if len(batch) == 0:
            msg = "A wizard needs at least one question"
            raise ValueError(msg)
        self.request_id = request_id
        self.batch = batch
        self._on_submit = on_submit
        self._on_cancel = on_cancel
        self._steps: dict[int, StepState] = {}
        self._index = 0
        self.status = WizardStatus.ACTIVE

    # ---- read-only view ----

    @property
    def index(self) -> int:
        return self._index

    @property
    def total_steps(self) -> int:
        return len(self.batch)

    @property
    def question(self) -> Question:
        return self.batch.questions[self._index]

    @property
    def is_first_step(self) -> bool:
        return self._index == 0

    @property
    def is_last_step(self) -> bool:
        return self._index == len(self.batch) - 1

    @property
    def active(self) -> bool:
        return self.status == WizardStatus.ACTIVE

    def step(self, index: int | None = None) -> StepState:
        """State of step ``index`` (default: current). Unvisited steps read as empty."""
        i = self._index if index is None else index
        return self._steps.get(i, StepState())

    def _current(self) -> StepState:
        return self._steps.setdefault(self._index, StepState())

    def is_selected(self, label: str) -> bool:
        return label in self.step().selected

    # ---- transitions ----

    def select_option(self, label: str) -> bool:
        """Select (single-select) or toggle (multi-select) a predefined option."""
        if not self.active or label not in self.question.option_labels():
            return False
        state = self._current()
        if not self.question.multi_select:
            state.selected = [label]
            state.other_text = ""
        elif label in state.selected:
            state.selected.remove(label)
        else:
            state.selected = [s for s in state.selected if s != OTHER]
            state.selected.append(label)
        return True

    def select_other(self) -> bool:
        """Choose "Other" (single-select) or toggle it (multi-select)."""
        if not self.active:
            return False
        state = self._current()
        if not self.question.multi_select:
            state.selected = [OTHER]
        elif OTHER in state.selected:
            state.selected.remove(OTHER)
        else:
            state.selected.append(OTHER)
        return True

    def set_other_text(self, value: str) -> bool:
        if not self.active:
            return False
        self._current().other_text = value
        return True

    def can_advance(self) -> bool:
        """True when the current step has a selection and any "Other" text is non-blank."""
        state = self.step()
        if not state.selected:
            return False
        return not (OTHER in state.selected and not state.other_text.strip())

    def next(self) -> bool:
        if not self.active or self.is_last_step or not self.can_advance():
            return False
        self._index += 1
        return True

    def back(self) -> bool:
        if not self.active or self.is_first_step:
            return False
        self._index -= 1
        return True

    def answers(self) -> AnswerSet:
        """Aggregate every step into ``header -> joined value``."""
        return {
            q.header: ANSWER_DELIMITER.join(self.step(i).values()) for i, q in enumerate(self.batch.questions)
        }

    def submit(self) -> AnswerSet | None:
        """Finish on the last step and forward the answer set to ``on_submit``."""
        if not self.active or not self.is_last_step or not self.can_advance():
            return None
        answers = self.answers()
        self.status = WizardStatus.SUBMITTED
        self._steps.clear()
        logger.debug("Wizard %s submitted %d answer(s)", self.request_id, len(answers))
        if self._on_submit is not None:
            self._on_submit(self.request_id, answers)
        return answers

    def cancel(self) -> bool:
        """Abandon the wizard from any step and forward to ``on_cancel``."""
        if not self.active:
            return False
        self.status = WizardStatus.CANCELLED
        self._steps.clear()
        if self._on_cancel is not None:
            self._on_cancel(self.request_id)
        return True
