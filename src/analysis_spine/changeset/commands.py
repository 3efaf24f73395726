"""User commands and their mutation classification.

``CommandKind`` is the closed set of commands the command palette can
select. Each kind knows its wire ``intent``/``target`` and whether the
resulting version only exists after the standardize stage re-runs.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class CommandKind(str, Enum):
    CORRECT_SEGMENT = "correct segment"
    ADD_SEGMENT = "add segment"
    MERGE_SEGMENTS = "merge segments"
    REMOVE_SEGMENTS = "delete segments"
    RENAME_SEGMENT = "change segment"
    EDIT_D1 = "edit d1"
    EDIT_D2 = "edit d2"
    EDIT_D3 = "edit d3"
    EDIT_D4 = "edit d4"
    ADD_QUESTION = "add question"
    REMOVE_QUESTIONS = "delete question"
    EDIT_QUESTION = "edit question"

    @property
    def intent(self) -> str:
        return _INTENTS[self]

    @property
    def target(self) -> str:
        if self in _QUESTION_KINDS:
            return "valueQuestion"
        if self in _DIMENSION_KINDS:
            return "analysis"
        return "segment"

    @property
    def dimension(self) -> str | None:
        return _DIMENSION_KINDS.get(self)

    @property
    def requires_standardize(self) -> bool:
        """Removal and rename are reflected immediately; everything else is restandardized."""
        return self not in (
            CommandKind.REMOVE_SEGMENTS,
            CommandKind.REMOVE_QUESTIONS,
            CommandKind.RENAME_SEGMENT,
        )


_INTENTS = {
    CommandKind.CORRECT_SEGMENT: "correct",
    CommandKind.ADD_SEGMENT: "add",
    CommandKind.MERGE_SEGMENTS: "merge",
    CommandKind.REMOVE_SEGMENTS: "remove",
    CommandKind.RENAME_SEGMENT: "rename",
    CommandKind.EDIT_D1: "edit",
    CommandKind.EDIT_D2: "edit",
    CommandKind.EDIT_D3: "edit",
    CommandKind.EDIT_D4: "edit",
    CommandKind.ADD_QUESTION: "add",
    CommandKind.REMOVE_QUESTIONS: "remove",
    CommandKind.EDIT_QUESTION: "edit",
}

_DIMENSION_KINDS = {
    CommandKind.EDIT_D1: "D1",
    CommandKind.EDIT_D2: "D2",
    CommandKind.EDIT_D3: "D3",
    CommandKind.EDIT_D4: "D4",
}

_QUESTION_KINDS = frozenset(
    {CommandKind.ADD_QUESTION, CommandKind.REMOVE_QUESTIONS, CommandKind.EDIT_QUESTION}
)


@dataclass(frozen=True)
class Command:
    """A selected command plus its bound parameters.

    Attributes:
        kind: Which command was selected
        segment_ids: Selected segments (one for single-target commands)
        question_ids: Selected questions within ``segment_ids[0]``
        prompt: Free text the user typed alongside the command
        new_name: Target name for a rename
    """

    kind: CommandKind
    segment_ids: tuple[str, ...] = ()
    question_ids: tuple[str, ...] = ()
    prompt: str = ""
    new_name: str | None = None

    @property
    def segment_id(self) -> str | None:
        return self.segment_ids[0] if self.segment_ids else None

    @property
    def question_id(self) -> str | None:
        return self.question_ids[0] if self.question_ids else None

    def feedback_text(self) -> str:
        """Human-readable instruction sent alongside the changeset."""
        parts = [self.kind.value]
        if self.new_name:
            parts.append(f"to {self.new_name!r}")
        if self.prompt.strip():
            parts.append(self.prompt.strip())
        return ": ".join([parts[0], " ".join(parts[1:])]) if len(parts) > 1 else parts[0]


__all__ = ["CommandKind", "Command"]
