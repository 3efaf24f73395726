"""
Changeset Builder - turn a selected command into wire-level mutation entries.

Manifesto:
    The mutation service accepts a list of small, scoped instructions.
    Everything that can be decided locally is decided here, before any
    request is made: identifiers are checked against the cached run,
    batch selections are expanded one entry per item, and commands that
    would leave the run empty are refused. A ``ChangesetRejected`` from
    this module always means zero network calls.

Architecture:
    ::

        Command(kind, segment_ids, question_ids, prompt, new_name)
              │
              ▼
        ChangesetBuilder.build(command, run)
              │  validate ids against run
              │  expand batch kinds
              ▼
        [ChangesetEntry(intent, target, selector, prompt, policy)]
              │
              ▼  ensure_submittable() / to_wire()
        {"intent", "target", "selector": "segments[segmentId=..]...", ...}

Tags:
    changeset, mutation, selector, batch, analysis-spine
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from analysis_spine.changeset.commands import Command, CommandKind
from analysis_spine.changeset.selectors import (
    AnalysisDimensionRef,
    QuestionRef,
    SegmentRef,
    Selector,
)
from analysis_spine.core.errors import ChangesetRejected
from analysis_spine.core.logging import get_logger
from analysis_spine.core.models import AnalysisRun, Segment

logger = get_logger(__name__)


@dataclass(frozen=True)
class MutationPolicy:
    """Scope policy attached to every entry."""

    propagation: str = "standard"
    strict_scope: bool = True
    downgrade_shapes: bool = True

    def to_wire(self) -> dict[str, Any]:
        return {
            "propagation": self.propagation,
            "strict_scope": self.strict_scope,
            "downgrade_shapes": self.downgrade_shapes,
        }


STANDARD_POLICY = MutationPolicy()


@dataclass(frozen=True)
class ChangesetEntry:
    """One mutation instruction. The selector is serialised only by ``to_wire``."""

    intent: str
    target: str
    selector: Selector
    prompt: str = ""
    policy: MutationPolicy = field(default=STANDARD_POLICY)

    def to_wire(self) -> dict[str, Any]:
        return {
            "intent": self.intent,
            "target": self.target,
            "selector": self.selector.to_wire(),
            "prompt": self.prompt,
            "policy": self.policy.to_wire(),
        }


def ensure_submittable(entries: Sequence[ChangesetEntry]) -> list[dict[str, Any]]:
    """Serialise every entry, refusing the whole batch on the first unresolved selector."""
    if not entries:
        raise ChangesetRejected("Nothing to submit", reason="empty_changeset")
    return [entry.to_wire() for entry in entries]


def _distinct(values: Iterable[str]) -> list[str]:
    seen: list[str] = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen


class ChangesetBuilder:
    """Build changeset entries for a command against the current run."""

    def __init__(self, policy: MutationPolicy = STANDARD_POLICY):
        self.policy = policy

    def build(self, command: Command, run: AnalysisRun) -> list[ChangesetEntry]:
        kind = command.kind
        if kind is CommandKind.ADD_SEGMENT:
            entries = [self._entry(kind, SegmentRef(), command.prompt)]
        elif kind is CommandKind.MERGE_SEGMENTS:
            entries = [self._merge(command, run)]
        elif kind is CommandKind.REMOVE_SEGMENTS:
            entries = self._remove_segments(command, run)
        elif kind is CommandKind.REMOVE_QUESTIONS:
            entries = self._remove_questions(command, run)
        elif kind is CommandKind.RENAME_SEGMENT:
            entries = [self._rename(command, run)]
        elif kind is CommandKind.ADD_QUESTION:
            segment = self._segment(command.segment_id, run)
            entries = [self._entry(kind, QuestionRef(segment.segment_id), command.prompt)]
        elif kind is CommandKind.EDIT_QUESTION:
            segment = self._segment(command.segment_id, run)
            question_id = self._question(segment, command.question_id)
            entries = [
                self._entry(kind, QuestionRef(segment.segment_id, question_id), command.prompt)
            ]
        elif kind.dimension is not None:
            segment = self._segment(command.segment_id, run)
            selector = AnalysisDimensionRef(segment.segment_id, kind.dimension)
            entries = [self._entry(kind, selector, command.prompt)]
        else:
            segment = self._segment(command.segment_id, run)
            entries = [self._entry(kind, SegmentRef(segment.segment_id), command.prompt)]

        # Serialise once so unresolved selectors surface before any request.
        ensure_submittable(entries)
        logger.debug("changeset_built", command=kind.value, entries=len(entries))
        return entries

    # ------------------------------------------------------------------
    # per-command builders
    # ------------------------------------------------------------------
    def _entry(self, kind: CommandKind, selector: Selector, prompt: str) -> ChangesetEntry:
        return ChangesetEntry(
            intent=kind.intent,
            target=kind.target,
            selector=selector,
            prompt=prompt,
            policy=self.policy,
        )

    def _merge(self, command: Command, run: AnalysisRun) -> ChangesetEntry:
        segment_ids = _distinct(command.segment_ids)
        segments = [self._segment(segment_id, run) for segment_id in segment_ids]
        if len(segments) < 2:
            raise ChangesetRejected(
                "Select at least two segments to merge", reason="merge_needs_two"
            )
        names = ", ".join(segment.name or segment.segment_id for segment in segments)
        prompt = f"Merge segments {names}"
        if command.prompt.strip():
            prompt = f"{prompt}: {command.prompt.strip()}"
        return self._entry(command.kind, SegmentRef(), prompt)

    def _remove_segments(self, command: Command, run: AnalysisRun) -> list[ChangesetEntry]:
        segment_ids = _distinct(command.segment_ids)
        if not segment_ids:
            raise ChangesetRejected("No segments selected", reason="empty_batch")
        for segment_id in segment_ids:
            self._segment(segment_id, run)
        if len(segment_ids) >= len(run.segments):
            raise ChangesetRejected(
                "At least one segment must remain", reason="min_remainder"
            )
        return [
            self._entry(command.kind, SegmentRef(segment_id), command.prompt)
            for segment_id in segment_ids
        ]

    def _remove_questions(self, command: Command, run: AnalysisRun) -> list[ChangesetEntry]:
        segment = self._segment(command.segment_id, run)
        question_ids = _distinct(command.question_ids)
        if not question_ids:
            raise ChangesetRejected("No questions selected", reason="empty_batch")
        for question_id in question_ids:
            self._question(segment, question_id)
        if len(question_ids) >= len(segment.value_questions):
            raise ChangesetRejected(
                f"At least one question must remain in {segment.name or segment.segment_id}",
                reason="min_remainder",
            )
        return [
            self._entry(command.kind, QuestionRef(segment.segment_id, question_id), command.prompt)
            for question_id in question_ids
        ]

    def _rename(self, command: Command, run: AnalysisRun) -> ChangesetEntry:
        segment = self._segment(command.segment_id, run)
        new_name = (command.new_name or "").strip()
        if not new_name:
            raise ChangesetRejected("A new segment name is required", reason="missing_name")
        prompt = f"Rename segment {segment.name!r} to {new_name!r}"
        return self._entry(command.kind, SegmentRef(segment.segment_id), prompt)

    # ------------------------------------------------------------------
    # lookups
    # ------------------------------------------------------------------
    @staticmethod
    def _segment(segment_id: str | None, run: AnalysisRun) -> Segment:
        if segment_id is None:
            raise ChangesetRejected("No segment selected", reason="missing_segment")
        segment = run.segment_by_id(segment_id)
        if segment is None:
            raise ChangesetRejected(
                f"Unknown segment: {segment_id}", reason="unknown_segment"
            ).with_context(run_id=run.run_id)
        return segment

    @staticmethod
    def _question(segment: Segment, question_id: str | None) -> str:
        if question_id is None:
            raise ChangesetRejected("No question selected", reason="missing_question")
        if segment.question(question_id) is None:
            raise ChangesetRejected(
                f"Unknown question {question_id} in segment {segment.segment_id}",
                reason="unknown_question",
            )
        return question_id


__all__ = [
    "MutationPolicy",
    "STANDARD_POLICY",
    "ChangesetEntry",
    "ChangesetBuilder",
    "ensure_submittable",
]
