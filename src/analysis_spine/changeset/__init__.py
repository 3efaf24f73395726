"""Changeset construction: commands, typed selectors and entry building."""

from analysis_spine.changeset.builder import (
    STANDARD_POLICY,
    ChangesetBuilder,
    ChangesetEntry,
    MutationPolicy,
    ensure_submittable,
)
from analysis_spine.changeset.commands import Command, CommandKind
from analysis_spine.changeset.selectors import (
    PLACEHOLDER,
    AnalysisDimensionRef,
    QuestionRef,
    SegmentRef,
    Selector,
    parse_selector,
)

__all__ = [
    "PLACEHOLDER",
    "STANDARD_POLICY",
    "AnalysisDimensionRef",
    "ChangesetBuilder",
    "ChangesetEntry",
    "Command",
    "CommandKind",
    "MutationPolicy",
    "QuestionRef",
    "SegmentRef",
    "Selector",
    "ensure_submittable",
    "parse_selector",
]
