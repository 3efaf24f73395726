"""Typed selector addresses for changeset entries.

A selector addresses the part of a run an entry mutates. On the wire it
is a path-like string::

    segments
    segments[segmentId=S1]
    segments[segmentId=S1].analysis.D2
    segments[segmentId=S1].valueQuestions
    segments[segmentId=S1].valueQuestions[id=Q7]

In code it is one of three frozen dataclasses, and the string is only
produced by ``to_wire()`` at submission. Serialising a selector whose
identifier is missing, blank, or the ``xxx`` placeholder raises
``UnresolvedSelectorError``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import ClassVar, Union

from analysis_spine.core.errors import UnresolvedSelectorError
from analysis_spine.core.models import DIMENSIONS

PLACEHOLDER = "xxx"

_SELECTOR_RE = re.compile(
    r"^segments"
    r"(?:\[segmentId=(?P<segment>[^\]]*)\]"
    r"(?:\.analysis\.(?P<dimension>D[1-4])"
    r"|\.valueQuestions(?:\[id=(?P<question>[^\]]*)\])?(?P<questions>)"
    r")?)?$"
)


def _resolved(value: str | None, *, field: str, template: str) -> str:
    if value is None or not str(value).strip() or str(value) == PLACEHOLDER:
        raise UnresolvedSelectorError(template, missing=field)
    return str(value)


@dataclass(frozen=True)
class SegmentRef:
    """A segment, or the segment collection when ``segment_id`` is None."""

    kind: ClassVar[str] = "segment"

    segment_id: str | None = None

    @property
    def is_collection(self) -> bool:
        return self.segment_id is None

    def to_wire(self) -> str:
        if self.is_collection:
            return "segments"
        segment_id = _resolved(
            self.segment_id, field="segmentId", template=f"segments[segmentId={self.segment_id}]"
        )
        return f"segments[segmentId={segment_id}]"


@dataclass(frozen=True)
class AnalysisDimensionRef:
    """One analysis dimension (D1..D4) of a segment."""

    kind: ClassVar[str] = "analysis"

    segment_id: str | None
    dimension: str

    def __post_init__(self) -> None:
        dimension = self.dimension.upper()
        if dimension not in DIMENSIONS:
            raise ValueError(f"Unknown analysis dimension: {self.dimension}")
        object.__setattr__(self, "dimension", dimension)

    def to_wire(self) -> str:
        template = f"segments[segmentId={self.segment_id}].analysis.{self.dimension}"
        segment_id = _resolved(self.segment_id, field="segmentId", template=template)
        return f"segments[segmentId={segment_id}].analysis.{self.dimension}"


@dataclass(frozen=True)
class QuestionRef:
    """A value question, or a segment's question collection when ``question_id`` is None."""

    kind: ClassVar[str] = "valueQuestion"

    segment_id: str | None
    question_id: str | None = None

    @property
    def is_collection(self) -> bool:
        return self.question_id is None

    def to_wire(self) -> str:
        template = f"segments[segmentId={self.segment_id}].valueQuestions"
        if not self.is_collection:
            template += f"[id={self.question_id}]"
        segment_id = _resolved(self.segment_id, field="segmentId", template=template)
        base = f"segments[segmentId={segment_id}].valueQuestions"
        if self.is_collection:
            return base
        question_id = _resolved(self.question_id, field="id", template=template)
        return f"{base}[id={question_id}]"


Selector = Union[SegmentRef, AnalysisDimensionRef, QuestionRef]


def parse_selector(wire: str) -> Selector:
    """Parse a wire selector back into its typed form (placeholders included)."""
    match = _SELECTOR_RE.match(wire.strip())
    if match is None:
        raise ValueError(f"Unrecognised selector: {wire!r}")

    segment_id = match.group("segment")
    if segment_id is None:
        return SegmentRef()
    if match.group("dimension"):
        return AnalysisDimensionRef(segment_id=segment_id, dimension=match.group("dimension"))
    if match.group("questions") is not None:
        return QuestionRef(segment_id=segment_id, question_id=match.group("question"))
    return SegmentRef(segment_id=segment_id)


__all__ = [
    "PLACEHOLDER",
    "SegmentRef",
    "AnalysisDimensionRef",
    "QuestionRef",
    "Selector",
    "parse_selector",
]
