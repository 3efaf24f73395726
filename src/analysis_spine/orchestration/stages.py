"""Stage table and saga result types.

The analysis saga runs five stages in a fixed order, each owning a
disjoint slice of the 0-100 progress scale. A saga ends in ``COMPLETE``
or in the absorbing ``FAILED`` state, with the failing stage recorded.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from analysis_spine.core.errors import (
    AnalysisSpineError,
    ConnectionValidationError,
    DataValidationError,
    RunError,
    StandardizationError,
)
from analysis_spine.core.models import AnalysisRun, Version
from analysis_spine.execution.events import StageRange


class Stage(str, Enum):
    """Stages of the analysis saga, in execution order."""

    CONNECTING = "connecting"
    READING_SCHEMA = "reading_schema"
    VALIDATING_DATA = "validating_data"
    RUNNING_PIPELINE = "running_pipeline"
    EVALUATING = "evaluating"

    @property
    def range(self) -> StageRange:
        return STAGE_RANGES[self]

    @property
    def error_cls(self) -> type[AnalysisSpineError]:
        """Error kind used to wrap unexpected exceptions raised inside this stage."""
        return STAGE_ERRORS[self]

    @property
    def label(self) -> str:
        return STAGE_LABELS[self]


STAGE_ORDER: tuple[Stage, ...] = tuple(Stage)

STAGE_RANGES: dict[Stage, StageRange] = {
    Stage.CONNECTING: StageRange(0, 10),
    Stage.READING_SCHEMA: StageRange(10, 30),
    Stage.VALIDATING_DATA: StageRange(30, 40),
    Stage.RUNNING_PIPELINE: StageRange(40, 80),
    Stage.EVALUATING: StageRange(80, 100),
}

STAGE_ERRORS: dict[Stage, type[AnalysisSpineError]] = {
    Stage.CONNECTING: ConnectionValidationError,
    Stage.READING_SCHEMA: DataValidationError,
    Stage.VALIDATING_DATA: DataValidationError,
    Stage.RUNNING_PIPELINE: RunError,
    Stage.EVALUATING: StandardizationError,
}

STAGE_LABELS: dict[Stage, str] = {
    Stage.CONNECTING: "Connecting to Supabase",
    Stage.READING_SCHEMA: "Reading Schema",
    Stage.VALIDATING_DATA: "Validating Data",
    Stage.RUNNING_PIPELINE: "Running analysis pipeline",
    Stage.EVALUATING: "Evaluating & Generating Report",
}


class SagaState(str, Enum):
    """Saga state machine: IDLE, one state per stage, then COMPLETE or FAILED."""

    IDLE = "idle"
    CONNECTING = "connecting"
    READING_SCHEMA = "reading_schema"
    VALIDATING_DATA = "validating_data"
    RUNNING_PIPELINE = "running_pipeline"
    EVALUATING = "evaluating"
    COMPLETE = "complete"
    FAILED = "failed"

    @classmethod
    def for_stage(cls, stage: Stage) -> SagaState:
        return cls(stage.value)

    @property
    def is_terminal(self) -> bool:
        return self in (SagaState.COMPLETE, SagaState.FAILED)


# Mutation progress slices
SUBMITTING = StageRange(0, 30)
STANDARDIZING = StageRange(30, 70)
CACHING = StageRange(70, 90)
RECONCILING = StageRange(90, 100)


@dataclass
class StageFailure:
    """The terminal ``Failed(stage, error)`` record."""

    stage: Stage
    error: AnalysisSpineError

    @property
    def message(self) -> str:
        return self.error.display_message()

    def to_dict(self) -> dict[str, Any]:
        return {"stage": self.stage.value, **self.error.to_dict()}


@dataclass
class SagaOutcome:
    """Result of one analysis saga."""

    saga_id: str
    state: SagaState
    progress: float
    started_at: datetime
    completed_at: datetime | None = None
    completed_stages: list[Stage] = field(default_factory=list)
    run: AnalysisRun | None = None
    versions: list[Version] = field(default_factory=list)
    failure: StageFailure | None = None
    raw_result: dict[str, Any] | None = None
    versions_stale: bool = False

    @property
    def succeeded(self) -> bool:
        return self.state is SagaState.COMPLETE

    @property
    def duration_seconds(self) -> float | None:
        if self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for logging/display."""
        return {
            "saga_id": self.saga_id,
            "state": self.state.value,
            "progress": self.progress,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "completed_stages": [stage.value for stage in self.completed_stages],
            "run_id": self.run.run_id if self.run else None,
            "versions": [version.display for version in self.versions],
            "failure": self.failure.to_dict() if self.failure else None,
            "versions_stale": self.versions_stale,
        }


__all__ = [
    "Stage",
    "STAGE_ORDER",
    "STAGE_RANGES",
    "STAGE_ERRORS",
    "SagaState",
    "StageFailure",
    "SagaOutcome",
    "SUBMITTING",
    "STANDARDIZING",
    "CACHING",
    "RECONCILING",
]
