"""Saga sequencing, mutation flow and session wiring."""

from analysis_spine.orchestration.mutations import MutationOutcome, MutationRunner, MutationState
from analysis_spine.orchestration.sequencer import StageSequencer
from analysis_spine.orchestration.session import AnalysisSession
from analysis_spine.orchestration.stages import (
    STAGE_ORDER,
    STAGE_RANGES,
    SagaOutcome,
    SagaState,
    Stage,
    StageFailure,
)

__all__ = [
    "STAGE_ORDER",
    "STAGE_RANGES",
    "AnalysisSession",
    "MutationOutcome",
    "MutationRunner",
    "MutationState",
    "SagaOutcome",
    "SagaState",
    "Stage",
    "StageFailure",
    "StageSequencer",
]
