"""Core primitives: data model, errors, logging and settings."""

from analysis_spine.core.errors import (
    AnalysisSpineError,
    ChangesetRejected,
    ConfigError,
    ConnectionValidationError,
    DataValidationError,
    ErrorCategory,
    ErrorContext,
    ErrorKind,
    MutationIgnored,
    OperationCancelled,
    RunError,
    SagaInProgressError,
    SelectionBlockedError,
    StandardizationError,
    UnresolvedSelectorError,
    VersionLookupError,
    VersionNotFoundError,
)
from analysis_spine.core.models import (
    Analysis,
    AnalysisRun,
    Credentials,
    DataValidationReport,
    JobResult,
    JobStatus,
    MutationResponse,
    Segment,
    ValueQuestion,
    Version,
)

__all__ = [
    "Analysis",
    "AnalysisRun",
    "AnalysisSpineError",
    "ChangesetRejected",
    "ConfigError",
    "ConnectionValidationError",
    "Credentials",
    "DataValidationError",
    "DataValidationReport",
    "ErrorCategory",
    "ErrorContext",
    "ErrorKind",
    "JobResult",
    "JobStatus",
    "MutationIgnored",
    "MutationResponse",
    "OperationCancelled",
    "RunError",
    "SagaInProgressError",
    "Segment",
    "SelectionBlockedError",
    "StandardizationError",
    "UnresolvedSelectorError",
    "ValueQuestion",
    "Version",
    "VersionLookupError",
    "VersionNotFoundError",
]
