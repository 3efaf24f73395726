"""
Structured error types for analysis-spine.

Every failure the orchestration core can produce is one of a small number
of typed errors. Each carries the metadata the caller needs to render it
without guessing: which kind of failure it is, whether a retry makes
sense, stage-specific guidance for the user, and the structured context
(stage, job, trace, run, HTTP status) in which it happened.

Manifesto:
    - **Disjoint kinds:** A saga fails with exactly one ErrorKind
    - **Stage-specific guidance:** Each kind knows what to tell the user
    - **Rich Context:** Errors carry metadata for logging
    - **Error Chaining:** Preserve the transport exception as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                     AnalysisSpineError                           │
        │        (kind, category, retryable, guidance, context, cause)    │
        ├─────────────────────────────────────────────────────────────────┤
        │  Saga-terminal kinds                                             │
        │  ConnectionValidationError   DataValidationError                 │
        │  RunError                    StandardizationError                │
        │  MutationIgnored  (not a failure, "please clarify")              │
        │                                                                  │
        │  Local refusals            Versions             Flow control     │
        │  ChangesetRejected         VersionLookupError   SagaInProgress   │
        │  UnresolvedSelectorError   VersionNotFound      SelectionBlocked │
        │                                                 OperationCancel. │
        │  ConfigError                                                     │
        └─────────────────────────────────────────────────────────────────┘

Examples:
    >>> error = DataValidationError("Too few rows", semantic=True, note="Too few rows")
    >>> error.kind
    <ErrorKind.DATA_VALIDATION: 'DATA_VALIDATION'>
    >>> error.with_context(stage="validating-data", trace_id="t-1")
    DataValidationError('Too few rows', kind=DATA_VALIDATION)

Guardrails:
    ❌ DON'T: Raise bare Exception from a stage
    ✅ DO: Raise the error kind that belongs to the stage

    ❌ DON'T: Swallow the httpx exception
    ✅ DO: Pass it as cause= for error chaining

Tags:
    error-handling, exception-hierarchy, error-context, analysis-spine
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """The five saga-terminal error kinds plus the local/auxiliary ones."""

    CONNECTION = "CONNECTION"
    DATA_VALIDATION = "DATA_VALIDATION"
    RUN = "RUN"
    STANDARDIZATION = "STANDARDIZATION"
    MUTATION_IGNORED = "MUTATION_IGNORED"

    CHANGESET = "CHANGESET"
    VERSION = "VERSION"
    CONCURRENCY = "CONCURRENCY"
    CONFIG = "CONFIG"
    CANCELLED = "CANCELLED"
    INTERNAL = "INTERNAL"


class ErrorCategory(str, Enum):
    """Coarse categories for routing log output and retry heuristics."""

    NETWORK = "NETWORK"           # Transport failure, non-2xx
    SOURCE = "SOURCE"             # Remote service rejected or misbehaved
    VALIDATION = "VALIDATION"     # Input or data verdicts
    PIPELINE = "PIPELINE"         # Remote job failures
    ORCHESTRATION = "ORCHESTRATION"  # Local flow control
    CONFIG = "CONFIG"
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """
    Structured metadata context for errors.

    Attributes:
        stage: Saga stage that produced the error (e.g. ``"evaluating"``)
        saga_id: Identifier of the saga or mutation flow
        job_id: Remote job identifier
        trace_id: Trace identifier issued by the data validator
        run_id: Run identifier (``r_<N>``)
        task_id: Task identifier
        url: URL that was being accessed
        http_status: HTTP status code if applicable
        metadata: Additional key-value pairs
    """

    stage: str | None = None
    saga_id: str | None = None
    job_id: str | None = None
    trace_id: str | None = None
    run_id: str | None = None
    task_id: str | None = None

    url: str | None = None
    http_status: int | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["stage", "saga_id", "job_id", "trace_id", "run_id",
                    "task_id", "url", "http_status"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class AnalysisSpineError(Exception):
    """
    Base exception for all analysis-spine errors.

    Subclasses set ``default_kind``, ``default_category``,
    ``default_retryable`` and ``guidance``. ``guidance`` is the
    user-facing hint rendered next to the failed stage.
    """

    default_kind: ErrorKind = ErrorKind.INTERNAL
    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False
    guidance: str = "Something went wrong. Please try again."

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.kind = self.default_kind
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> AnalysisSpineError:
        """
        Add context to this error (fluent API).

        Usage:
            raise RunError("Job failed").with_context(job_id="j-1", stage="sampling-data")
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def display_message(self) -> str:
        """Text shown to the user: the server-supplied message, or the guidance."""
        return self.message or self.guidance

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "kind": self.kind.value,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
            "guidance": self.guidance,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, kind={self.kind.value})"


# =============================================================================
# SAGA-TERMINAL ERRORS
# =============================================================================


class ConnectionValidationError(AnalysisSpineError):
    """Credentials are malformed or were rejected upstream."""

    default_kind = ErrorKind.CONNECTION
    default_category = ErrorCategory.SOURCE
    guidance = "Please check your Project ID or Access Token."


class DataValidationError(AnalysisSpineError):
    """
    Data validation failed.

    Either the validator could not be reached (``semantic=False``) or it
    returned an ``"unusable"`` verdict (``semantic=True``). Both halt the
    saga at the same point; the semantic case keeps the server ``note``
    so it can be displayed verbatim.
    """

    default_kind = ErrorKind.DATA_VALIDATION
    default_category = ErrorCategory.VALIDATION
    guidance = "Your data could not be validated. Review the note and adjust the source."

    def __init__(
        self,
        message: str,
        *,
        semantic: bool = False,
        note: str | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.semantic = semantic
        self.note = note

    def display_message(self) -> str:
        return self.note or super().display_message()

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["semantic"] = self.semantic
        if self.note:
            result["note"] = self.note
        return result


class RunError(AnalysisSpineError):
    """The pipeline failed to start, or its job ended failed/error/timeout."""

    default_kind = ErrorKind.RUN
    default_category = ErrorCategory.PIPELINE
    guidance = "The analysis pipeline did not finish. Please run the analysis again."

    def __init__(self, message: str, *, job_status: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.job_status = job_status

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.job_status:
            result["job_status"] = self.job_status
        return result


class StandardizationError(AnalysisSpineError):
    """The standardize call failed, timed out, or returned non-JSON."""

    default_kind = ErrorKind.STANDARDIZATION
    default_category = ErrorCategory.SOURCE
    guidance = "The result could not be prepared for display. Please try again later."


class MutationIgnored(AnalysisSpineError):
    """The mutation service declined to interpret the instruction."""

    default_kind = ErrorKind.MUTATION_IGNORED
    default_category = ErrorCategory.SOURCE
    guidance = "We couldn't map that instruction to a change. Please clarify what you want to edit."


# =============================================================================
# LOCAL REFUSALS
# =============================================================================


class ChangesetRejected(AnalysisSpineError):
    """A changeset was refused locally; no network call was made."""

    default_kind = ErrorKind.CHANGESET
    default_category = ErrorCategory.VALIDATION
    guidance = "This change can't be submitted as selected."

    def __init__(self, message: str, *, reason: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.reason = reason

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.reason:
            result["reason"] = self.reason
        return result


class UnresolvedSelectorError(ChangesetRejected):
    """A selector still holds a placeholder or missing identifier."""

    def __init__(self, selector: str, missing: str):
        self.selector = selector
        self.missing = missing
        super().__init__(
            f"Selector {selector!r} has unresolved identifier: {missing}",
            reason="unresolved_placeholder",
        )


# =============================================================================
# VERSIONS
# =============================================================================


class VersionLookupError(AnalysisSpineError):
    """Listing or loading versions failed."""

    default_kind = ErrorKind.VERSION
    default_category = ErrorCategory.NETWORK
    default_retryable = True
    guidance = "Versions could not be loaded right now."


class VersionNotFoundError(AnalysisSpineError):
    """A version label is not in the known version map."""

    default_kind = ErrorKind.VERSION
    default_category = ErrorCategory.VALIDATION

    def __init__(self, display: str):
        self.display = display
        super().__init__(f"Unknown version: {display}")


# =============================================================================
# FLOW CONTROL
# =============================================================================


class SagaInProgressError(AnalysisSpineError):
    """Another saga or mutation is already running."""

    default_kind = ErrorKind.CONCURRENCY
    default_category = ErrorCategory.ORCHESTRATION
    guidance = "Please wait for the current operation to finish."

    def __init__(self, active: str, requested: str):
        self.active = active
        self.requested = requested
        super().__init__(f"Cannot start {requested!r} while {active!r} is running")


class SelectionBlockedError(SagaInProgressError):
    """Version selection attempted while a saga or mutation is running."""


class OperationCancelled(AnalysisSpineError):
    """A cancellable wait was cancelled by its owner."""

    default_kind = ErrorKind.CANCELLED
    default_category = ErrorCategory.ORCHESTRATION


class ConfigError(AnalysisSpineError):
    """Configuration error. Never retryable."""

    default_kind = ErrorKind.CONFIG
    default_category = ErrorCategory.CONFIG


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def describe(error: Exception) -> dict[str, Any]:
    """Structured payload for logging any exception."""
    if isinstance(error, AnalysisSpineError):
        return error.to_dict()
    return {
        "error_type": type(error).__name__,
        "kind": ErrorKind.INTERNAL.value,
        "message": str(error),
    }


__all__ = [
    "ErrorKind",
    "ErrorCategory",
    "ErrorContext",
    "AnalysisSpineError",
    "ConnectionValidationError",
    "DataValidationError",
    "RunError",
    "StandardizationError",
    "MutationIgnored",
    "ChangesetRejected",
    "UnresolvedSelectorError",
    "VersionLookupError",
    "VersionNotFoundError",
    "SagaInProgressError",
    "SelectionBlockedError",
    "OperationCancelled",
    "ConfigError",
    "describe",
]
