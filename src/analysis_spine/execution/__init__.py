"""Execution primitives: polling, progress events, retries and deadlines."""

from analysis_spine.execution.events import (
    JobTick,
    ProgressChannel,
    ProgressEvent,
    ProgressProjector,
    StageRange,
)
from analysis_spine.execution.poller import JobPoller
from analysis_spine.execution.retry import (
    CancellationToken,
    ConstantBackoff,
    RetryOutcome,
    RetryStrategy,
    retry_until,
)
from analysis_spine.execution.timeout import TimeoutExpired, with_deadline_async

__all__ = [
    "CancellationToken",
    "ConstantBackoff",
    "JobPoller",
    "JobTick",
    "ProgressChannel",
    "ProgressEvent",
    "ProgressProjector",
    "RetryOutcome",
    "RetryStrategy",
    "StageRange",
    "TimeoutExpired",
    "retry_until",
    "with_deadline_async",
]
