"""Progress Events - typed channel between progress producers and the projector.

WHY
───
The job poller knows a job's *own* progress; the sequencer knows which
slice of the global 0-100 scale the polling stage owns; the caller only
wants one monotonically non-decreasing number. Producers publish
``JobTick`` values on a ``ProgressChannel`` without ever blocking, and a
single ``ProgressProjector`` turns them into ``ProgressEvent`` values for
listeners.

ARCHITECTURE
────────────
::

    JobPoller ──publish(JobTick)──▶ ProgressChannel ──▶ projector.consume(stage)
                                    (unbounded queue)          │
                                                               ▼
                                           ProgressEvent(stage, progress, ...)
                                                  └──▶ listeners

    StageRange(start, end).map(p) = start + p/100 * (end - start)
    published = max(previous, mapped)
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from analysis_spine.core.logging import get_logger

logger = get_logger(__name__)


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


@dataclass(frozen=True)
class StageRange:
    """Disjoint slice of the global progress scale owned by one stage."""

    start: float
    end: float

    def __post_init__(self) -> None:
        if not 0 <= self.start <= self.end <= 100:
            raise ValueError(f"Invalid stage range {self.start}..{self.end}")

    def map(self, progress: float) -> float:
        """Linearly remap a [0, 100] progress value into this range."""
        clamped = min(max(progress, 0.0), 100.0)
        return self.start + (clamped / 100.0) * (self.end - self.start)


@dataclass(frozen=True)
class JobTick:
    """One poll observation of a remote job."""

    job_id: str
    progress: float | None
    status: str | None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ProgressEvent:
    """Global progress as displayed to the user."""

    stage: str
    progress: float
    job_status: str | None = None
    message: str | None = None
    timestamp: datetime = field(default_factory=utcnow)


_CLOSED = object()


class ProgressChannel:
    """Unbounded async queue of ``JobTick`` values.

    ``publish`` never blocks the producer. Iterating the channel yields
    ticks until ``close`` is called and the queue has drained.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, tick: JobTick) -> None:
        if self._closed:
            return
        self._queue.put_nowait(tick)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_CLOSED)

    async def __aiter__(self) -> AsyncIterator[JobTick]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item


ProgressListener = Callable[[ProgressEvent], None]


class ProgressProjector:
    """Single owner of the global progress value.

    Every update goes through ``max(previous, value)`` so the published
    sequence is non-decreasing whatever the producers report. A listener
    that raises is logged and does not interrupt the flow.
    """

    def __init__(self, listeners: list[ProgressListener] | None = None) -> None:
        self._progress = 0.0
        self._listeners: list[ProgressListener] = list(listeners or [])
        self.history: list[ProgressEvent] = []

    @property
    def progress(self) -> float:
        return self._progress

    def subscribe(self, listener: ProgressListener) -> None:
        self._listeners.append(listener)

    def reset(self) -> None:
        self._progress = 0.0
        self.history.clear()

    def advance(
        self,
        stage: str,
        value: float,
        *,
        job_status: str | None = None,
        message: str | None = None,
    ) -> ProgressEvent:
        """Publish ``value`` (clamped to be non-decreasing) for ``stage``."""
        self._progress = max(self._progress, min(float(value), 100.0))
        event = ProgressEvent(
            stage=stage,
            progress=self._progress,
            job_status=job_status,
            message=message,
        )
        self.history.append(event)
        for listener in self._listeners:
            try:
                listener(event)
            except Exception as exc:  # noqa: BLE001 - listener faults stay local
                logger.warning("progress_listener_failed", stage=stage, error=str(exc))
        return event

    def project_tick(self, stage: str, stage_range: StageRange, tick: JobTick) -> ProgressEvent | None:
        if tick.progress is None:
            if tick.status:
                return self.advance(stage, self._progress, job_status=tick.status)
            return None
        return self.advance(stage, stage_range.map(tick.progress), job_status=tick.status)

    async def consume(self, channel: ProgressChannel, stage: str, stage_range: StageRange) -> int:
        """Project every tick on ``channel`` until it closes; returns the tick count."""
        count = 0
        async for tick in channel:
            self.project_tick(stage, stage_range, tick)
            count += 1
        return count


__all__ = [
    "StageRange",
    "JobTick",
    "ProgressEvent",
    "ProgressChannel",
    "ProgressProjector",
    "ProgressListener",
]
