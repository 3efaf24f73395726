"""Job Poller - bounded-duration status polling for remote jobs.

``JobPoller.poll`` queries a job at a fixed interval until it reaches a
terminal status (``completed``, ``failed``, ``error``) or until the
wall-clock ceiling elapses, in which case a ``timeout`` result is
synthesised from the last payload. Nothing is cancelled server-side; the
remote job may keep running.

Each query is published as a ``JobTick`` on the optional channel. There
is no retry on transport errors: a failed query ends the loop with an
``error`` result and the caller decides whether that is fatal.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from typing import Any

from analysis_spine.core.errors import AnalysisSpineError
from analysis_spine.core.logging import get_logger
from analysis_spine.core.models import JobResult, JobStatus
from analysis_spine.execution.events import JobTick, ProgressChannel
from analysis_spine.execution.retry import CancellationToken

logger = get_logger(__name__)

TIMEOUT_MESSAGE = "Exceeded maximum polling wait time"

StatusFetcher = Callable[[str], Awaitable[dict[str, Any]]]


class JobPoller:
    """Poll a job until terminal state or timeout.

    Args:
        fetch_status: Coroutine returning the raw status payload for a job id
            (normally ``RemoteJobClient.get_job``)
        interval: Seconds between queries (production: 10)
        max_duration: Wall-clock ceiling in seconds (production: 360)
        token: Cancellable timer used for the waits between queries
        clock: Monotonic clock, injectable for tests
    """

    def __init__(
        self,
        fetch_status: StatusFetcher,
        *,
        interval: float = 10.0,
        max_duration: float = 360.0,
        token: CancellationToken | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._fetch_status = fetch_status
        self.interval = interval
        self.max_duration = max_duration
        self._token = token or CancellationToken()
        self._clock = clock

    async def poll(
        self,
        job_id: str,
        *,
        channel: ProgressChannel | None = None,
        interval: float | None = None,
        max_duration: float | None = None,
    ) -> JobResult:
        interval = self.interval if interval is None else interval
        max_duration = self.max_duration if max_duration is None else max_duration

        started = self._clock()
        last: dict[str, Any] = {}
        polls = 0

        while self._clock() - started < max_duration:
            try:
                payload = await self._fetch_status(job_id)
            except AnalysisSpineError as exc:
                logger.warning("job_poll_failed", job_id=job_id, polls=polls, error=exc.message)
                return JobResult(
                    job_id=job_id,
                    status=JobStatus.ERROR,
                    error=exc.message,
                    raw={**last, "status": JobStatus.ERROR.value, "error": exc.message},
                )
            polls += 1

            result = JobResult.from_payload(job_id, payload)
            if channel is not None:
                channel.publish(
                    JobTick(
                        job_id=job_id,
                        progress=result.progress,
                        status=payload.get("status"),
                        raw=payload,
                    )
                )
            logger.debug(
                "job_polled",
                job_id=job_id,
                status=result.status.value,
                progress=result.progress,
                polls=polls,
            )

            if result.status.is_terminal:
                logger.info("job_finished", job_id=job_id, status=result.status.value, polls=polls)
                return result

            last = payload
            await self._token.sleep(interval)

        logger.warning("job_poll_timeout", job_id=job_id, polls=polls, max_duration=max_duration)
        raw = {**last, "status": JobStatus.TIMEOUT.value, "error": TIMEOUT_MESSAGE}
        return JobResult.from_payload(job_id, raw)


__all__ = ["JobPoller", "StatusFetcher", "TIMEOUT_MESSAGE"]
