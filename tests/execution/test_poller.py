"""Tests for JobPoller."""

import pytest

from analysis_spine.core.errors import RunError
from analysis_spine.core.models import JobStatus
from analysis_spine.execution.events import ProgressChannel
from analysis_spine.execution.poller import TIMEOUT_MESSAGE, JobPoller


def scripted(payloads):
    calls = []

    async def fetch(job_id):
        calls.append(job_id)
        return payloads[min(len(calls), len(payloads)) - 1]

    return fetch, calls


class FakeClock:
    def __init__(self, step):
        self.now = 0.0
        self.step = step

    def __call__(self):
        value = self.now
        self.now += self.step
        return value


class TestJobPoller:
    @pytest.mark.asyncio
    async def test_returns_terminal_result(self):
        fetch, calls = scripted(
            [
                {"status": "queued"},
                {"status": "running", "progress": 40},
                {"status": "completed", "progress": 100, "run_results": {"task_id": "t"}},
            ]
        )
        result = await JobPoller(fetch, interval=0).poll("job-1")
        assert result.status is JobStatus.COMPLETED
        assert result.run_results == {"task_id": "t"}
        assert calls == ["job-1"] * 3

    @pytest.mark.asyncio
    async def test_failed_job_is_terminal(self):
        fetch, calls = scripted([{"status": "failed", "error": "out of memory"}])
        result = await JobPoller(fetch, interval=0).poll("job-1")
        assert result.status is JobStatus.FAILED
        assert result.error == "out of memory"
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_times_out_with_last_payload(self):
        fetch, calls = scripted([{"status": "running", "progress": 60, "stage": "sampling"}])
        poller = JobPoller(fetch, interval=0, max_duration=360, clock=FakeClock(step=100))
        result = await poller.poll("job-1")

        assert result.status is JobStatus.TIMEOUT
        assert result.error == TIMEOUT_MESSAGE
        assert result.raw["stage"] == "sampling"
        assert result.progress == 60
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_transport_error_ends_loop(self):
        calls = []

        async def fetch(job_id):
            calls.append(job_id)
            raise RunError("Job status query failed: 502")

        result = await JobPoller(fetch, interval=0).poll("job-1")
        assert result.status is JobStatus.ERROR
        assert result.error == "Job status query failed: 502"
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_publishes_one_tick_per_poll(self):
        fetch, _ = scripted(
            [{"status": "running", "progress": 10}, {"status": "completed", "progress": 100}]
        )
        channel = ProgressChannel()
        await JobPoller(fetch, interval=0).poll("job-1", channel=channel)
        channel.close()

        ticks = [tick async for tick in channel]
        assert [tick.progress for tick in ticks] == [10, 100]
        assert ticks[-1].status == "completed"

    @pytest.mark.asyncio
    async def test_per_call_overrides(self):
        fetch, calls = scripted([{"status": "running"}])
        poller = JobPoller(fetch, interval=10, max_duration=10_000, clock=FakeClock(step=1))
        result = await poller.poll("job-1", interval=0, max_duration=3)
        assert result.status is JobStatus.TIMEOUT
        assert len(calls) == 2
