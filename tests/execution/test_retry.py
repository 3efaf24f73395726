"""Tests for the bounded retry loop and cancellable waits."""

import asyncio

import pytest

from analysis_spine.core.errors import OperationCancelled
from analysis_spine.execution.retry import CancellationToken, ConstantBackoff, retry_until


def counting_fetch(values):
    calls = []

    async def fetch():
        calls.append(1)
        return values[min(len(calls), len(values)) - 1]

    return fetch, calls


class TestConstantBackoff:
    def test_defaults(self):
        strategy = ConstantBackoff()
        assert strategy.max_retries == 3
        assert strategy.next_delay(0) == 1.0

    def test_should_retry_within_limit(self):
        strategy = ConstantBackoff(max_retries=2)
        assert strategy.should_retry(1) is True
        assert strategy.should_retry(2) is False


class TestRetryUntil:
    @pytest.mark.asyncio
    async def test_stops_when_predicate_holds(self):
        fetch, calls = counting_fetch([1, 1, 2, 3])
        outcome = await retry_until(
            fetch, lambda value: value > 1, strategy=ConstantBackoff(max_retries=5, delay=0)
        )
        assert outcome.converged
        assert outcome.value == 2
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_returns_last_value_without_raising(self):
        fetch, calls = counting_fetch([1])
        outcome = await retry_until(
            fetch, lambda value: value > 1, strategy=ConstantBackoff(max_retries=4, delay=0)
        )
        assert not outcome.converged
        assert outcome.value == 1
        assert len(calls) == 4

    @pytest.mark.asyncio
    async def test_zero_retries_still_fetches_once(self):
        fetch, calls = counting_fetch([1])
        outcome = await retry_until(
            fetch, lambda value: False, strategy=ConstantBackoff(max_retries=0, delay=0)
        )
        assert len(calls) == 1
        assert outcome.attempts == 1

    @pytest.mark.asyncio
    async def test_on_attempt_callback(self):
        fetch, _ = counting_fetch([1, 2])
        seen = []
        await retry_until(
            fetch,
            lambda value: value == 2,
            strategy=ConstantBackoff(max_retries=3, delay=0),
            on_attempt=lambda attempt, value: seen.append((attempt, value)),
        )
        assert seen == [(1, 1), (2, 2)]

    @pytest.mark.asyncio
    async def test_fetch_errors_propagate(self):
        async def fetch():
            raise RuntimeError("lookup failed")

        with pytest.raises(RuntimeError):
            await retry_until(fetch, bool, strategy=ConstantBackoff(delay=0))


class TestCancellationToken:
    @pytest.mark.asyncio
    async def test_cancel_interrupts_sleep(self):
        token = CancellationToken()
        sleeper = asyncio.create_task(token.sleep(30))
        await asyncio.sleep(0)
        token.cancel("user aborted")
        with pytest.raises(OperationCancelled) as exc_info:
            await sleeper
        assert "user aborted" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_cancelled_token_stops_retry_loop(self):
        token = CancellationToken()
        token.cancel()
        fetch, calls = counting_fetch([1])
        with pytest.raises(OperationCancelled):
            await retry_until(fetch, bool, strategy=ConstantBackoff(delay=0), token=token)
        assert calls == []

    @pytest.mark.asyncio
    async def test_short_sleep_completes(self):
        token = CancellationToken()
        await token.sleep(0.01)
        assert not token.cancelled
