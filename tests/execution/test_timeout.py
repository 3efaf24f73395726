"""Tests for deadline enforcement."""

import asyncio

import pytest

from analysis_spine.execution.timeout import TimeoutExpired, with_deadline_async


class TestWithDeadlineAsync:
    @pytest.mark.asyncio
    async def test_completes_within_deadline(self):
        async with with_deadline_async(1.0, operation="standardize"):
            result = await asyncio.sleep(0, result="done")
        assert result == "done"

    @pytest.mark.asyncio
    async def test_raises_timeout_expired(self):
        with pytest.raises(TimeoutExpired) as exc_info:
            async with with_deadline_async(0.01, operation="standardize"):
                await asyncio.sleep(5)
        assert exc_info.value.operation == "standardize"
        assert exc_info.value.seconds == 0.01
        assert "standardize" in str(exc_info.value)
        assert isinstance(exc_info.value, TimeoutError)

    @pytest.mark.asyncio
    async def test_negative_deadline_rejected(self):
        with pytest.raises(ValueError):
            async with with_deadline_async(-1):
                pass
