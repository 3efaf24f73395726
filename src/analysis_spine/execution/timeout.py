"""Hard deadline for one long remote call.

Standardize is a single request rather than a polled job, so the job
poller's ceiling does not cover it. ``with_deadline_async`` cancels the
awaited request when the deadline passes and raises ``TimeoutExpired``.

Example:
    >>> async with with_deadline_async(600.0, operation="standardize"):
    ...     response = await client.post(url, json=payload)
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class TimeoutExpired(TimeoutError):
    """``operation`` did not finish within ``seconds``."""

    def __init__(self, operation: str, seconds: float) -> None:
        self.operation = operation
        self.seconds = seconds
        super().__init__(f"Operation '{operation}' timed out after {seconds}s")


@asynccontextmanager
async def with_deadline_async(
    seconds: float, operation: str = "operation"
) -> AsyncIterator[None]:
    if seconds < 0:
        raise ValueError(f"Timeout must be non-negative, got {seconds}")
    try:
        async with asyncio.timeout(seconds):
            yield
    except TimeoutError as exc:
        if isinstance(exc, TimeoutExpired):
            raise
        raise TimeoutExpired(operation, seconds) from None


__all__ = ["TimeoutExpired", "with_deadline_async"]
