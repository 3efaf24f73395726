"""Bounded retry policy and cancellable waits.

The only retry loop in the core is version-list polling after a
mutation that is known to land eventually. It is a *convergence* loop,
not error handling: fetch, test, wait, repeat a bounded number of times,
and hand back the last value whether or not the condition was met.

Example:
    >>> token = CancellationToken()
    >>> outcome = await retry_until(
    ...     fetch_versions,
    ...     lambda versions: len(versions) > 3,
    ...     strategy=ConstantBackoff(max_retries=5, delay=2.0),
    ...     initial_delay=1.0,
    ...     token=token,
    ... )
    >>> outcome.converged, len(outcome.value)
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from analysis_spine.core.errors import OperationCancelled

T = TypeVar("T")


class CancellationToken:
    """Cancellable timer shared by the waits of one flow.

    ``sleep`` returns after ``seconds`` unless ``cancel`` is called first,
    in which case it raises ``OperationCancelled``. A zero delay still
    yields to the event loop once.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        self.reason = reason
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise OperationCancelled(self.reason or "cancelled")

    async def sleep(self, seconds: float) -> None:
        self.raise_if_cancelled()
        if seconds <= 0:
            await asyncio.sleep(0)
            self.raise_if_cancelled()
            return
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except TimeoutError:
            return
        self.raise_if_cancelled()


class RetryStrategy(ABC):
    """Abstract base for retry strategies."""

    @abstractmethod
    def next_delay(self, attempt: int) -> float:
        """Delay before the retry following zero-based ``attempt``."""
        ...

    @abstractmethod
    def should_retry(self, attempt: int) -> bool:
        """True if another attempt is allowed after ``attempt`` attempts."""
        ...


@dataclass
class ConstantBackoff(RetryStrategy):
    """Constant delay between a bounded number of attempts."""

    max_retries: int = 3
    delay: float = 1.0

    def next_delay(self, attempt: int) -> float:
        return self.delay

    def should_retry(self, attempt: int) -> bool:
        return attempt < self.max_retries


@dataclass
class RetryOutcome(Generic[T]):
    value: T
    attempts: int
    converged: bool


async def retry_until(
    fetch: Callable[[], Awaitable[T]],
    predicate: Callable[[T], bool],
    *,
    strategy: RetryStrategy,
    token: CancellationToken | None = None,
    initial_delay: float = 0.0,
    on_attempt: Callable[[int, T], None] | None = None,
) -> RetryOutcome[T]:
    """Fetch until ``predicate`` holds or the strategy runs out of attempts.

    Waits ``initial_delay`` first. At least one fetch is always made so
    there is a value to return; exceptions from ``fetch`` propagate.
    """
    token = token or CancellationToken()
    await token.sleep(initial_delay)

    attempt = 0
    value = await fetch()
    attempt += 1
    if on_attempt:
        on_attempt(attempt, value)

    while not predicate(value):
        if not strategy.should_retry(attempt):
            return RetryOutcome(value=value, attempts=attempt, converged=False)
        await token.sleep(strategy.next_delay(attempt - 1))
        value = await fetch()
        attempt += 1
        if on_attempt:
            on_attempt(attempt, value)

    return RetryOutcome(value=value, attempts=attempt, converged=True)


__all__ = [
    "CancellationToken",
    "RetryStrategy",
    "ConstantBackoff",
    "RetryOutcome",
    "retry_until",
]
