"""Retry/backoff executor, concurrency limiter, and settle-all fan-out.

All remote calls in the ingest and answering pipelines route through a
RetryExecutor (backoff on rate limits only) and, for fan-outs, a shared
ConcurrencyLimiter (at most N calls in flight system-wide).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from repoqa.errors import is_rate_limited

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRY_DELAYS: tuple[float, ...] = (1.0, 2.0, 4.0, 8.0)
MAX_CONCURRENT = 5

Sleep = Callable[[float], Awaitable[Any]]


def backoff_delays(seed: float, count: int, cap: float | None = None) -> tuple[float, ...]:
    """Return *count* doubling delays starting at *seed*, optionally capped.

    Example:
        backoff_delays(1.0, 4) -> (1.0, 2.0, 4.0, 8.0)
    """
    delays = [seed * (2**i) for i in range(count)]
    if cap is not None:
        delays = [min(d, cap) for d in delays]
    return tuple(delays)


class RetryExecutor:
    """Run a fallible remote call, backing off only when it is rate limited.

    Any other error, or a rate limit after ``len(delays)`` retries, propagates
    immediately. A malformed request or a not-found error fails fast.

    Args:
        delays:  Wait (seconds) before retry ``i``; its length is the retry ceiling.
        timeout: Optional per-attempt deadline in seconds (``asyncio.wait_for``).
        sleep:   Awaitable sleep function (injectable for tests).
    """

    def __init__(
        self,
        delays: Sequence[float] = RETRY_DELAYS,
        timeout: float | None = None,
        sleep: Sleep | None = None,
    ) -> None:
        self.delays = tuple(delays)
        self.timeout = timeout
        self._sleep = sleep or asyncio.sleep

    @property
    def max_retries(self) -> int:
        return len(self.delays)

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Await ``operation()``; retry on rate limits with precomputed backoff."""
        attempt = 0
        while True:
            try:
                return await self._attempt(operation)
            except Exception as exc:
                if not is_rate_limited(exc) or attempt >= self.max_retries:
                    raise
                delay = self.delays[attempt]
                logger.warning(
                    "Rate limited. Waiting %.1fs before retry %d", delay, attempt + 1
                )
                await self._sleep(delay)
                attempt += 1

    async def _attempt(self, operation: Callable[[], Awaitable[T]]) -> T:
        if self.timeout is None:
            return await operation()
        return await asyncio.wait_for(operation(), self.timeout)


class ConcurrencyLimiter:
    """Admit at most *max_concurrency* operations at a time.

    Excess submissions wait in submission order (asyncio.Semaphore waiters are
    FIFO) and run as slots free. Completion order is not guaranteed. Share one
    instance across pipelines to make the ceiling process-wide.
    """

    def __init__(self, max_concurrency: int = MAX_CONCURRENT) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self.max_concurrency = max_concurrency
        self._semaphore: asyncio.Semaphore | None = None
        self.active = 0
        self.peak = 0

    def submit(self, operation: Callable[[], Awaitable[T]]) -> asyncio.Task[T]:
        """Schedule *operation* and return its task. Must be called inside a running loop."""
        return asyncio.ensure_future(self.run(operation))

    async def run(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Wait for a slot, then await ``operation()``."""
        async with self._get_semaphore():
            self.active += 1
            self.peak = max(self.peak, self.active)
            try:
                return await operation()
            finally:
                self.active -= 1

    def _get_semaphore(self) -> asyncio.Semaphore:
        # Created lazily so the limiter can be built outside a running loop.
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.max_concurrency)
        return self._semaphore


@dataclass
class Settled(Generic[T]):
    """Outcome of one task in a settle-all fan-out."""

    value: T | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def settle(awaitables: Iterable[Awaitable[T]]) -> list[Settled[T]]:
    """Await all *awaitables*; return one Settled per input, in input order."""
    results = await asyncio.gather(*awaitables, return_exceptions=True)
    settled: list[Settled[T]] = []
    for result in results:
        if isinstance(result, BaseException):
            settled.append(Settled(error=result))
        else:
            settled.append(Settled(value=result))
    return settled
