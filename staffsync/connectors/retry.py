"""
Retry helpers for provider calls.

Exponential backoff with a delay cap and a bounded number of retries. The
policy is a pure computation; `with_retry` applies it around an awaitable.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import structlog

logger = structlog.get_logger()

T = TypeVar("T")


@dataclass(frozen=True)
class RetryContext:
    """Where a failing call stands after `attempt` failures."""

    attempt: int
    delay: float
    exhausted: bool


RetryHook = Callable[[BaseException, RetryContext], None]


@dataclass(frozen=True)
class BackoffPolicy:
    """Exponential backoff.

    delay(attempt) = min(max_delay, initial_delay * factor ** (attempt - 1))

    With the defaults the action runs at most four times, sleeping 1s, 2s and
    4s in between.
    """

    initial_delay: float = 1.0
    factor: float = 2.0
    max_delay: float = 10.0
    max_retries: int = 3
    jitter: bool = False

    def delay_for(self, attempt: int) -> float:
        if attempt < 1:
            raise ValueError("attempt is 1-based")
        return min(self.max_delay, self.initial_delay * (self.factor ** (attempt - 1)))

    def is_exhausted(self, attempt: int) -> bool:
        return attempt > self.max_retries

    def context_for(self, attempt: int) -> RetryContext:
        exhausted = self.is_exhausted(attempt)
        delay = 0.0 if exhausted else self.delay_for(attempt)
        if self.jitter and delay > 0:
            delay = delay + random.uniform(0, delay / 2)
        return RetryContext(attempt=attempt, delay=delay, exhausted=exhausted)

    def delays(self) -> list[float]:
        """Delay sequence for a call that keeps failing (without jitter)."""
        return [self.delay_for(attempt) for attempt in range(1, self.max_retries + 1)]


async def with_retry(
    action: Callable[[], Awaitable[T]],
    policy: BackoffPolicy,
    *,
    on_retry: RetryHook | None = None,
    retryable: Callable[[BaseException], bool] | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run `action`, retrying failures according to `policy`.

    Non-retryable errors and the failure after the last retry propagate
    unchanged.
    """
    attempt = 0
    while True:
        try:
            return await action()
        except Exception as exc:
            attempt += 1
            if retryable is not None and not retryable(exc):
                raise

            context = policy.context_for(attempt)
            if context.exhausted:
                logger.debug("Retries exhausted", attempts=attempt, error=str(exc))
                raise

            if on_retry is not None:
                on_retry(exc, context)

            await sleep(context.delay)
