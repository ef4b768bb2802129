"""
Circuit breaker for provider calls.

CLOSED counts failures and opens at the threshold. OPEN rejects calls until
the reset timeout has elapsed since the last failure, then lets a single
HALF_OPEN trial through: success closes the circuit, failure reopens it.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import TypeVar

import structlog

from staffsync.kernel.errors import CircuitOpenError

logger = structlog.get_logger()

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


StateChangeHook = Callable[[CircuitState, CircuitState], None]


class CircuitBreaker:
    """Failure-isolation state machine guarding an unreliable dependency."""

    def __init__(
        self,
        failure_threshold: int = 5,
        reset_timeout: float = 30.0,
        *,
        name: str = "provider",
        is_failure: Callable[[BaseException], bool] | None = None,
        on_state_change: StateChangeHook | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.name = name
        self._is_failure = is_failure
        self._on_state_change = on_state_change
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: float | None = None
        self._trial_in_flight = False

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def last_failure_time(self) -> float | None:
        return self._last_failure_time

    async def execute(self, action: Callable[[], Awaitable[T]]) -> T:
        if self._state == CircuitState.OPEN:
            elapsed = self._clock() - (self._last_failure_time or 0.0)
            if self._last_failure_time is not None and elapsed >= self.reset_timeout:
                self._set_state(CircuitState.HALF_OPEN)
            else:
                raise CircuitOpenError(
                    message=f"Circuit breaker '{self.name}' is open",
                    meta={"retry_in_seconds": max(0.0, round(self.reset_timeout - elapsed, 3))},
                )

        is_trial = False
        if self._state == CircuitState.HALF_OPEN:
            if self._trial_in_flight:
                raise CircuitOpenError(
                    message=f"Circuit breaker '{self.name}' is half-open with a trial call in flight",
                    meta={"state": CircuitState.HALF_OPEN.value},
                )
            self._trial_in_flight = True
            is_trial = True

        try:
            result = await action()
        except Exception as exc:
            self._record_failure(exc)
            raise
        finally:
            if is_trial:
                self._trial_in_flight = False

        if self._state == CircuitState.HALF_OPEN:
            self._set_state(CircuitState.CLOSED)
        self._failure_count = 0
        return result

    def _record_failure(self, exc: BaseException) -> None:
        if self._is_failure is not None and not self._is_failure(exc):
            return

        self._failure_count += 1
        self._last_failure_time = self._clock()

        if self._state == CircuitState.HALF_OPEN:
            self._set_state(CircuitState.OPEN)
        elif self._state == CircuitState.CLOSED and self._failure_count >= self.failure_threshold:
            self._set_state(CircuitState.OPEN)

    def _set_state(self, new_state: CircuitState) -> None:
        if self._state == new_state:
            return
        previous = self._state
        self._state = new_state
        if new_state == CircuitState.CLOSED:
            self._failure_count = 0

        log = logger.warning if new_state == CircuitState.OPEN else logger.info
        log(
            "Circuit breaker state changed",
            circuit=self.name,
            from_state=previous.value,
            to_state=new_state.value,
            failures=self._failure_count,
        )
        if self._on_state_change is not None:
            self._on_state_change(previous, new_state)

    def reset(self) -> None:
        self._set_state(CircuitState.CLOSED)
        self._failure_count = 0
        self._last_failure_time = None

    def force_open(self) -> None:
        self._set_state(CircuitState.OPEN)
        self._last_failure_time = self._clock()

    def force_close(self) -> None:
        self._set_state(CircuitState.CLOSED)
