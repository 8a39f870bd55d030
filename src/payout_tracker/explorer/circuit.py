"""Consecutive-failure circuit breaker for explorer calls."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from enum import Enum

from payout_tracker.explorer.errors import CircuitOpenError

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_THRESHOLD = 5
DEFAULT_RESET_SECONDS = 60.0


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Stops calling the explorer after repeated failures.

    After `failure_threshold` consecutive failures the circuit opens and
    every call is refused for `reset_seconds`. The first call after that is
    a trial: success closes the circuit, failure re-opens it.
    """

    def __init__(
        self,
        *,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
        reset_seconds: float = DEFAULT_RESET_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._failure_threshold = failure_threshold
        self._reset_seconds = reset_seconds
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._opened_at = 0.0

    @property
    def state(self) -> CircuitState:
        if self._state is CircuitState.OPEN and self._clock() - self._opened_at >= self._reset_seconds:
            return CircuitState.HALF_OPEN
        return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._failures

    def before_call(self) -> None:
        """Raise CircuitOpenError if calls are currently refused."""
        state = self.state
        if state is CircuitState.OPEN:
            remaining = self._reset_seconds - (self._clock() - self._opened_at)
            raise CircuitOpenError(f"Explorer circuit open; retry in {remaining:.0f}s")
        if state is CircuitState.HALF_OPEN and self._state is CircuitState.OPEN:
            logger.info("Explorer circuit half-open, allowing a trial call")
            self._state = CircuitState.HALF_OPEN

    def record_success(self) -> None:
        if self._state is not CircuitState.CLOSED:
            logger.info("Explorer circuit closed after successful call")
        self._state = CircuitState.CLOSED
        self._failures = 0

    def record_failure(self) -> None:
        self._failures += 1
        if self._state is CircuitState.HALF_OPEN or self._failures >= self._failure_threshold:
            if self._state is not CircuitState.OPEN:
                logger.warning(
                    "Explorer circuit opened after %d consecutive failures",
                    self._failures,
                )
            self._state = CircuitState.OPEN
            self._opened_at = self._clock()
