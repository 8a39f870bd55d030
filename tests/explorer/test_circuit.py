"""Tests for the explorer circuit breaker."""

import pytest

from payout_tracker.explorer.circuit import CircuitBreaker, CircuitState
from payout_tracker.explorer.errors import CircuitOpenError


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def breaker(clock: FakeClock) -> CircuitBreaker:
    return CircuitBreaker(failure_threshold=3, reset_seconds=60, clock=clock)


class TestCircuitBreaker:
    def test_starts_closed(self, breaker: CircuitBreaker) -> None:
        assert breaker.state is CircuitState.CLOSED
        breaker.before_call()

    def test_opens_after_threshold(self, breaker: CircuitBreaker) -> None:
        for _ in range(2):
            breaker.record_failure()
        assert breaker.state is CircuitState.CLOSED

        breaker.record_failure()

        assert breaker.state is CircuitState.OPEN
        with pytest.raises(CircuitOpenError, match="circuit open"):
            breaker.before_call()

    def test_success_resets_failure_count(self, breaker: CircuitBreaker) -> None:
        breaker.record_failure()
        breaker.record_failure()
        breaker.record_success()
        breaker.record_failure()

        assert breaker.consecutive_failures == 1
        assert breaker.state is CircuitState.CLOSED

    def test_half_open_after_reset(self, breaker: CircuitBreaker, clock: FakeClock) -> None:
        for _ in range(3):
            breaker.record_failure()

        clock.now += 60
        assert breaker.state is CircuitState.HALF_OPEN
        breaker.before_call()

        breaker.record_success()
        assert breaker.state is CircuitState.CLOSED

    def test_failed_trial_reopens(self, breaker: CircuitBreaker, clock: FakeClock) -> None:
        for _ in range(3):
            breaker.record_failure()
        clock.now += 61
        breaker.before_call()

        breaker.record_failure()

        assert breaker.state is CircuitState.OPEN
        with pytest.raises(CircuitOpenError):
            breaker.before_call()
