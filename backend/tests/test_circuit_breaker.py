"""Tests for the per-source circuit breaker."""

import pytest

from circuit_breaker import BreakerRegistry, CircuitBreaker, CircuitOpenError, CircuitState


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


def test_opens_after_threshold(clock):
    breaker = CircuitBreaker("indexer:test", failure_threshold=3, cooldown_seconds=60, clock=clock)
    for _ in range(2):
        breaker.record_failure()
    assert breaker.state == CircuitState.CLOSED
    breaker.record_failure()
    assert breaker.state == CircuitState.OPEN
    assert not breaker.allow_request()


def test_success_resets_failure_count(clock):
    breaker = CircuitBreaker("x", failure_threshold=2, clock=clock)
    breaker.record_failure()
    breaker.record_success()
    breaker.record_failure()
    assert breaker.state == CircuitState.CLOSED


def test_half_open_admits_single_probe(clock):
    breaker = CircuitBreaker("x", failure_threshold=1, cooldown_seconds=30, clock=clock)
    breaker.record_failure()
    clock.now += 31
    assert breaker.state == CircuitState.HALF_OPEN
    assert breaker.allow_request()
    assert not breaker.allow_request()
    breaker.record_success()
    assert breaker.state == CircuitState.CLOSED


def test_failed_probe_reopens(clock):
    breaker = CircuitBreaker("x", failure_threshold=1, cooldown_seconds=30, clock=clock)
    breaker.record_failure()
    clock.now += 31
    assert breaker.allow_request()
    breaker.record_failure()
    assert breaker.state == CircuitState.OPEN


def test_call_raises_when_open(clock):
    breaker = CircuitBreaker("x", failure_threshold=1, clock=clock)
    with pytest.raises(ValueError):
        breaker.call(lambda: (_ for _ in ()).throw(ValueError("boom")))
    with pytest.raises(CircuitOpenError):
        breaker.call(lambda: "never")


def test_registry_shares_breakers_and_reports_changes():
    changes = []
    registry = BreakerRegistry(failure_threshold=1, on_state_change=lambda n, s: changes.append((n, s)))
    assert registry.get("client:qb") is registry.get("client:qb")
    registry.get("client:qb").record_failure()
    assert changes == [("client:qb", CircuitState.OPEN)]
    assert registry.statuses()[0]["state"] == "open"
