"""
Failure Injection Tests.

Validates resilience of location write-through against store failures.
"""

import pytest

from geodispatch.app.core.exceptions import PersistenceError
from geodispatch.app.core.reliability import CircuitBreaker, CircuitOpenError
from geodispatch.app.services.collaborators import CurrentUser
from geodispatch.app.services.geolocation import Position
from geodispatch.app.services.location_tracker import LocationFreshnessTracker


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


class StaticGeolocation:
    def __init__(self, position):
        self.position = position

    async def get_current_position(self, options):
        return self.position

    async def watch_position(self, options):
        return
        yield


class StaticAuth:
    async def get_current_user(self):
        return CurrentUser("driver_1")


class SilentNotifier:
    def notify(self, message, level="info"):
        pass


@pytest.mark.asyncio
async def test_circuit_breaker_activates():
    """Test that circuit breaker opens after threshold failures."""
    cb = CircuitBreaker(failure_threshold=2, reset_timeout=1)

    async def failing_func():
        raise ValueError("Boom")

    for _ in range(2):
        with pytest.raises(ValueError):
            await cb.call(failing_func)

    with pytest.raises(CircuitOpenError):
        await cb.call(failing_func)


@pytest.mark.asyncio
async def test_circuit_breaker_half_open_recovers():
    clock = FakeClock()
    cb = CircuitBreaker(failure_threshold=1, reset_timeout=10, clock=clock)

    async def failing_func():
        raise ValueError("Boom")

    async def ok_func():
        return "ok"

    with pytest.raises(ValueError):
        await cb.call(failing_func)
    assert cb.state == "OPEN"

    clock.now = 10
    assert await cb.call(ok_func) == "ok"
    assert cb.state == "CLOSED"
    assert cb.failures == 0


@pytest.mark.asyncio
async def test_circuit_breaker_trial_failure_reopens():
    clock = FakeClock()
    cb = CircuitBreaker(failure_threshold=3, reset_timeout=5, clock=clock)

    async def failing_func():
        raise ValueError("Boom")

    for _ in range(3):
        with pytest.raises(ValueError):
            await cb.call(failing_func)

    clock.now = 6
    with pytest.raises(ValueError):
        await cb.call(failing_func)
    assert cb.state == "OPEN"

    with pytest.raises(CircuitOpenError):
        await cb.call(failing_func)


@pytest.mark.asyncio
async def test_unexpected_exceptions_do_not_trip_breaker():
    cb = CircuitBreaker(failure_threshold=1, expected_exceptions=(PersistenceError,))

    async def buggy():
        raise KeyError("bug")

    with pytest.raises(KeyError):
        await cb.call(buggy)
    assert cb.state == "CLOSED"


@pytest.mark.asyncio
async def test_tracker_stops_hammering_failing_store(store, settings, mocker):
    """After repeated store failures writes are skipped until the breaker resets."""
    upsert = mocker.patch.object(store, "upsert", side_effect=PersistenceError())
    clock = FakeClock(100.0)
    tracker = LocationFreshnessTracker(
        StaticGeolocation(Position(12.9716, 77.5946)), store, StaticAuth(), settings,
        notifier=SilentNotifier(), clock=clock,
    )
    await tracker.go_online()

    for _ in range(settings.store_failure_threshold + 2):
        result = await tracker.acquire()
        assert isinstance(result.persist_error, PersistenceError)
        assert result.fix is not None

    assert upsert.call_count == settings.store_failure_threshold

    clock.now += settings.store_reset_timeout_seconds
    upsert.side_effect = None
    upsert.return_value = 7
    result = await tracker.acquire()

    assert result.record_id == 7
    await tracker.close()
