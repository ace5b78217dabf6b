"""Circuit breaker state transitions, driven by a fake clock."""
import pytest

from marketplace_admin.exceptions import CircuitOpenError, UnknownServiceError
from marketplace_admin.services.circuit_breaker import BreakerConfig, CircuitBreaker, CircuitBreakerRegistry


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


async def ok():
    return "ok"


async def boom():
    raise ConnectionError("service down")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def breaker(clock):
    return CircuitBreaker("holibob", BreakerConfig(), clock)


@pytest.mark.asyncio
async def test_opens_after_threshold(breaker):
    for _ in range(4):
        with pytest.raises(ConnectionError):
            await breaker.call(boom)
    assert breaker.state == "CLOSED"

    with pytest.raises(ConnectionError):
        await breaker.call(boom)
    assert breaker.state == "OPEN"

    with pytest.raises(CircuitOpenError) as exc:
        await breaker.call(ok)
    assert exc.value.service == "holibob"
    assert exc.value.retry_at == 1060.0


def test_failures_outside_window_do_not_count(breaker, clock):
    for _ in range(4):
        breaker.record_failure()
    clock.now += 61
    breaker.record_failure()
    assert breaker.state == "CLOSED"


def test_success_clears_failures_while_closed(breaker):
    for _ in range(4):
        breaker.record_failure()
    breaker.record_success()
    breaker.record_failure()
    assert breaker.state == "CLOSED"
    assert breaker.get_status().metrics.failures == 1


@pytest.mark.asyncio
async def test_half_open_recovers(breaker, clock):
    for _ in range(5):
        breaker.record_failure()
    clock.now += 60

    assert await breaker.call(ok) == "ok"
    assert breaker.state == "HALF_OPEN"
    assert await breaker.call(ok) == "ok"
    assert breaker.state == "CLOSED"
    assert breaker.get_status().metrics.failures == 0


@pytest.mark.asyncio
async def test_half_open_failure_reopens(breaker, clock):
    for _ in range(5):
        breaker.record_failure()
    clock.now += 60

    with pytest.raises(ConnectionError):
        await breaker.call(boom)
    assert breaker.state == "OPEN"
    assert breaker.get_status().next_attempt_time == clock.now + 60


@pytest.mark.asyncio
async def test_registry(clock):
    registry = CircuitBreakerRegistry(clock=clock)
    breaker = registry.get_breaker("anthropic")
    assert registry.get_breaker("anthropic") is breaker

    for _ in range(5):
        breaker.record_failure()
    status = await registry.get_all_status()
    assert status["anthropic"].state == "OPEN"

    await registry.reset("anthropic")
    assert breaker.state == "CLOSED"

    with pytest.raises(UnknownServiceError):
        await registry.reset("unknown")
