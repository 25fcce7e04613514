import pytest

from api.circuit_breaker import CircuitBreaker, CircuitOpenError


class FakeClock:
    def __init__(self, now: float = 100.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


async def fail_call() -> str:
    raise RuntimeError("external failure")


async def success_call() -> str:
    return "ok"


@pytest.mark.asyncio
async def test_circuit_breaker_opens_after_threshold() -> None:
    clock = FakeClock()
    breaker = CircuitBreaker("geodata", failure_threshold=2, recovery_timeout_seconds=30, clock=clock)

    with pytest.raises(RuntimeError):
        await breaker.call(fail_call)
    clock.now += 1
    with pytest.raises(RuntimeError):
        await breaker.call(fail_call)
    clock.now += 1
    with pytest.raises(CircuitOpenError):
        await breaker.call(fail_call)
    assert breaker.is_open


@pytest.mark.asyncio
async def test_circuit_breaker_recovers_after_timeout() -> None:
    clock = FakeClock()
    breaker = CircuitBreaker("geodata", failure_threshold=1, recovery_timeout_seconds=10, clock=clock)

    with pytest.raises(RuntimeError):
        await breaker.call(fail_call)
    clock.now += 1
    with pytest.raises(CircuitOpenError):
        await breaker.call(success_call)

    clock.now += 10
    assert await breaker.call(success_call) == "ok"
    assert not breaker.is_open


@pytest.mark.asyncio
async def test_half_open_failure_reopens_immediately() -> None:
    clock = FakeClock()
    breaker = CircuitBreaker("geodata", failure_threshold=3, recovery_timeout_seconds=10, clock=clock)

    for _ in range(3):
        with pytest.raises(RuntimeError):
            await breaker.call(fail_call)
    clock.now += 11
    with pytest.raises(RuntimeError):
        await breaker.call(fail_call)
    with pytest.raises(CircuitOpenError):
        await breaker.call(success_call)


@pytest.mark.asyncio
async def test_circuit_breaker_resets_after_success() -> None:
    clock = FakeClock()
    breaker = CircuitBreaker("geodata", failure_threshold=2, recovery_timeout_seconds=10, clock=clock)

    with pytest.raises(RuntimeError):
        await breaker.call(fail_call)
    assert await breaker.call(success_call) == "ok"

    with pytest.raises(RuntimeError):
        await breaker.call(fail_call)
    assert not breaker.is_open
