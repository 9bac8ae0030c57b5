import pytest

from gallery_api.services.circuit_breaker import (
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
)
from gallery_api.services.errors import (
    ErrorKind,
    NotFoundError,
    ServerError,
    TransportError,
)
from gallery_api.services.result import Failure, Success
from gallery_api.services.retry import RetryController, backoff_delay


@pytest.fixture
def breakers(clock):
    return CircuitBreakerRegistry(CircuitBreakerConfig(failure_threshold=5), clock=clock)


@pytest.fixture
def retry(breakers, sleeper):
    return RetryController(breakers, sleep=sleeper)


def scripted(*outcomes):
    """Send coroutine that raises or returns outcomes in order."""
    calls = []
    remaining = list(outcomes)

    async def send():
        calls.append(1)
        outcome = remaining.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    send.calls = calls
    return send


@pytest.mark.parametrize(
    "attempt, expected",
    [(1, 1.0), (2, 2.0), (3, 4.0), (4, 8.0), (5, 10.0), (10, 10.0)],
)
def test_backoff_delay(attempt, expected):
    assert backoff_delay(attempt) == expected


async def test_first_success_has_no_sleep(retry, sleeper):
    send = scripted(Success(200, {"ok": True}))

    result = await retry.execute("cases", send)

    assert result.ok
    assert len(send.calls) == 1
    assert sleeper.calls == []


async def test_retries_server_errors_with_backoff(retry, sleeper):
    send = scripted(ServerError("boom"), ServerError("boom"), ServerError("boom"))

    result = await retry.execute("cases", send, max_attempts=3)

    assert isinstance(result, Failure)
    assert result.kind == ErrorKind.SERVER_ERROR
    assert len(send.calls) == 3
    assert sleeper.calls == [1.0, 2.0]


async def test_recovers_after_transient_failure(retry, sleeper):
    send = scripted(TransportError("reset"), Success(200, [1]))

    result = await retry.execute("cases", send)

    assert result.ok
    assert result.payload == [1]
    assert sleeper.calls == [1.0]


async def test_non_retryable_returns_immediately(retry, sleeper):
    send = scripted(NotFoundError("missing"))

    result = await retry.execute("cases", send, max_attempts=3)

    assert result.kind == ErrorKind.NOT_FOUND
    assert not result.retryable
    assert len(send.calls) == 1
    assert sleeper.calls == []


async def test_open_circuit_consumes_attempts(retry, breakers, sleeper):
    for _ in range(5):
        breakers.get("cases").record_failure()
    send = scripted()

    result = await retry.execute("/cases/", send, max_attempts=2)

    assert result.kind == ErrorKind.CIRCUIT_OPEN
    assert send.calls == []
    assert sleeper.calls == [1.0]


async def test_zero_attempts_is_max_retries_exceeded(retry):
    result = await retry.execute("cases", scripted(), max_attempts=0)

    assert result.kind == ErrorKind.MAX_RETRIES_EXCEEDED
    assert result.context == {"attempts": 0}
