from __future__ import annotations

import random

import pytest
from tenacity import AsyncRetrying

from resilient_client.errors import ErrorKind, UpstreamConnectionError
from resilient_client.outcome import Failure, Success
from resilient_client.retry import (
    RetryConfig,
    RetryPolicy,
    build_exponential_jitter_retrying,
)
from tests.resilient_client.support.fakes import (
    OK_REPLY,
    FakeClock,
    FakeLogger,
    GatedOperation,
    ScriptedOperation,
    failing,
)

pytestmark = pytest.mark.asyncio


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"max_attempts": 0}, "max_attempts must be >= 1"),
        ({"base_delay_ms": -1.0}, "base_delay_ms must be >= 0"),
        ({"jitter_ms": -0.1}, "jitter_ms must be >= 0"),
        ({"timeout_ms": 0.0}, "timeout_ms must be > 0"),
    ],
)
async def test_retry_config_validation(
    overrides: dict[str, float],
    message: str,
) -> None:
    with pytest.raises(ValueError, match=message):
        RetryConfig(**overrides)  # type: ignore[arg-type]


async def test_build_retrying_returns_async_retrying(fake_clock: FakeClock) -> None:
    retrying = build_exponential_jitter_retrying(
        config=RetryConfig(),
        sleep=fake_clock.sleep,
    )

    assert isinstance(retrying, AsyncRetrying)


async def test_first_success_returns_without_sleeping(
    fake_clock: FakeClock,
    fake_logger: FakeLogger,
) -> None:
    operation = ScriptedOperation()
    policy = RetryPolicy(operation, clock=fake_clock, logger=fake_logger)

    result = await policy.execute()

    assert isinstance(result.outcome, Success)
    assert result.attempts_used == 1
    assert result.attempts[0].attempt_number == 1
    assert result.attempts[0].delay_before_ms == 0.0
    assert operation.calls == 1
    assert fake_clock.sleeps == []
    assert fake_logger.calls == []


async def test_success_after_failures_records_each_attempt(
    fake_clock: FakeClock,
    fake_logger: FakeLogger,
) -> None:
    operation = ScriptedOperation(
        [failing(503), UpstreamConnectionError("refused"), OK_REPLY]
    )
    policy = RetryPolicy(
        operation,
        config=RetryConfig(max_attempts=5, base_delay_ms=100.0, jitter_ms=0.0),
        clock=fake_clock,
        logger=fake_logger,
    )

    result = await policy.execute()

    assert isinstance(result.outcome, Success)
    assert result.attempts_used == 3
    assert [attempt.attempt_number for attempt in result.attempts] == [1, 2, 3]
    assert [attempt.delay_before_ms for attempt in result.attempts] == pytest.approx(
        [0.0, 100.0, 200.0]
    )
    first, second, _ = (attempt.outcome for attempt in result.attempts)
    assert isinstance(first, Failure) and first.status_code == 503
    assert isinstance(second, Failure)
    assert second.error_kind == ErrorKind.CONNECTION_ERROR
    assert fake_clock.sleeps == pytest.approx([0.1, 0.2])
    assert fake_logger.events == ["retry_attempt_failed", "retry_attempt_failed"]
    level, _, fields = fake_logger.calls[0]
    assert level == "warning"
    assert fields["attempt"] == 1
    assert fields["error_kind"] == "upstream_status"
    assert fields["retry_in_ms"] == 100


async def test_always_failing_operation_stops_after_max_attempts(
    fake_clock: FakeClock,
    fake_logger: FakeLogger,
) -> None:
    operation = ScriptedOperation(default=failing(500))
    policy = RetryPolicy(
        operation,
        config=RetryConfig(max_attempts=5, base_delay_ms=500.0, jitter_ms=200.0),
        clock=fake_clock,
        logger=fake_logger,
    )

    result = await policy.execute()

    assert operation.calls == 5
    assert result.attempts_used == 5
    assert len(fake_clock.sleeps) == 4
    outcome = result.outcome
    assert isinstance(outcome, Failure)
    assert outcome.error_kind == ErrorKind.RETRIES_EXHAUSTED
    assert outcome.attempts == 5
    assert outcome.last_error == ErrorKind.UPSTREAM_STATUS
    assert outcome.status_code == 500
    assert outcome.detail is not None
    assert outcome.detail.startswith("Failed after 5 attempts")
    assert fake_logger.events[-1] == "retries_exhausted"
    assert fake_logger.events.count("retry_attempt_failed") == 4


async def test_backoff_delays_grow_exponentially_with_bounded_jitter(
    fake_clock: FakeClock,
) -> None:
    policy = RetryPolicy(
        ScriptedOperation(default=failing()),
        config=RetryConfig(max_attempts=5, base_delay_ms=500.0, jitter_ms=200.0),
        clock=fake_clock,
        logger=FakeLogger(),
    )

    result = await policy.execute()

    assert len(fake_clock.sleeps) == 4
    for attempt, delay in enumerate(fake_clock.sleeps, start=1):
        lower = 0.5 * 2 ** (attempt - 1)
        assert lower <= delay <= lower + 0.2
    recorded = [attempt.delay_before_ms for attempt in result.attempts[1:]]
    assert recorded == pytest.approx([delay * 1000 for delay in fake_clock.sleeps])


async def test_jitter_is_drawn_per_attempt(
    fake_clock: FakeClock,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    draws = iter([0.05, 0.15, 0.0, 0.1])
    monkeypatch.setattr(random, "uniform", lambda a, b: next(draws))
    policy = RetryPolicy(
        ScriptedOperation(default=failing()),
        config=RetryConfig(max_attempts=4, base_delay_ms=500.0, jitter_ms=200.0),
        clock=fake_clock,
        logger=FakeLogger(),
    )

    await policy.execute()

    assert fake_clock.sleeps == pytest.approx([0.55, 1.15, 2.0])


async def test_each_attempt_uses_configured_timeout(fake_clock: FakeClock) -> None:
    operation = GatedOperation()
    policy = RetryPolicy(
        operation,
        config=RetryConfig(
            max_attempts=2,
            base_delay_ms=0.0,
            jitter_ms=0.0,
            timeout_ms=10.0,
        ),
        clock=fake_clock,
        logger=FakeLogger(),
    )

    result = await policy.execute()

    assert operation.calls == 2
    outcome = result.outcome
    assert isinstance(outcome, Failure)
    assert outcome.error_kind == ErrorKind.RETRIES_EXHAUSTED
    assert outcome.last_error == ErrorKind.TIMEOUT


async def test_sequences_do_not_share_attempt_state(fake_clock: FakeClock) -> None:
    operation = ScriptedOperation([failing(), OK_REPLY, OK_REPLY])
    policy = RetryPolicy(
        operation,
        config=RetryConfig(base_delay_ms=0.0, jitter_ms=0.0),
        clock=fake_clock,
        logger=FakeLogger(),
    )

    first = await policy.execute()
    second = await policy.execute()

    assert first.attempts_used == 2
    assert second.attempts_used == 1
    assert second.attempts[0].attempt_number == 1
