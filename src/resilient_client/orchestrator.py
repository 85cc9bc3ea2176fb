from __future__ import annotations

from dataclasses import dataclass, replace
from enum import StrEnum

from resilient_client.circuit_breaker import CircuitBreaker
from resilient_client.clock import Clock, MonotonicClock
from resilient_client.outcome import (
    CallOutcome,
    RemoteOperation,
    RetryAttempt,
    elapsed_ms,
    invoke,
)
from resilient_client.retry import RetryPolicy


class Mode(StrEnum):
    """Fault-handling strategy used for one call."""

    DIRECT = "direct"
    BREAKER = "breaker"
    RETRY = "retry"


@dataclass(frozen=True)
class CallReport:
    """Outcome of one orchestrated call with its timing metadata.

    Attributes:
        mode: Strategy that produced the outcome.
        outcome: Final outcome of the call.
        elapsed_ms: Wall-clock time around the whole strategy call.
        attempts: Per-attempt records, populated in retry mode only.
        index: Position inside a batch, ``None`` for single calls.
    """

    mode: Mode
    outcome: CallOutcome
    elapsed_ms: float
    attempts: tuple[RetryAttempt, ...] = ()
    index: int | None = None

    @property
    def attempts_used(self) -> int | None:
        if self.mode != Mode.RETRY:
            return None
        return len(self.attempts)


class Orchestrator:
    """Expose direct, breaker and retry calls against one upstream."""

    def __init__(
        self,
        *,
        operation: RemoteOperation,
        breaker: CircuitBreaker,
        retry_policy: RetryPolicy,
        timeout_ms: float,
        clock: Clock | None = None,
    ) -> None:
        """Wire the strategies sharing one remote operation.

        Args:
            operation: Remote operation used by direct calls.
            breaker: Process-wide breaker instance.
            retry_policy: Retry policy used by retry calls.
            timeout_ms: Deadline applied to direct calls.
            clock: Time source for elapsed-time measurement.
        """
        if timeout_ms <= 0:
            raise ValueError("timeout_ms must be > 0")
        self._operation = operation
        self.breaker = breaker
        self.retry_policy = retry_policy
        self._timeout_seconds = timeout_ms / 1000.0
        self._clock = MonotonicClock() if clock is None else clock

    async def call_once(self, mode: Mode) -> CallReport:
        """Invoke the strategy for ``mode`` once and time it."""
        start = self._clock.now()
        attempts: tuple[RetryAttempt, ...] = ()
        if mode == Mode.DIRECT:
            outcome = await invoke(
                self._operation,
                timeout=self._timeout_seconds,
                clock=self._clock,
            )
        elif mode == Mode.BREAKER:
            outcome = await self.breaker.fire()
        elif mode == Mode.RETRY:
            result = await self.retry_policy.execute()
            outcome = result.outcome
            attempts = result.attempts
        else:
            raise ValueError(f"unsupported mode: {mode!r}")

        return CallReport(
            mode=mode,
            outcome=outcome,
            elapsed_ms=elapsed_ms(self._clock, start),
            attempts=attempts,
        )

    async def call_batch(self, mode: Mode, count: int) -> tuple[CallReport, ...]:
        """Run ``count`` calls one after another and return them in order."""
        if count < 0:
            raise ValueError("count must be >= 0")
        reports: list[CallReport] = []
        for index in range(count):
            report = await self.call_once(mode)
            reports.append(replace(report, index=index))
        return tuple(reports)
