"""Core circuit breaker implementation."""

from __future__ import annotations

import asyncio
import sys
import threading
from collections.abc import Sequence
from contextlib import AbstractContextManager, nullcontext
from dataclasses import dataclass

from resilient_client.circuit_breaker.metrics import BreakerListener
from resilient_client.circuit_breaker.state import (
    BreakerSnapshot,
    BreakerState,
    RollingStats,
)
from resilient_client.clock import Clock, MonotonicClock
from resilient_client.errors import ErrorKind
from resilient_client.outcome import CallOutcome, Failure, RemoteOperation, invoke


def _transition_lock() -> AbstractContextManager[object]:
    """Return the guard for state + stats updates.

    Transition steps never suspend, so a single event loop needs no lock.
    Free-threaded interpreters get a real re-entrant lock.
    """
    is_gil_enabled = getattr(sys, "_is_gil_enabled", None)
    gil_enabled = True if is_gil_enabled is None else bool(is_gil_enabled())
    if gil_enabled:
        return nullcontext()
    return threading.RLock()


@dataclass(frozen=True, slots=True)
class BreakerConfig:
    """Circuit breaker configuration values.

    Attributes:
        timeout_ms: Deadline applied to every forwarded call.
        error_threshold_percent: Failure rate in the rolling window at or
            above which the circuit opens.
        reset_timeout_ms: Time spent ``OPEN`` before a probe is allowed.
        minimum_calls: Completed calls required before the failure rate is
            evaluated.
        window_size: Number of most recent ``CLOSED`` results kept.
    """

    timeout_ms: float = 3000.0
    error_threshold_percent: float = 50.0
    reset_timeout_ms: float = 5000.0
    minimum_calls: int = 5
    window_size: int = 10

    def __post_init__(self) -> None:
        if self.timeout_ms <= 0:
            raise ValueError("timeout_ms must be > 0")
        if not 0 < self.error_threshold_percent <= 100:
            raise ValueError("error_threshold_percent must be in (0, 100]")
        if self.reset_timeout_ms < 0:
            raise ValueError("reset_timeout_ms must be >= 0")
        if self.minimum_calls < 1:
            raise ValueError("minimum_calls must be >= 1")
        if self.window_size < self.minimum_calls:
            raise ValueError("window_size must be >= minimum_calls")

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0

    @property
    def reset_timeout_seconds(self) -> float:
        return self.reset_timeout_ms / 1000.0


@dataclass(frozen=True, slots=True)
class _Admission:
    probe: bool
    generation: int


class CircuitBreaker:
    """Stateful proxy around one unreliable remote operation."""

    def __init__(
        self,
        operation: RemoteOperation,
        *,
        name: str = "upstream",
        config: BreakerConfig | None = None,
        clock: Clock | None = None,
        listeners: Sequence[BreakerListener] | None = None,
    ) -> None:
        """Build a circuit breaker with optional custom dependencies.

        Args:
            operation: Remote operation protected by the breaker.
            name: Breaker name reported to listeners.
            config: Breaker behavior configuration. Defaults to
                ``BreakerConfig()``.
            clock: Time source for the reset timer and elapsed time.
            listeners: Optional listener hooks for breaker events.
        """
        self.name = name
        self.config = BreakerConfig() if config is None else config
        self._operation = operation
        self._clock = MonotonicClock() if clock is None else clock
        self._listeners = tuple(listeners) if listeners is not None else ()
        self._lock = _transition_lock()
        self._state = BreakerState.CLOSED
        self._stats = RollingStats(self.config.window_size)
        self._opened_at: float | None = None
        self._probe_in_flight = False
        self._generation = 0

    @property
    def state(self) -> BreakerState:
        return self._state

    def snapshot(self) -> BreakerSnapshot:
        """Return a consistent view of state and rolling counters."""
        with self._lock:
            return BreakerSnapshot(
                name=self.name,
                state=self._state,
                calls=self._stats.calls,
                failures=self._stats.failures,
                opened_at=self._opened_at,
                probe_in_flight=self._probe_in_flight,
            )

    def _emit_state_change(self, old: BreakerState, new: BreakerState) -> None:
        for listener in self._listeners:
            try:
                listener.on_state_change(self.name, old, new)
            except Exception:
                continue

    def _emit_call_rejected(self) -> None:
        for listener in self._listeners:
            try:
                listener.on_call_rejected(self.name)
            except Exception:
                continue

    def _emit_call_completed(self, outcome: CallOutcome) -> None:
        for listener in self._listeners:
            try:
                if outcome.ok:
                    listener.on_call_succeeded(self.name, outcome.elapsed_ms)
                else:
                    listener.on_call_failed(
                        self.name, outcome.error_kind, outcome.elapsed_ms
                    )
            except Exception:
                continue

    def _transition(self, new: BreakerState) -> None:
        old = self._state
        self._state = new
        self._generation += 1
        if new == BreakerState.OPEN:
            self._opened_at = self._clock.now()
        else:
            self._opened_at = None
            self._stats.reset()
        self._emit_state_change(old, new)

    def _admit(self) -> _Admission | Failure:
        with self._lock:
            if self._state == BreakerState.OPEN:
                assert self._opened_at is not None
                remaining = (
                    self._opened_at + self.config.reset_timeout_seconds
                ) - self._clock.now()
                if remaining > 0:
                    return self._reject(retry_after=remaining)
                self._transition(BreakerState.HALF_OPEN)

            if self._state == BreakerState.HALF_OPEN:
                if self._probe_in_flight:
                    return self._reject(retry_after=0.0)
                self._probe_in_flight = True
                return _Admission(probe=True, generation=self._generation)

            return _Admission(probe=False, generation=self._generation)

    def _reject(self, *, retry_after: float) -> Failure:
        self._emit_call_rejected()
        return Failure(
            error_kind=ErrorKind.CIRCUIT_OPEN,
            elapsed_ms=0.0,
            detail=f"circuit_open: {self.name} retry_after={retry_after:.3f}s",
        )

    def _complete(self, admission: _Admission, outcome: CallOutcome) -> None:
        with self._lock:
            if admission.probe:
                self._probe_in_flight = False
                if outcome.ok:
                    self._transition(BreakerState.CLOSED)
                else:
                    self._transition(BreakerState.OPEN)
                return

            # Results of calls admitted before the last transition are stale.
            if admission.generation != self._generation:
                return

            self._stats.record(failed=not outcome.ok)
            if (
                self._stats.calls >= self.config.minimum_calls
                and self._stats.failure_rate >= self.config.error_threshold_percent
            ):
                self._transition(BreakerState.OPEN)

    def _abandon(self, admission: _Admission) -> None:
        if not admission.probe:
            return
        with self._lock:
            self._probe_in_flight = False

    async def fire(self) -> CallOutcome:
        """Invoke the protected operation under circuit breaker control.

        Returns:
            The operation's outcome when the call was forwarded, or a
            ``CIRCUIT_OPEN`` failure when it was rejected. Never raises for
            breaker-internal reasons.
        """
        admission = self._admit()
        if isinstance(admission, Failure):
            return admission

        try:
            outcome = await invoke(
                self._operation,
                timeout=self.config.timeout_seconds,
                clock=self._clock,
            )
        except asyncio.CancelledError:
            self._abandon(admission)
            raise

        self._complete(admission, outcome)
        self._emit_call_completed(outcome)
        return outcome
