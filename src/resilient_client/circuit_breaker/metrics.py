"""Observability hooks for circuit breakers."""

from __future__ import annotations

from typing import Protocol

import structlog

from resilient_client.circuit_breaker.state import BreakerState
from resilient_client.errors import ErrorKind
from resilient_client.logging import StructuredLogger, log_info, log_warning

_TRANSITION_EVENTS: dict[BreakerState, str] = {
    BreakerState.OPEN: "circuit_opened",
    BreakerState.HALF_OPEN: "circuit_half_open",
    BreakerState.CLOSED: "circuit_closed",
}


class BreakerListener(Protocol):
    """Listener protocol for circuit breaker events.

    Listeners are called synchronously inside the breaker and must return
    quickly. Exceptions raised by a listener are discarded.
    """

    def on_state_change(
        self, name: str, old: BreakerState, new: BreakerState
    ) -> None:
        """Handle circuit state transitions."""

    def on_call_rejected(self, name: str) -> None:
        """Handle call rejection while the circuit is open."""

    def on_call_succeeded(self, name: str, elapsed_ms: float) -> None:
        """Handle successful protected call completion."""

    def on_call_failed(
        self, name: str, error_kind: ErrorKind, elapsed_ms: float
    ) -> None:
        """Handle failed protected call completion."""


class LoggingBreakerListener(BreakerListener):
    """Listener that writes breaker transitions as structured log events."""

    def __init__(self, logger: StructuredLogger | None = None) -> None:
        self._logger = structlog.stdlib.get_logger(__name__) if logger is None else logger

    def on_state_change(
        self, name: str, old: BreakerState, new: BreakerState
    ) -> None:
        event = _TRANSITION_EVENTS[new]
        fields: dict[str, object] = {
            "breaker": name,
            "from_state": str(old),
            "to_state": str(new),
        }
        if new == BreakerState.OPEN:
            log_warning(self._logger, event, **fields)
            return
        log_info(self._logger, event, **fields)

    def on_call_rejected(self, name: str) -> None:
        log_info(self._logger, "circuit_call_rejected", breaker=name)

    def on_call_succeeded(self, name: str, elapsed_ms: float) -> None:
        """No-op for this listener."""
        _ = (name, elapsed_ms)

    def on_call_failed(
        self, name: str, error_kind: ErrorKind, elapsed_ms: float
    ) -> None:
        """No-op for this listener."""
        _ = (name, error_kind, elapsed_ms)
