"""Async circuit breaker around one remote operation.

Key behavior notes:
  - ``CLOSED`` keeps a count-based rolling window of recent results. The
    circuit opens once the window holds at least ``minimum_calls`` results and
    the failure rate reaches ``error_threshold_percent``.
  - ``OPEN`` rejects calls without touching the upstream. The reset timeout is
    a deadline checked by the next call; that call becomes the half-open probe.
  - At most one half-open probe is in flight per ``CircuitBreaker`` instance.
    Concurrent callers are rejected until the probe settles.
  - ``fire()`` always returns a ``CallOutcome``; rejections are ``Failure``
    values of kind ``CIRCUIT_OPEN``.
"""

from resilient_client.circuit_breaker.breaker import BreakerConfig, CircuitBreaker
from resilient_client.circuit_breaker.metrics import (
    BreakerListener,
    LoggingBreakerListener,
)
from resilient_client.circuit_breaker.state import (
    BreakerSnapshot,
    BreakerState,
    RollingStats,
)

__all__ = [
    "BreakerConfig",
    "BreakerListener",
    "BreakerSnapshot",
    "BreakerState",
    "CircuitBreaker",
    "LoggingBreakerListener",
    "RollingStats",
]
