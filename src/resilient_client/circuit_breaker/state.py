"""Circuit breaker state primitives."""

from collections import deque
from dataclasses import dataclass
from enum import StrEnum


class BreakerState(StrEnum):
    """Circuit breaker state values."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class RollingStats:
    """Results of the most recent completed calls observed while ``CLOSED``.

    The window is count based: once ``window_size`` results are held, each
    new result evicts the oldest one.
    """

    def __init__(self, window_size: int) -> None:
        self._results: deque[bool] = deque(maxlen=window_size)

    def record(self, *, failed: bool) -> None:
        self._results.append(failed)

    def reset(self) -> None:
        self._results.clear()

    @property
    def calls(self) -> int:
        return len(self._results)

    @property
    def failures(self) -> int:
        return sum(self._results)

    @property
    def failure_rate(self) -> float:
        """Failure percentage in ``[0, 100]``; ``0.0`` for an empty window."""
        if not self._results:
            return 0.0
        return 100.0 * self.failures / self.calls


@dataclass(frozen=True)
class BreakerSnapshot:
    """Point-in-time view of breaker internals useful for metrics/logging.

    Attributes:
        name: Breaker name.
        state: Current breaker state.
        calls: Completed calls in the rolling window.
        failures: Failed calls in the rolling window.
        opened_at: Clock timestamp of the last entry into ``OPEN``, if open.
        probe_in_flight: Whether a half-open probe is currently running.
    """

    name: str
    state: BreakerState
    calls: int
    failures: int
    opened_at: float | None
    probe_in_flight: bool
