from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from contextlib import suppress
from typing import Protocol


class Clock(Protocol):
    """Time source used for elapsed-time measurement and delays."""

    def now(self) -> float:
        """Return a monotonic timestamp in seconds."""

    async def sleep(self, seconds: float) -> None:
        """Suspend the calling task for ``seconds``."""


def build_interruptible_sleep(
    stop_event: asyncio.Event,
) -> Callable[[float], Awaitable[None]]:
    """Build an async sleep that exits early when shutdown is requested."""

    async def _interruptible_sleep(delay: float) -> None:
        if stop_event.is_set():
            return

        bounded_delay = max(delay, 0.0)
        with suppress(TimeoutError):
            await asyncio.wait_for(stop_event.wait(), timeout=bounded_delay)

    return _interruptible_sleep


class MonotonicClock:
    """Wall-clock implementation backed by ``time.monotonic``.

    When a ``stop_event`` is given, sleeps return as soon as it is set so
    that backoff delays never hold up process shutdown.
    """

    def __init__(self, *, stop_event: asyncio.Event | None = None) -> None:
        self._sleep: Callable[[float], Awaitable[None]] = (
            asyncio.sleep if stop_event is None else build_interruptible_sleep(stop_event)
        )

    def now(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await self._sleep(max(seconds, 0.0))
