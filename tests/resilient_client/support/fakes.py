from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass, field

from resilient_client.circuit_breaker import BreakerState
from resilient_client.errors import ErrorKind, UpstreamStatusError
from resilient_client.outcome import UpstreamReply

OK_REPLY = UpstreamReply(status_code=200, payload={"message": "ok"})


class FakeClock:
    """Controllable clock; ``sleep`` records the delay and advances time."""

    def __init__(self, start: float = 1000.0) -> None:
        self._now = start
        self.sleeps: list[float] = []

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self._now += seconds
        await asyncio.sleep(0)


class ScriptedOperation:
    """Remote operation replaying a script of replies and exceptions.

    Once the script is exhausted, ``default`` is used for every call.
    """

    def __init__(
        self,
        script: Iterable[UpstreamReply | Exception] = (),
        *,
        default: UpstreamReply | Exception = OK_REPLY,
    ) -> None:
        self.script = list(script)
        self.default = default
        self.calls = 0
        self.timeouts: list[float] = []

    async def __call__(self, timeout: float) -> UpstreamReply:
        self.calls += 1
        self.timeouts.append(timeout)
        step = self.script.pop(0) if self.script else self.default
        if isinstance(step, Exception):
            raise step
        return step


class GatedOperation:
    """Remote operation that blocks until released."""

    def __init__(self, result: UpstreamReply | Exception = OK_REPLY) -> None:
        self.result = result
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.calls = 0

    async def __call__(self, timeout: float) -> UpstreamReply:
        del timeout
        self.calls += 1
        self.started.set()
        await self.release.wait()
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


def failing(status: int = 500) -> UpstreamStatusError:
    return UpstreamStatusError(status, response_body='{"error": "boom"}')


@dataclass(slots=True)
class RecordingListener:
    events: list[tuple[str, object]] = field(default_factory=list)

    def on_state_change(self, name: str, old: BreakerState, new: BreakerState) -> None:
        self.events.append(("state", (old, new)))

    def on_call_rejected(self, name: str) -> None:
        self.events.append(("rejected", name))

    def on_call_succeeded(self, name: str, elapsed_ms: float) -> None:
        self.events.append(("succeeded", name))

    def on_call_failed(self, name: str, error_kind: ErrorKind, elapsed_ms: float) -> None:
        self.events.append(("failed", error_kind))

    def transitions(self) -> list[object]:
        return [payload for kind, payload in self.events if kind == "state"]


class ExplodingListener:
    def on_state_change(self, name: str, old: BreakerState, new: BreakerState) -> None:
        raise RuntimeError("boom")

    def on_call_rejected(self, name: str) -> None:
        raise RuntimeError("boom")

    def on_call_succeeded(self, name: str, elapsed_ms: float) -> None:
        raise RuntimeError("boom")

    def on_call_failed(self, name: str, error_kind: ErrorKind, elapsed_ms: float) -> None:
        raise RuntimeError("boom")


class FakeLogger:
    """Capture structured logger events for assertions."""

    def __init__(self) -> None:
        self.events: list[str] = []
        self.calls: list[tuple[str, str, dict[str, object]]] = []

    def _record(self, level: str, event: str, **kwargs: object) -> None:
        self.events.append(event)
        self.calls.append((level, event, kwargs))

    def info(self, event: str, **kwargs: object) -> None:
        self._record("info", event, **kwargs)

    def warning(self, event: str, **kwargs: object) -> None:
        self._record("warning", event, **kwargs)

    def error(self, event: str, **kwargs: object) -> None:
        self._record("error", event, **kwargs)

    def exception(self, event: str, **kwargs: object) -> None:
        self._record("exception", event, **kwargs)
