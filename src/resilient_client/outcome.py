"""Call outcome records and the deadline-bounded invoke helper."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Literal

from resilient_client.clock import Clock
from resilient_client.errors import ErrorKind, UpstreamError


@dataclass(frozen=True)
class UpstreamReply:
    """Successful reply produced by one remote operation."""

    status_code: int
    payload: object


RemoteOperation = Callable[[float], Awaitable[UpstreamReply]]


@dataclass(frozen=True)
class Success:
    """Outcome of an attempt that returned a payload.

    Attributes:
        payload: Decoded upstream payload.
        status_code: HTTP status reported by the upstream.
        elapsed_ms: Time spent on the attempt in milliseconds.
    """

    payload: object
    status_code: int
    elapsed_ms: float
    ok: Literal[True] = True


@dataclass(frozen=True)
class Failure:
    """Outcome of an attempt that did not produce a payload.

    Attributes:
        error_kind: Structured failure kind.
        elapsed_ms: Time spent before the failure was known, in milliseconds.
        status_code: Upstream HTTP status for ``UPSTREAM_STATUS`` failures.
        detail: Human-readable diagnostic message.
        attempts: Attempts consumed, set for ``RETRIES_EXHAUSTED``.
        last_error: Kind of the last raw failure behind ``RETRIES_EXHAUSTED``.
    """

    error_kind: ErrorKind
    elapsed_ms: float
    status_code: int | None = None
    detail: str | None = None
    attempts: int | None = None
    last_error: ErrorKind | None = None
    ok: Literal[False] = False


CallOutcome = Success | Failure


@dataclass(frozen=True)
class RetryAttempt:
    """One attempt of a retry sequence."""

    attempt_number: int
    delay_before_ms: float
    outcome: CallOutcome


def elapsed_ms(clock: Clock, start: float) -> float:
    """Return milliseconds elapsed on ``clock`` since ``start``."""
    return max(clock.now() - start, 0.0) * 1000.0


async def invoke(
    operation: RemoteOperation,
    *,
    timeout: float,
    clock: Clock,
) -> CallOutcome:
    """Run one remote operation under a deadline and capture its outcome.

    Args:
        operation: Remote operation to call.
        timeout: Per-call deadline in seconds, also passed to ``operation``.
        clock: Clock used for elapsed-time measurement.

    Returns:
        ``Success`` with the reply, or ``Failure`` describing why the call
        did not succeed. Operation failures are never raised.
    """
    start = clock.now()
    try:
        async with asyncio.timeout(timeout):
            reply = await operation(timeout)
    except TimeoutError:
        return Failure(
            error_kind=ErrorKind.TIMEOUT,
            elapsed_ms=elapsed_ms(clock, start),
            detail=f"timeout of {timeout * 1000:g}ms exceeded",
        )
    except UpstreamError as exc:
        return Failure(
            error_kind=exc.kind,
            elapsed_ms=elapsed_ms(clock, start),
            status_code=exc.http_status,
            detail=str(exc),
        )
    except Exception as exc:
        return Failure(
            error_kind=ErrorKind.REQUEST_FAILED,
            elapsed_ms=elapsed_ms(clock, start),
            detail=f"{exc.__class__.__name__}: {exc}",
        )
    return Success(
        payload=reply.payload,
        status_code=reply.status_code,
        elapsed_ms=elapsed_ms(clock, start),
    )
