"""FastAPI transport for the resilient client.

Routes:
- /health - Liveness probe
- /fetch, /loop - Direct calls to the upstream
- /fetchBreaker, /loopBreaker - Calls through the circuit breaker
- /fetchRetry, /loopRetry - Calls through the retry policy

NOTE: Do NOT add `from __future__ import annotations` to this file.
PEP 563 breaks FastAPI's runtime introspection for parameter sources.
"""

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

import httpx
import structlog
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from resilient_client.circuit_breaker import CircuitBreaker, LoggingBreakerListener
from resilient_client.clock import MonotonicClock
from resilient_client.logging import log_info
from resilient_client.orchestrator import CallReport, Mode, Orchestrator
from resilient_client.outcome import CallOutcome, RetryAttempt
from resilient_client.remote import HttpRemoteOperation
from resilient_client.retry import RetryPolicy
from resilient_client.settings import ClientSettings

_logger = structlog.stdlib.get_logger(__name__)

UPSTREAM_FAILURE_STATUS = 502

_PATHS: dict[Mode, tuple[str, str]] = {
    Mode.DIRECT: ("/fetch", "/loop"),
    Mode.BREAKER: ("/fetchBreaker", "/loopBreaker"),
    Mode.RETRY: ("/fetchRetry", "/loopRetry"),
}


def _round_ms(value: float) -> float:
    return round(value, 1)


def _outcome_fields(outcome: CallOutcome) -> dict[str, Any]:
    if outcome.ok:
        return {"status": outcome.status_code}
    fields: dict[str, Any] = {"error": str(outcome.error_kind)}
    if outcome.detail is not None:
        fields["detail"] = outcome.detail
    if outcome.status_code is not None:
        fields["status_code"] = outcome.status_code
    if outcome.last_error is not None:
        fields["last_error"] = str(outcome.last_error)
    return fields


def _attempt_fields(attempt: RetryAttempt) -> dict[str, Any]:
    return {
        "attempt": attempt.attempt_number,
        "delay_before_ms": _round_ms(attempt.delay_before_ms),
        "elapsed_ms": _round_ms(attempt.outcome.elapsed_ms),
        **_outcome_fields(attempt.outcome),
    }


def _report_fields(report: CallReport) -> dict[str, Any]:
    fields: dict[str, Any] = {}
    if report.index is not None:
        fields["i"] = report.index
    if report.attempts_used is not None:
        fields["attempt"] = report.attempts_used
    fields.update(_outcome_fields(report.outcome))
    fields["elapsed_ms"] = _round_ms(report.elapsed_ms)
    if report.mode == Mode.RETRY:
        fields["attempts"] = [_attempt_fields(attempt) for attempt in report.attempts]
    return fields


def render_single(report: CallReport, *, backend_url: str) -> JSONResponse:
    """Shape one call report as the single-call JSON response."""
    body: dict[str, Any] = {"mode": str(report.mode), "backend_url": backend_url}
    body.update(_report_fields(report))
    outcome = report.outcome
    if outcome.ok:
        body["payload"] = outcome.payload
        return JSONResponse(body, status_code=outcome.status_code)
    return JSONResponse(body, status_code=UPSTREAM_FAILURE_STATUS)


def render_batch(
    reports: tuple[CallReport, ...],
    *,
    mode: Mode,
    backend_url: str,
) -> dict[str, Any]:
    """Shape a batch of call reports as the loop JSON response."""
    return {
        "mode": str(mode),
        "count": len(reports),
        "backend_url": backend_url,
        "results": [_report_fields(report) for report in reports],
    }


def build_orchestrator(
    settings: ClientSettings,
    *,
    client: httpx.AsyncClient,
    stop_event: asyncio.Event,
) -> Orchestrator:
    """Wire the upstream operation, breaker and retry policy for one process."""
    clock = MonotonicClock(stop_event=stop_event)
    operation = HttpRemoteOperation(client=client, url=settings.backend_url)
    breaker = CircuitBreaker(
        operation,
        name="backend",
        config=settings.breaker_config(),
        clock=clock,
        listeners=[LoggingBreakerListener()],
    )
    retry_policy = RetryPolicy(
        operation,
        config=settings.retry_config(),
        clock=clock,
    )
    return Orchestrator(
        operation=operation,
        breaker=breaker,
        retry_policy=retry_policy,
        timeout_ms=settings.timeout_ms,
        clock=clock,
    )


def _get_orchestrator(request: Request) -> Orchestrator:
    orchestrator = request.app.state.orchestrator
    if orchestrator is None:
        raise RuntimeError("Orchestrator not initialized")
    return orchestrator


def create_app(
    settings: ClientSettings | None = None,
    *,
    orchestrator: Orchestrator | None = None,
) -> FastAPI:
    """Create the FastAPI application for the resilient client service.

    Args:
        settings: Service settings. Defaults to ``ClientSettings()`` loaded
            from the environment.
        orchestrator: Pre-built orchestrator. When omitted, the lifespan
            builds one around a shared ``httpx.AsyncClient``.
    """
    resolved = ClientSettings() if settings is None else settings
    backend_url = resolved.backend_url

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if app.state.orchestrator is not None:
            yield
            return

        stop_event = asyncio.Event()
        async with httpx.AsyncClient() as client:
            app.state.orchestrator = build_orchestrator(
                resolved,
                client=client,
                stop_event=stop_event,
            )
            log_info(_logger, "client_started", backend_url=backend_url)
            try:
                yield
            finally:
                stop_event.set()
                app.state.orchestrator = None
                log_info(_logger, "client_stopped", backend_url=backend_url)

    app = FastAPI(title="resilient-client", lifespan=lifespan)
    app.state.orchestrator = orchestrator

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    def _single_handler(mode: Mode) -> Callable[[Request], Awaitable[JSONResponse]]:
        async def handler(request: Request) -> JSONResponse:
            report = await _get_orchestrator(request).call_once(mode)
            return render_single(report, backend_url=backend_url)

        return handler

    def _batch_handler(
        mode: Mode,
    ) -> Callable[..., Awaitable[dict[str, Any]]]:
        async def handler(
            request: Request,
            n: int | None = Query(default=None, ge=0),
        ) -> dict[str, Any]:
            count = resolved.loop_default_count if n is None else n
            if count > resolved.loop_max_count:
                raise HTTPException(
                    status_code=400,
                    detail=f"n must be <= {resolved.loop_max_count}",
                )
            reports = await _get_orchestrator(request).call_batch(mode, count)
            return render_batch(reports, mode=mode, backend_url=backend_url)

        return handler

    for mode, (single_path, batch_path) in _PATHS.items():
        app.add_api_route(single_path, _single_handler(mode), methods=["GET"])
        app.add_api_route(batch_path, _batch_handler(mode), methods=["GET"])

    return app
