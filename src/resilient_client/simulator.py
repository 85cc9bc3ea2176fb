"""Unreliable upstream simulator.

Serves ``/data`` with a configurable chance of an HTTP 500 and a configurable
chance of a slow response, so the client strategies have something to fight.

NOTE: Do NOT add `from __future__ import annotations` to this file.
PEP 563 breaks FastAPI's runtime introspection for parameter sources.
"""

import asyncio
import random
from collections.abc import Awaitable, Callable
from enum import StrEnum

import structlog
from fastapi import FastAPI
from fastapi.responses import JSONResponse

from resilient_client.logging import log_info
from resilient_client.settings import SimulatorSettings

_logger = structlog.stdlib.get_logger(__name__)

SIMULATED_ERROR_BODY = {"error": "Internal Server Error (simulated)"}
DATA_BODY = {
    "message": "Hello from Backend!",
    "note": "This endpoint randomly delays or fails for resilience testing",
}


class Scenario(StrEnum):
    """Behavior picked for one ``/data`` request."""

    NORMAL = "normal"
    ERROR = "error"
    SLOW = "slow"


def pick_scenario(draw: float, *, error_rate: float, slow_rate: float) -> Scenario:
    """Map a uniform draw in ``[0, 1)`` to a scenario."""
    if draw < error_rate:
        return Scenario.ERROR
    if draw < error_rate + slow_rate:
        return Scenario.SLOW
    return Scenario.NORMAL


def create_simulator_app(
    settings: SimulatorSettings | None = None,
    *,
    rng: random.Random | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> FastAPI:
    """Create the simulator FastAPI application.

    Args:
        settings: Simulator settings. Defaults to ``SimulatorSettings()``.
        rng: Random source for scenario and delay draws.
        sleep: Awaitable sleep used for slow responses.
    """
    resolved = SimulatorSettings() if settings is None else settings
    source = random.Random() if rng is None else rng

    app = FastAPI(title="resilient-client-simulator")

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/data")
    async def data() -> JSONResponse:
        scenario = pick_scenario(
            source.random(),
            error_rate=resolved.error_rate,
            slow_rate=resolved.slow_rate,
        )
        if scenario == Scenario.ERROR:
            log_info(_logger, "simulated_error")
            return JSONResponse(SIMULATED_ERROR_BODY, status_code=500)
        if scenario == Scenario.SLOW:
            delay = source.uniform(resolved.slow_seconds_min, resolved.slow_seconds_max)
            log_info(_logger, "simulated_delay", delay_seconds=round(delay, 3))
            await sleep(delay)
        return JSONResponse(DATA_BODY)

    return app
