"""Process entrypoints for the client service and the upstream simulator."""

from __future__ import annotations

import uvicorn

from resilient_client.app import create_app
from resilient_client.logging import configure_structlog, get_log_level_value
from resilient_client.settings import ClientSettings, SimulatorSettings
from resilient_client.simulator import create_simulator_app


def run_client() -> None:
    """Run the resilient client service until interrupted."""
    settings = ClientSettings()
    configure_structlog(log_level=settings.log_level, service="resilient-client")
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=get_log_level_value(settings.log_level),
        log_config=None,
    )


def run_simulator() -> None:
    """Run the unreliable upstream simulator until interrupted."""
    settings = SimulatorSettings()
    configure_structlog(log_level=settings.log_level, service="simulator")
    uvicorn.run(
        create_simulator_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=get_log_level_value(settings.log_level),
        log_config=None,
    )


if __name__ == "__main__":
    run_client()
