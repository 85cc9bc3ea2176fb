from __future__ import annotations

import pytest

from resilient_client.settings import ClientSettings, SimulatorSettings
from tests.resilient_client.support.fakes import FakeClock, FakeLogger


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep settings defaults independent of the host environment."""
    names = set(ClientSettings.model_fields) | set(SimulatorSettings.model_fields)
    for name in names:
        monkeypatch.delenv(name.upper(), raising=False)
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def fake_logger() -> FakeLogger:
    """Provide a fresh structured logger test double per test."""
    return FakeLogger()


@pytest.fixture
def fake_clock() -> FakeClock:
    """Provide a controllable clock starting at a fixed timestamp."""
    return FakeClock()
