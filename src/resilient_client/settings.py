from __future__ import annotations

from pydantic import ValidationInfo, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from resilient_client.circuit_breaker import BreakerConfig
from resilient_client.logging import get_log_level_value
from resilient_client.retry import RetryConfig


class _ServiceSettings(BaseSettings):
    """Listener address and log level shared by both services."""

    model_config = SettingsConfigDict(case_sensitive=False)

    host: str = "0.0.0.0"
    port: int
    log_level: str = "INFO"

    @field_validator("log_level", mode="after")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        get_log_level_value(value)
        return value.strip().upper()

    @field_validator("port", mode="after")
    @classmethod
    def _validate_port(cls, value: int) -> int:
        if not 0 < value < 65536:
            raise ValueError("port must be in 1..65535")
        return value


class ClientSettings(_ServiceSettings):
    """Settings for the resilient client service."""

    port: int = 5000
    backend_host: str = "backend"
    backend_port: int = 5001
    backend_path: str = "/data"
    timeout_ms: float = 3000.0
    error_threshold_percent: float = 50.0
    reset_timeout_ms: float = 5000.0
    breaker_minimum_calls: int = 5
    breaker_window_size: int = 10
    retry_max_attempts: int = 5
    retry_base_delay_ms: float = 500.0
    retry_jitter_ms: float = 200.0
    loop_default_count: int = 10
    loop_max_count: int = 1000

    @field_validator("backend_host", mode="before")
    @classmethod
    def _validate_required_string(cls, value: object, info: ValidationInfo) -> object:
        if not isinstance(value, str):
            return value
        normalized = value.strip()
        if not normalized:
            raise ValueError(f"{info.field_name} must be non-empty")
        return normalized

    @field_validator("backend_path", mode="after")
    @classmethod
    def _normalize_backend_path(cls, value: str) -> str:
        return value if value.startswith("/") else f"/{value}"

    @model_validator(mode="after")
    def _validate_client_settings(self) -> ClientSettings:
        if self.loop_default_count < 0:
            raise ValueError("loop_default_count must be >= 0")
        if self.loop_max_count < self.loop_default_count:
            raise ValueError("loop_max_count must be >= loop_default_count")
        # Surface breaker/retry bounds as validation errors at startup.
        self.breaker_config()
        self.retry_config()
        return self

    @property
    def backend_url(self) -> str:
        return f"http://{self.backend_host}:{self.backend_port}{self.backend_path}"

    def breaker_config(self) -> BreakerConfig:
        """Build the breaker configuration from these settings."""
        return BreakerConfig(
            timeout_ms=self.timeout_ms,
            error_threshold_percent=self.error_threshold_percent,
            reset_timeout_ms=self.reset_timeout_ms,
            minimum_calls=self.breaker_minimum_calls,
            window_size=self.breaker_window_size,
        )

    def retry_config(self) -> RetryConfig:
        """Build the retry configuration from these settings."""
        return RetryConfig(
            max_attempts=self.retry_max_attempts,
            base_delay_ms=self.retry_base_delay_ms,
            jitter_ms=self.retry_jitter_ms,
            timeout_ms=self.timeout_ms,
        )


class SimulatorSettings(_ServiceSettings):
    """Settings for the unreliable upstream simulator."""

    port: int = 5001
    error_rate: float = 0.1
    slow_rate: float = 0.2
    slow_seconds_min: float = 2.0
    slow_seconds_max: float = 6.0

    @model_validator(mode="after")
    def _validate_simulator_settings(self) -> SimulatorSettings:
        for name in ("error_rate", "slow_rate"):
            if not 0.0 <= getattr(self, name) <= 1.0:
                raise ValueError(f"{name} must be in [0, 1]")
        if self.error_rate + self.slow_rate > 1.0:
            raise ValueError("error_rate + slow_rate must be <= 1")
        if self.slow_seconds_min < 0:
            raise ValueError("slow_seconds_min must be >= 0")
        if self.slow_seconds_max < self.slow_seconds_min:
            raise ValueError("slow_seconds_max must be >= slow_seconds_min")
        return self
