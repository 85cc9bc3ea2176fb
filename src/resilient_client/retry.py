from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_result,
    stop_after_attempt,
    wait_exponential_jitter,
)

from resilient_client.clock import Clock, MonotonicClock
from resilient_client.errors import ErrorKind
from resilient_client.logging import StructuredLogger, log_error, log_warning
from resilient_client.outcome import (
    CallOutcome,
    Failure,
    RemoteOperation,
    RetryAttempt,
    elapsed_ms,
    invoke,
)

_logger = structlog.stdlib.get_logger(__name__)


@dataclass(frozen=True)
class RetryConfig:
    """Configuration for retry attempt count, backoff and per-call timeout.

    Attributes:
        max_attempts: Total attempts, including the first one.
        base_delay_ms: Delay before the second attempt, doubled per attempt.
        jitter_ms: Upper bound of the uniform jitter added to each delay.
        timeout_ms: Deadline applied to each attempt.
    """

    max_attempts: int = 5
    base_delay_ms: float = 500.0
    jitter_ms: float = 200.0
    timeout_ms: float = 3000.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay_ms < 0:
            raise ValueError("base_delay_ms must be >= 0")
        if self.jitter_ms < 0:
            raise ValueError("jitter_ms must be >= 0")
        if self.timeout_ms <= 0:
            raise ValueError("timeout_ms must be > 0")

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0


@dataclass(frozen=True)
class RetryResult:
    """Final outcome of one retry sequence plus its per-attempt records."""

    outcome: CallOutcome
    attempts: tuple[RetryAttempt, ...]

    @property
    def attempts_used(self) -> int:
        return len(self.attempts)


def _is_failure(outcome: CallOutcome) -> bool:
    return not outcome.ok


def build_exponential_jitter_retrying(
    *,
    config: RetryConfig,
    sleep: Callable[[float], Awaitable[None]],
    before_sleep: Callable[[RetryCallState], None] | None = None,
    retry_error_callback: Callable[[RetryCallState], CallOutcome] | None = None,
) -> AsyncRetrying:
    """Build an ``AsyncRetrying`` that retries failed outcomes.

    The wait before attempt ``n + 1`` is
    ``base_delay * 2 ** (n - 1) + uniform(0, jitter)``.
    """
    wait = wait_exponential_jitter(
        initial=config.base_delay_ms / 1000.0,
        jitter=config.jitter_ms / 1000.0,
    )
    return AsyncRetrying(
        retry=retry_if_result(_is_failure),
        wait=wait,
        stop=stop_after_attempt(config.max_attempts),
        sleep=sleep,
        before_sleep=before_sleep,
        retry_error_callback=retry_error_callback,
    )


class RetryPolicy:
    """Bounded retries with exponential backoff and additive jitter."""

    def __init__(
        self,
        operation: RemoteOperation,
        *,
        config: RetryConfig | None = None,
        clock: Clock | None = None,
        logger: StructuredLogger | None = None,
    ) -> None:
        """Build a retry policy around one remote operation.

        Args:
            operation: Remote operation to attempt.
            config: Retry behavior configuration. Defaults to ``RetryConfig()``.
            clock: Time source for elapsed time and backoff sleeps.
            logger: Structured logger for attempt failures.
        """
        self._operation = operation
        self.config = RetryConfig() if config is None else config
        self._clock = MonotonicClock() if clock is None else clock
        self._logger = _logger if logger is None else logger

    async def execute(self) -> RetryResult:
        """Attempt the operation until it succeeds or attempts run out.

        Returns:
            The first ``Success``, or a ``Failure`` of kind
            ``RETRIES_EXHAUSTED`` carrying the last raw failure kind.
        """
        start = self._clock.now()
        attempts: list[RetryAttempt] = []
        delay_before_ms = 0.0

        async def _attempt() -> CallOutcome:
            outcome = await invoke(
                self._operation,
                timeout=self.config.timeout_seconds,
                clock=self._clock,
            )
            attempts.append(
                RetryAttempt(
                    attempt_number=len(attempts) + 1,
                    delay_before_ms=delay_before_ms,
                    outcome=outcome,
                )
            )
            return outcome

        def _before_sleep(state: RetryCallState) -> None:
            nonlocal delay_before_ms
            next_action = state.next_action
            delay = 0.0 if next_action is None else next_action.sleep
            delay_before_ms = delay * 1000.0
            failure = attempts[-1].outcome
            assert isinstance(failure, Failure)
            log_warning(
                self._logger,
                "retry_attempt_failed",
                attempt=state.attempt_number,
                error_kind=str(failure.error_kind),
                detail=failure.detail,
                retry_in_ms=round(delay_before_ms),
            )

        def _exhausted(state: RetryCallState) -> CallOutcome:
            last = attempts[-1].outcome
            assert isinstance(last, Failure)
            log_error(
                self._logger,
                "retries_exhausted",
                attempts=state.attempt_number,
                last_error=str(last.error_kind),
            )
            return Failure(
                error_kind=ErrorKind.RETRIES_EXHAUSTED,
                elapsed_ms=elapsed_ms(self._clock, start),
                status_code=last.status_code,
                detail=f"Failed after {state.attempt_number} attempts: "
                f"{last.detail or last.error_kind}",
                attempts=state.attempt_number,
                last_error=last.error_kind,
            )

        retrying = build_exponential_jitter_retrying(
            config=self.config,
            sleep=self._clock.sleep,
            before_sleep=_before_sleep,
            retry_error_callback=_exhausted,
        )
        outcome = await retrying(_attempt)
        return RetryResult(outcome=outcome, attempts=tuple(attempts))
