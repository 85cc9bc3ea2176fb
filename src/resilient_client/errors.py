"""Error taxonomy for upstream calls."""

from enum import StrEnum


class ErrorKind(StrEnum):
    """Structured failure kinds reported to callers."""

    TIMEOUT = "timeout"
    CONNECTION_ERROR = "connection_error"
    UPSTREAM_STATUS = "upstream_status"
    CIRCUIT_OPEN = "circuit_open"
    RETRIES_EXHAUSTED = "retries_exhausted"
    REQUEST_FAILED = "request_failed"


class UpstreamError(RuntimeError):
    """Base exception for one failed upstream call."""

    kind: ErrorKind = ErrorKind.REQUEST_FAILED

    def __init__(
        self,
        message: str,
        http_status: int | None = None,
        response_body: str | None = None,
    ) -> None:
        """Initialize request-error metadata.

        Args:
            message: Human-readable error message.
            http_status: Optional HTTP status observed from the upstream.
            response_body: Optional response payload text.
        """
        super().__init__(message)
        self.http_status = http_status
        self.response_body = response_body


class UpstreamTimeout(UpstreamError):
    """Raised when the upstream does not answer before the deadline."""

    kind = ErrorKind.TIMEOUT


class UpstreamConnectionError(UpstreamError):
    """Raised when the upstream cannot be reached."""

    kind = ErrorKind.CONNECTION_ERROR


class UpstreamStatusError(UpstreamError):
    """Raised when the upstream answers with a non-2xx status."""

    kind = ErrorKind.UPSTREAM_STATUS

    def __init__(self, http_status: int, response_body: str | None = None) -> None:
        super().__init__(
            f"Upstream returned HTTP {http_status}.",
            http_status=http_status,
            response_body=response_body,
        )
