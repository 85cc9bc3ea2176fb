"""HTTP remote operation against the upstream data endpoint."""

from __future__ import annotations

import httpx

from resilient_client.errors import (
    UpstreamConnectionError,
    UpstreamStatusError,
    UpstreamTimeout,
)
from resilient_client.outcome import UpstreamReply


class HttpRemoteOperation:
    """Perform one ``GET`` against the upstream per invocation."""

    def __init__(self, *, client: httpx.AsyncClient, url: str) -> None:
        """Create an operation bound to a shared client and upstream URL.

        Args:
            client: Shared async HTTP client.
            url: Absolute upstream URL to fetch.
        """
        self._client = client
        self.url = url

    async def __call__(self, timeout: float) -> UpstreamReply:
        try:
            response = await self._client.get(self.url, timeout=timeout)
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise UpstreamTimeout(str(exc) or exc.__class__.__name__) from exc
        except httpx.HTTPStatusError as exc:
            raise UpstreamStatusError(
                exc.response.status_code,
                response_body=exc.response.text,
            ) from exc
        except httpx.RequestError as exc:
            raise UpstreamConnectionError(
                str(exc) or exc.__class__.__name__
            ) from exc

        return UpstreamReply(
            status_code=response.status_code,
            payload=self._parse_payload(response),
        )

    @staticmethod
    def _parse_payload(response: httpx.Response) -> object:
        try:
            return response.json()
        except ValueError:
            return response.text
