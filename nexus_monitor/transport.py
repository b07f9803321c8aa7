"""
Thin httpx wrapper shared by the gateway (talking to the engine) and the
client SDK (talking to the local gateway).

Every failure comes out as one of the typed errors in
:mod:`nexus_monitor.errors`, so callers never need to inspect raw httpx
exceptions.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from nexus_monitor.errors import MalformedResponse, TransportFailure, UpstreamError

logger = logging.getLogger(__name__)


class HttpClient:
    """JSON-over-HTTP requests against one base URL."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    async def request(
        self,
        method: str,
        path: str,
        body: Any | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Send a request and return the decoded JSON body.

        Raises:
            TransportFailure: connection error, timeout or undecodable body.
            UpstreamError: the peer answered with a non-2xx status.
            MalformedResponse: a 2xx body that is not JSON.
        """
        try:
            response = await self._client.request(
                method=method,
                url=path,
                json=body,
                params=params,
            )
        except httpx.TimeoutException as e:
            raise TransportFailure(f"Request to {self.base_url}{path} timed out") from e
        except httpx.RequestError as e:
            raise TransportFailure(f"Could not reach {self.base_url}: {e}") from e

        # Build the error message from a known field only; never echo the
        # whole body back to the caller.
        if not 200 <= response.status_code < 300:
            try:
                err_data = response.json()
                err_msg = err_data.get("error", err_data.get("message", "Request failed"))
            except Exception:
                err_msg = "Request failed"
            raise UpstreamError(
                f"Request failed ({response.status_code}): {err_msg}",
                request=response.request,
                response=response,
            )

        if response.status_code == 204 or not response.content:
            return {}

        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning("Non-JSON response from %s%s", self.base_url, path)
            raise MalformedResponse(f"Invalid JSON from {self.base_url}{path}") from e

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, body: Any | None = None, params: dict[str, Any] | None = None) -> Any:
        return await self.request("POST", path, body=body, params=params)

    async def close(self) -> None:
        await self._client.aclose()
