"""
Gateway proxy between the dashboard and the detection engine.

Reads are forwarded to ``<engine>/api/<endpoint>`` without caching and
always produce a JSON answer, even when the engine is down:

- ``stats`` degrades to a "Not connected" record,
- ``detectors`` degrades to the four known detectors with zero counts,
- ``alerts`` / ``alerts/unacknowledged`` fall back to demo alerts, but
  only outside production,
- anything else becomes an error body carrying the upstream status.

Writes are forwarded as-is and never synthesized.

Usage::

    proxy = GatewayProxy(GatewayConfig(engine_url="http://localhost:8080"))
    response = await proxy.fetch("stats")
    print(response.status_code, response.body)
    await proxy.close()
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable
from urllib.parse import quote as url_quote

import httpx
from pydantic import BaseModel, ValidationError

from nexus_monitor.errors import MalformedResponse, TransportFailure, UpstreamError
from nexus_monitor.transport import HttpClient
from nexus_monitor.types import (
    Alert,
    AlertsResult,
    AlertsUnavailable,
    DetectorList,
    GatewayConfig,
    MonitoringStats,
    RealAlerts,
    merge_demo_alerts,
    placeholder_detectors,
)

logger = logging.getLogger(__name__)

ALERT_ENDPOINTS = frozenset({"alerts", "alerts/unacknowledged"})
ENGINE_DOWN_HINT = "Make sure the monitoring engine is running"

# Reads with a degraded fallback; their bodies must match the model to pass through.
DEGRADABLE_SCHEMAS: dict[str, type[BaseModel]] = {
    "stats": MonitoringStats,
    "detectors": DetectorList,
}

# Returns the synthetic alert set; may raise, failures are logged.
DemoSource = Callable[[], Awaitable[list[Alert]]]


class GatewayResponse(BaseModel):
    """What the local HTTP surface sends back to its own UI."""

    status_code: int = 200
    body: Any = None
    degraded: bool = False


def normalize_endpoint(endpoint: str) -> str:
    """Strip slashes from a logical endpoint name and reject traversal."""
    cleaned = (endpoint or "").strip().strip("/")
    if not cleaned or ".." in cleaned.split("/"):
        raise ValueError(f"Invalid monitoring endpoint: {endpoint!r}")
    return cleaned


def _error_response(exc: Exception, fallback_message: str) -> GatewayResponse:
    upstream_status = exc.status_code if isinstance(exc, UpstreamError) else None
    if upstream_status is not None:
        message = f"Monitoring engine returned {upstream_status}"
    else:
        message = str(exc) or fallback_message
    return GatewayResponse(
        status_code=upstream_status or 503,
        body={
            "error": message,
            "details": ENGINE_DOWN_HINT,
            "upstream_status": upstream_status,
        },
    )


class GatewayProxy:
    """Stateless forwarder to the engine's HTTP API."""

    def __init__(
        self,
        config: GatewayConfig | None = None,
        *,
        demo_source: DemoSource | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or GatewayConfig()
        self._engine = HttpClient(
            self.config.engine_url,
            timeout=self.config.request_timeout,
            transport=transport,
        )
        self._demo_source = demo_source
        self._demo_http: HttpClient | None = None
        if demo_source is None:
            # Absolute URL requests; no base URL needed.
            self._demo_http = HttpClient("", timeout=self.config.request_timeout, transport=transport)

    @property
    def demo_allowed(self) -> bool:
        """Demo data is never served by a production build."""
        return not self.config.is_production

    # ---- Reads ----

    async def fetch(self, endpoint: str, demo: bool = False) -> GatewayResponse:
        """Forward a read of ``/api/<endpoint>`` with graceful degradation."""
        try:
            endpoint = normalize_endpoint(endpoint)
        except ValueError as e:
            return GatewayResponse(status_code=400, body={"error": str(e)})

        if endpoint in ALERT_ENDPOINTS:
            result = await self.fetch_alerts(endpoint, demo=demo)
            return self.alerts_response(result)

        try:
            data = await self._engine.get(f"/api/{endpoint}")
        except (TransportFailure, UpstreamError) as e:
            return self._degrade(endpoint, e)

        schema = DEGRADABLE_SCHEMAS.get(endpoint)
        if schema is not None:
            try:
                schema.model_validate(data)
            except ValidationError as e:
                logger.warning("Engine returned a malformed %s payload: %d error(s)", endpoint, e.error_count())
                return self._degrade(endpoint, MalformedResponse(f"Malformed {endpoint} payload"))
        return GatewayResponse(body=data)

    def _degrade(self, endpoint: str, exc: Exception) -> GatewayResponse:
        if endpoint == "stats":
            logger.warning("Engine stats unavailable (%s); serving disconnected stub", exc)
            stub = MonitoringStats.disconnected("Monitoring engine not available")
            return GatewayResponse(body=stub.model_dump(mode="json"), degraded=True)

        if endpoint == "detectors":
            logger.warning("Engine detectors unavailable (%s); serving placeholder list", exc)
            return GatewayResponse(
                body=placeholder_detectors().model_dump(mode="json"),
                degraded=True,
            )

        logger.error("Error fetching monitoring data for %s: %s", endpoint, exc)
        return _error_response(exc, "Failed to fetch monitoring data")

    async def fetch_alerts(self, endpoint: str = "alerts", demo: bool = False) -> AlertsResult:
        """Fetch an alerts endpoint as a tagged :data:`AlertsResult`.

        Outside production, demo alerts are prepended when ``demo`` (or the
        build-wide demo switch) is set, and substitute an unavailable
        result regardless of the flag.
        """
        result = await self._fetch_real_alerts(endpoint)
        if not self.demo_allowed:
            return result

        wants_demo = demo or self.config.demo_mode
        if isinstance(result, AlertsUnavailable) or wants_demo:
            demo_alerts = await self._load_demo_alerts()
            if demo_alerts is not None:
                result = merge_demo_alerts(result, demo_alerts)
        return result

    async def _fetch_real_alerts(self, endpoint: str) -> AlertsResult:
        try:
            data = await self._engine.get(f"/api/{endpoint}")
        except UpstreamError as e:
            return AlertsUnavailable(reason=str(e), upstream_status=e.status_code)
        except TransportFailure as e:
            return AlertsUnavailable(reason=str(e))

        if not isinstance(data, list):
            logger.warning("Engine returned a non-list payload for %s", endpoint)
            return AlertsUnavailable(reason=f"Unexpected payload for {endpoint}")
        try:
            return RealAlerts(alerts=[Alert.model_validate(item) for item in data])
        except ValidationError as e:
            logger.warning("Engine returned malformed alerts for %s: %s", endpoint, e)
            return AlertsUnavailable(reason=f"Malformed alerts payload for {endpoint}")

    async def _load_demo_alerts(self) -> list[Alert] | None:
        try:
            if self._demo_source is not None:
                return list(await self._demo_source())
            if self._demo_http is None:
                return None
            data = await self._demo_http.get(self.config.demo_alerts_url)
            return [Alert.model_validate(item) for item in data]
        except Exception as e:
            logger.error("Error fetching demo alerts: %s", e)
            return None

    @staticmethod
    def alerts_response(result: AlertsResult) -> GatewayResponse:
        if isinstance(result, AlertsUnavailable):
            return GatewayResponse(
                status_code=result.upstream_status or 503,
                body={
                    "error": result.reason,
                    "details": ENGINE_DOWN_HINT,
                    "upstream_status": result.upstream_status,
                },
            )
        return GatewayResponse(
            body=[alert.model_dump(mode="json") for alert in result.alerts],
            degraded=result.kind != "real",
        )

    # ---- Writes ----

    async def forward(self, endpoint: str, payload: Any | None = None) -> GatewayResponse:
        """Forward a write to ``POST /api/<endpoint>``; failures are surfaced."""
        try:
            endpoint = normalize_endpoint(endpoint)
        except ValueError as e:
            return GatewayResponse(status_code=400, body={"error": str(e)})

        try:
            data = await self._engine.post(f"/api/{endpoint}", body=payload)
        except (TransportFailure, UpstreamError) as e:
            logger.error("Error posting to monitoring engine (%s): %s", endpoint, e)
            return _error_response(e, "Failed to post to monitoring engine")
        return GatewayResponse(body=data)

    async def acknowledge(self, alert_id: str) -> GatewayResponse:
        """Forward the engine's per-alert acknowledge action."""
        return await self.forward(f"alerts/{url_quote(alert_id, safe='')}/acknowledge")

    async def close(self) -> None:
        await self._engine.close()
        if self._demo_http is not None:
            await self._demo_http.close()
