"""
Local HTTP surface mirrored for the dashboard UI.

    GET  /api/monitoring?endpoint=<name>&demo=<bool>
    POST /api/monitoring?endpoint=<name>
    POST /api/monitoring/acknowledge/{alert_id}
    GET  /api/demo-alerts          (development builds only)
    POST /api/demo-alerts          (development builds only)

Run with ``nexus-monitor`` or ``python -m nexus_monitor.server``.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse

from nexus_monitor.config import load_config
from nexus_monitor.demo import generate_demo_alerts
from nexus_monitor.gateway import GatewayProxy, GatewayResponse
from nexus_monitor.types import Alert, GatewayConfig

logger = logging.getLogger(__name__)

NO_STORE = {"Cache-Control": "no-store, max-age=0"}


def _json(response: GatewayResponse, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(response.body, status_code=response.status_code, headers=headers)


async def _read_payload(request: Request) -> Any | None:
    raw = await request.body()
    if not raw:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        logger.debug("Ignoring non-JSON write payload")
        return None


def create_app(
    config: GatewayConfig | None = None,
    proxy: GatewayProxy | None = None,
) -> FastAPI:
    """Build the app. A supplied ``proxy`` is used as-is and closed on shutdown."""
    config = config or (proxy.config if proxy is not None else load_config())

    async def _demo_source() -> list[Alert]:
        return generate_demo_alerts()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        gateway = proxy or GatewayProxy(config, demo_source=_demo_source)
        app.state.proxy = gateway
        logger.info(
            "Gateway started (engine=%s, mode=%s, demo=%s)",
            config.engine_url,
            config.build_mode,
            config.demo_mode,
        )
        try:
            yield
        finally:
            await gateway.close()
            logger.info("Gateway stopped")

    app = FastAPI(title="Nexus Monitoring Gateway", lifespan=lifespan)

    # ------------------------ MONITORING ------------------------

    @app.get("/api/monitoring")
    async def monitoring_read(
        request: Request,
        endpoint: str = Query("stats"),
        demo: bool = Query(False),
    ) -> JSONResponse:
        response = await request.app.state.proxy.fetch(endpoint, demo=demo)
        return _json(response, headers=NO_STORE)

    @app.post("/api/monitoring")
    async def monitoring_write(request: Request, endpoint: str = Query("")) -> JSONResponse:
        payload = await _read_payload(request)
        response = await request.app.state.proxy.forward(endpoint, payload)
        return _json(response)

    @app.post("/api/monitoring/acknowledge/{alert_id}")
    async def acknowledge_alert(request: Request, alert_id: str) -> JSONResponse:
        response = await request.app.state.proxy.acknowledge(alert_id)
        return _json(response)

    # ------------------------ DEMO ------------------------

    def _demo_forbidden() -> JSONResponse:
        return JSONResponse(
            {"error": "Demo alerts only available in development mode"},
            status_code=403,
        )

    @app.get("/api/demo-alerts")
    async def demo_alerts_list() -> JSONResponse:
        if config.is_production:
            return _demo_forbidden()
        alerts = generate_demo_alerts()
        return JSONResponse([a.model_dump(mode="json") for a in alerts])

    @app.post("/api/demo-alerts")
    async def demo_alerts_generate() -> JSONResponse:
        if config.is_production:
            return _demo_forbidden()
        alerts = generate_demo_alerts()
        return JSONResponse({
            "success": True,
            "message": "Demo alerts generated",
            "count": len(alerts),
            "alerts": [a.model_dump(mode="json") for a in alerts],
        })

    return app


def main() -> None:
    """Console entry point: serve the gateway with uvicorn."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = load_config()
    app = create_app(config)
    logger.info("Dashboard gateway on http://%s:%d", config.host, config.port)
    uvicorn.run(app, host=config.host, port=config.port, log_level="info")


if __name__ == "__main__":
    main()
