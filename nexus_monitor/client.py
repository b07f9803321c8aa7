"""
Nexus monitoring client: async SDK for the local gateway.

Talks to the gateway's mirrored ``/api/monitoring`` endpoints with
``httpx``, keeps live views current through a :class:`PollingClient`,
and drives the acknowledgment and chain-switch flows.

Usage::

    from nexus_monitor import MonitoringClient

    client = MonitoringClient("http://localhost:3000")

    stats = client.watch_stats()
    alerts = client.watch_alerts()
    await alerts.next_update()
    view = client.alerts.summarize(AlertFilters(severity="critical"))

    await client.alerts.acknowledge("alert-123")
    await client.close()
"""

from __future__ import annotations

import logging
from typing import Any, TypeVar
from urllib.parse import quote as url_quote

import httpx
from pydantic import BaseModel, ValidationError

from nexus_monitor.acknowledgment import AcknowledgmentWorkflow
from nexus_monitor.aggregator import AlertFilters, AlertView, aggregate
from nexus_monitor.chain_switch import ChainSwitchStateMachine
from nexus_monitor.errors import MalformedResponse
from nexus_monitor.keys import (
    ALERT_HISTORY_KEY,
    ALERTS_KEY,
    CHAINS_KEY,
    CURRENT_CHAIN_KEY,
    DETECTORS_KEY,
    HEALTH_KEY,
    STATS_KEY,
    UNACKNOWLEDGED_KEY,
)
from nexus_monitor.polling import PollingClient, QueryCache, Scheduler, Subscription
from nexus_monitor.transport import HttpClient
from nexus_monitor.types import (
    AcknowledgeResult,
    Alert,
    ChainInfo,
    ChainList,
    DetectorList,
    HealthStatus,
    MonitoringStats,
    PollingIntervals,
    PollOptions,
)

logger = logging.getLogger(__name__)

MONITORING_PATH = "/api/monitoring"

M = TypeVar("M", bound=BaseModel)


def _parse(model: type[M], data: Any) -> M:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise MalformedResponse(f"Invalid {model.__name__} in response: {e.error_count()} error(s)") from e


def _parse_alerts(data: Any) -> list[Alert]:
    if not isinstance(data, list):
        raise MalformedResponse("Expected a list of alerts")
    try:
        return [Alert.model_validate(item) for item in data]
    except ValidationError as e:
        raise MalformedResponse(f"Invalid alert in response: {e.error_count()} error(s)") from e


# ============================================================
#  Sub-managers
# ============================================================


class _MonitoringManager:
    """Engine status reads."""

    def __init__(self, http: HttpClient) -> None:
        self._http = http

    async def get_stats(self) -> MonitoringStats:
        data = await self._http.get(MONITORING_PATH, params={"endpoint": "stats"})
        return _parse(MonitoringStats, data)

    async def get_health(self) -> HealthStatus:
        data = await self._http.get(MONITORING_PATH, params={"endpoint": "health"})
        return _parse(HealthStatus, data)

    async def get_detectors(self) -> DetectorList:
        data = await self._http.get(MONITORING_PATH, params={"endpoint": "detectors"})
        return _parse(DetectorList, data)


class _AlertManager:
    """Alert reads, acknowledgment and summaries."""

    def __init__(self, http: HttpClient, poller: PollingClient, demo: bool = False) -> None:
        self._http = http
        self._poller = poller
        self.demo = demo
        self.workflow = AcknowledgmentWorkflow(self._post_acknowledge, poller)

    async def list(self) -> list[Alert]:
        """All recent alerts (demo alerts prepended when demo mode is on)."""
        params = {"endpoint": "alerts", "demo": "true" if self.demo else "false"}
        return _parse_alerts(await self._http.get(MONITORING_PATH, params=params))

    async def list_unacknowledged(self) -> list[Alert]:
        params = {"endpoint": "alerts/unacknowledged", "demo": "true" if self.demo else "false"}
        return _parse_alerts(await self._http.get(MONITORING_PATH, params=params))

    async def acknowledge(self, alert_id: str) -> AcknowledgeResult:
        """Acknowledge an alert and refresh every cached alert view.

        Args:
            alert_id: Engine id of the alert.

        Returns:
            :class:`AcknowledgeResult`; a repeat call for the same id
            returns success without contacting the engine.

        Raises:
            UpstreamError: the engine rejected the id (e.g. 404).
            TransportFailure: the gateway could not be reached.
        """
        return await self.workflow.acknowledge(alert_id)

    def can_acknowledge(self, alert_id: str) -> bool:
        return self.workflow.can_acknowledge(alert_id)

    def cached(self) -> list[Alert]:
        return self._poller.get(ALERTS_KEY) or []

    def summarize(
        self,
        filters: AlertFilters | None = None,
        alerts: list[Alert] | None = None,
        now_ms: float | None = None,
    ) -> AlertView:
        """Filtered list and statistics over ``alerts`` (default: cached list)."""
        return aggregate(self.cached() if alerts is None else alerts, filters, now_ms)

    async def _post_acknowledge(self, alert_id: str) -> Any:
        return await self._http.post(f"{MONITORING_PATH}/acknowledge/{url_quote(alert_id, safe='')}")


class _ChainManager:
    """Chain listing and switching."""

    def __init__(self, http: HttpClient, poller: PollingClient) -> None:
        self._http = http
        self._poller = poller

    async def list(self) -> list[ChainInfo]:
        data = await self._http.get(MONITORING_PATH, params={"endpoint": "chains"})
        return _parse(ChainList, data).chains

    async def current(self) -> ChainInfo:
        data = await self._http.get(MONITORING_PATH, params={"endpoint": "chains/current"})
        return _parse(ChainInfo, data)

    async def switch(self, chain_name: str) -> Any:
        """Ask the engine to monitor ``chain_name`` (applied on engine restart)."""
        return await self._http.post(
            MONITORING_PATH,
            body={"chain_name": chain_name},
            params={"endpoint": "chains/switch"},
        )

    def current_name(self) -> str | None:
        chain = self._poller.get(CURRENT_CHAIN_KEY)
        return chain.name if chain is not None else None

    def switcher(self) -> ChainSwitchStateMachine:
        """A fresh state machine bound to the cached current chain."""
        return ChainSwitchStateMachine(self.switch, self.current_name, self._poller)


# ============================================================
#  Client
# ============================================================


class MonitoringClient:
    """
    Client for the local monitoring gateway.

    Owns one :class:`QueryCache` and one :class:`PollingClient`; both are
    torn down by :meth:`close`. Pass your own ``cache`` or ``scheduler`` to
    share state or control time in tests.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:3000",
        *,
        demo: bool = False,
        intervals: PollingIntervals | None = None,
        retries: int = 3,
        retry_delay_ms: int = 1000,
        cache: QueryCache | None = None,
        scheduler: Scheduler | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.intervals = intervals or PollingIntervals()
        self._retries = retries
        self._retry_delay_ms = retry_delay_ms

        self._http = HttpClient(base_url, timeout=timeout, transport=transport)
        self.poller = PollingClient(cache, scheduler)

        self.monitoring = _MonitoringManager(self._http)
        self.alerts = _AlertManager(self._http, self.poller, demo=demo)
        self.chains = _ChainManager(self._http, self.poller)

    @property
    def cache(self) -> QueryCache:
        return self.poller.cache

    def _options(self, interval_ms: int, stale_ms: int = 0) -> PollOptions:
        return PollOptions(
            interval_ms=interval_ms,
            stale_ms=stale_ms,
            retries=self._retries,
            retry_delay_ms=self._retry_delay_ms,
        )

    # ---- Live views ----

    def watch_stats(self) -> Subscription:
        return self.poller.subscribe(
            STATS_KEY, self.monitoring.get_stats, self._options(self.intervals.stats_ms)
        )

    def watch_health(self) -> Subscription:
        return self.poller.subscribe(
            HEALTH_KEY, self.monitoring.get_health, self._options(self.intervals.health_ms)
        )

    def watch_detectors(self) -> Subscription:
        return self.poller.subscribe(
            DETECTORS_KEY, self.monitoring.get_detectors, self._options(self.intervals.detectors_ms)
        )

    def watch_alerts(self) -> Subscription:
        return self.poller.subscribe(
            ALERTS_KEY, self.alerts.list, self._options(self.intervals.alerts_ms)
        )

    def watch_unacknowledged(self) -> Subscription:
        return self.poller.subscribe(
            UNACKNOWLEDGED_KEY,
            self.alerts.list_unacknowledged,
            self._options(self.intervals.alerts_ms),
        )

    def watch_alert_history(self) -> Subscription:
        """Slower-refreshing alert list for history/analytics views."""
        return self.poller.subscribe(
            ALERT_HISTORY_KEY, self.alerts.list, self._options(self.intervals.history_ms)
        )

    def watch_chains(self) -> Subscription:
        # Rarely changes: treat a cached list as fresh for a full interval.
        return self.poller.subscribe(
            CHAINS_KEY,
            self.chains.list,
            self._options(self.intervals.chains_ms, stale_ms=self.intervals.chains_ms),
        )

    def watch_current_chain(self) -> Subscription:
        return self.poller.subscribe(
            CURRENT_CHAIN_KEY, self.chains.current, self._options(self.intervals.current_chain_ms)
        )

    def focus(self) -> None:
        """Forward a view-focus event to the poller."""
        self.poller.focus()

    async def close(self) -> None:
        await self.poller.close()
        await self._http.close()
        logger.info("Monitoring client closed")
