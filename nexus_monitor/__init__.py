"""
Nexus monitoring gateway and client SDK for Python.

Serves a dashboard-facing gateway in front of the Nexus detection engine
and provides an async client that keeps live views (stats, health,
detectors, alerts, chains) current by polling it.

Example::

    from nexus_monitor import MonitoringClient, AlertFilters

    client = MonitoringClient("http://localhost:3000")

    alerts = client.watch_alerts()
    await alerts.next_update()

    view = client.alerts.summarize(AlertFilters(severity="critical", time_window="24h"))
    print(view.stats.total, [p.label for p in view.stats.top_patterns])

    # Acknowledge an alert; every cached alert view refreshes
    await client.alerts.acknowledge(view.alerts[0].id)

    # Clean up
    await client.close()
"""

from nexus_monitor.client import MonitoringClient
from nexus_monitor.gateway import GatewayProxy, GatewayResponse
from nexus_monitor.polling import PollingClient, QueryCache, Scheduler, Subscription
from nexus_monitor.aggregator import (
    AlertFilters,
    AlertStats,
    AlertView,
    PatternCount,
    aggregate,
    compute_stats,
    filter_alerts,
    display_pattern,
    rank_patterns,
)
from nexus_monitor.acknowledgment import AcknowledgmentWorkflow
from nexus_monitor.chain_switch import ChainSwitchState, ChainSwitchStateMachine
from nexus_monitor.formatting import (
    blocks_per_second,
    confidence_percent,
    format_alert_time,
    format_uptime,
    severity_color,
)
from nexus_monitor.errors import (
    MonitoringError,
    TransportFailure,
    MalformedResponse,
    UpstreamError,
    InvalidTransition,
)
from nexus_monitor.types import (
    GatewayConfig,
    PollOptions,
    PollingIntervals,
    Severity,
    Alert,
    AlertsResult,
    RealAlerts,
    DemoAlerts,
    MixedAlerts,
    AlertsUnavailable,
    MonitoringStats,
    HealthStatus,
    DetectorStat,
    DetectorList,
    ChainInfo,
    ChainList,
    AcknowledgeResult,
    SwitchChainResult,
)

__all__ = [
    "MonitoringClient",
    "GatewayProxy",
    "GatewayResponse",
    "PollingClient",
    "QueryCache",
    "Scheduler",
    "Subscription",
    "AlertFilters",
    "AlertStats",
    "AlertView",
    "PatternCount",
    "aggregate",
    "compute_stats",
    "filter_alerts",
    "rank_patterns",
    "display_pattern",
    "AcknowledgmentWorkflow",
    "ChainSwitchState",
    "ChainSwitchStateMachine",
    "severity_color",
    "format_alert_time",
    "format_uptime",
    "blocks_per_second",
    "confidence_percent",
    "MonitoringError",
    "TransportFailure",
    "MalformedResponse",
    "UpstreamError",
    "InvalidTransition",
    "GatewayConfig",
    "PollOptions",
    "PollingIntervals",
    "Severity",
    "Alert",
    "AlertsResult",
    "RealAlerts",
    "DemoAlerts",
    "MixedAlerts",
    "AlertsUnavailable",
    "MonitoringStats",
    "HealthStatus",
    "DetectorStat",
    "DetectorList",
    "ChainInfo",
    "ChainList",
    "AcknowledgeResult",
    "SwitchChainResult",
]

__version__ = "0.1.0"
