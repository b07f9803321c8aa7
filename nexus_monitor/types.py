"""
Pydantic models for the Nexus monitoring gateway.

Field names follow the engine's JSON (snake_case), so engine payloads
load with ``Model(**data)`` and dump back with ``model_dump()``.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal, Union

from pydantic import BaseModel, Field, field_validator


# ============================================================
#  Configuration
# ============================================================


class GatewayConfig(BaseModel):
    """Settings for the gateway proxy and the local HTTP surface."""

    engine_url: str = "http://localhost:8080"
    build_mode: Literal["development", "production"] = "development"
    demo_mode: bool = False
    demo_alerts_url: str = "http://localhost:3000/api/demo-alerts"
    request_timeout: float = 10.0
    host: str = "127.0.0.1"
    port: int = 3000

    @property
    def is_production(self) -> bool:
        return self.build_mode == "production"


class PollOptions(BaseModel):
    """Refresh policy for one polled key."""

    interval_ms: int = 5000
    stale_ms: int = 0
    retries: int = Field(3, ge=0)
    retry_delay_ms: int = Field(1000, ge=0)
    refetch_on_focus: bool = True


class PollingIntervals(BaseModel):
    """Per-key refresh intervals used by :class:`MonitoringClient`."""

    stats_ms: int = 2000
    health_ms: int = 5000
    detectors_ms: int = 5000
    alerts_ms: int = 5000
    history_ms: int = 15000
    chains_ms: int = 60000
    current_chain_ms: int = 10000


# ============================================================
#  Alerts
# ============================================================


class Severity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Any) -> Severity:
        """Map any engine value onto a known severity, ``UNKNOWN`` otherwise."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.UNKNOWN


KNOWN_SEVERITIES: tuple[Severity, ...] = (
    Severity.CRITICAL,
    Severity.HIGH,
    Severity.MEDIUM,
    Severity.LOW,
)


class Alert(BaseModel):
    """A single detected security condition."""

    id: str
    timestamp: int
    chain: str = ""
    chain_name: str | None = None
    severity: Severity = Severity.UNKNOWN
    pattern: str = ""
    description: str = ""
    confidence: float = 0.0
    evidence: list[str] = Field(default_factory=list)
    transaction_hash: str | None = None
    block_number: int | None = None
    metadata: dict[str, str] = Field(default_factory=dict)
    recommended_actions: list[str] = Field(default_factory=list)
    acknowledged: bool = False

    @field_validator("severity", mode="before")
    @classmethod
    def _coerce_severity(cls, value: Any) -> Severity:
        return Severity.parse(value)

    @field_validator("metadata", mode="before")
    @classmethod
    def _stringify_metadata(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {str(k): "" if v is None else str(v) for k, v in value.items()}
        return value


# Tagged union for the alerts endpoints. Each variant carries its alerts
# explicitly instead of sniffing list-vs-object payloads at runtime.


class RealAlerts(BaseModel):
    kind: Literal["real"] = "real"
    alerts: list[Alert]


class DemoAlerts(BaseModel):
    kind: Literal["demo"] = "demo"
    alerts: list[Alert]


class MixedAlerts(BaseModel):
    """Demo alerts prepended to a real result."""

    kind: Literal["mixed"] = "mixed"
    alerts: list[Alert]


class AlertsUnavailable(BaseModel):
    kind: Literal["unavailable"] = "unavailable"
    reason: str
    upstream_status: int | None = None


AlertsResult = Union[RealAlerts, DemoAlerts, MixedAlerts, AlertsUnavailable]


def merge_demo_alerts(result: AlertsResult, demo: list[Alert]) -> AlertsResult:
    """Blend synthetic alerts into an alerts result.

    - real list: demo alerts are prepended (``MixedAlerts``)
    - unavailable: demo alerts replace it (``DemoAlerts``)
    - already demo/mixed: returned unchanged, so merging twice is a no-op
    """
    if isinstance(result, RealAlerts):
        return MixedAlerts(alerts=[*demo, *result.alerts])
    if isinstance(result, AlertsUnavailable):
        return DemoAlerts(alerts=list(demo))
    return result


# ============================================================
#  Engine status
# ============================================================


class MonitoringStats(BaseModel):
    """Engine counters, refreshed wholesale on every poll."""

    is_running: bool = False
    blocks_processed: int = 0
    transactions_analyzed: int = 0
    alerts_triggered: int = 0
    chain_name: str = ""
    endpoint: str = ""
    reconnect_attempts: int = 0
    error: str | None = None

    @classmethod
    def disconnected(cls, error: str) -> MonitoringStats:
        """Placeholder used when the engine cannot be reached."""
        return cls(
            is_running=False,
            chain_name="Not connected",
            endpoint="Not connected",
            error=error,
        )


class HealthStatus(BaseModel):
    status: str
    version: str = ""
    uptime_seconds: int = 0

    @property
    def is_healthy(self) -> bool:
        return self.status == "healthy"


class DetectorStat(BaseModel):
    name: str
    enabled: bool = True
    detections: int = 0
    last_detection: int | None = None


class DetectorList(BaseModel):
    detectors: list[DetectorStat] = Field(default_factory=list)


KNOWN_DETECTORS: tuple[str, ...] = (
    "Flash Loan Detector",
    "MEV Detector",
    "Volume Anomaly Detector",
    "FrontRunning Detector",
)


def placeholder_detectors() -> DetectorList:
    """Degraded-but-valid detector list for when the engine is down."""
    return DetectorList(detectors=[DetectorStat(name=name) for name in KNOWN_DETECTORS])


# ============================================================
#  Chains
# ============================================================


class ChainInfo(BaseModel):
    name: str
    display_name: str = ""
    endpoint: str = ""
    description: str = ""


class ChainList(BaseModel):
    chains: list[ChainInfo] = Field(default_factory=list)


class SwitchChainResult(BaseModel):
    """Engine reply to a chain switch request."""

    success: bool = True
    message: str = ""
    restart_required: bool = True


class AcknowledgeResult(BaseModel):
    success: bool = True
    message: str = ""
