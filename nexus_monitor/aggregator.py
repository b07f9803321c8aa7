"""
Statistics and filters over the current alert set.

Everything here is a pure function of its arguments. Statistics are
always computed over the full alert list; filters only decide which
alerts are listed.
"""

from __future__ import annotations

import time
from typing import Iterable, Literal, Union

from pydantic import BaseModel, Field

from nexus_monitor.types import KNOWN_SEVERITIES, Alert, Severity

TIME_WINDOWS_MS: dict[str, int] = {
    "1h": 60 * 60 * 1000,
    "24h": 24 * 60 * 60 * 1000,
    "7d": 7 * 24 * 60 * 60 * 1000,
    "30d": 30 * 24 * 60 * 60 * 1000,
}

TOP_PATTERN_LIMIT = 5

SeverityFilter = Union[Severity, Literal["all"]]
# A named window, "all", or an explicit width in milliseconds.
TimeWindow = Union[Literal["all", "1h", "24h", "7d", "30d"], int]


class AlertFilters(BaseModel):
    """Filters combined with logical AND. The defaults match everything."""

    severity: SeverityFilter = "all"
    time_window: TimeWindow = "all"
    query: str = ""


class PatternCount(BaseModel):
    pattern: str
    count: int
    percentage: float

    @property
    def label(self) -> str:
        return display_pattern(self.pattern)


class AlertStats(BaseModel):
    total: int = 0
    by_severity: dict[Severity, int] = Field(default_factory=dict)
    acknowledged: int = 0
    unacknowledged: int = 0
    top_patterns: list[PatternCount] = Field(default_factory=list)

    def count(self, severity: Severity | str) -> int:
        return self.by_severity.get(Severity.parse(severity), 0)


class AlertView(BaseModel):
    alerts: list[Alert]
    stats: AlertStats


def display_pattern(pattern: str) -> str:
    """Human form of a pattern tag: underscores become spaces."""
    return pattern.replace("_", " ")


def window_ms(window: TimeWindow) -> int | None:
    """Width of a time window in milliseconds, ``None`` for "all"."""
    if isinstance(window, int):
        return window
    if window == "all":
        return None
    return TIME_WINDOWS_MS[window]


def _now_ms(now_ms: float | None) -> float:
    return time.time() * 1000 if now_ms is None else now_ms


def matches(alert: Alert, filters: AlertFilters, now_ms: float | None = None) -> bool:
    if filters.severity != "all" and alert.severity != Severity.parse(filters.severity):
        return False

    width = window_ms(filters.time_window)
    if width is not None and _now_ms(now_ms) - alert.timestamp * 1000 > width:
        return False

    query = filters.query.strip().lower()
    if query and query not in alert.pattern.lower() and query not in alert.description.lower():
        return False

    return True


def filter_alerts(
    alerts: Iterable[Alert],
    filters: AlertFilters | None = None,
    now_ms: float | None = None,
) -> list[Alert]:
    """Alerts matching every filter, in their original order."""
    filters = filters or AlertFilters()
    now = _now_ms(now_ms)
    return [alert for alert in alerts if matches(alert, filters, now)]


def rank_patterns(alerts: Iterable[Alert], limit: int = TOP_PATTERN_LIMIT) -> list[PatternCount]:
    """Most frequent raw patterns, descending; ties keep first-seen order."""
    counts: dict[str, int] = {}
    total = 0
    for alert in alerts:
        counts[alert.pattern] = counts.get(alert.pattern, 0) + 1
        total += 1

    # sorted() is stable, so equal counts stay in insertion order.
    ranked = sorted(counts.items(), key=lambda item: -item[1])[:limit]
    return [
        PatternCount(
            pattern=pattern,
            count=count,
            percentage=(count / total * 100) if total else 0.0,
        )
        for pattern, count in ranked
    ]


def compute_stats(alerts: Iterable[Alert]) -> AlertStats:
    alerts = list(alerts)
    by_severity = {severity: 0 for severity in KNOWN_SEVERITIES}
    acknowledged = 0
    for alert in alerts:
        by_severity[alert.severity] = by_severity.get(alert.severity, 0) + 1
        if alert.acknowledged:
            acknowledged += 1
    return AlertStats(
        total=len(alerts),
        by_severity=by_severity,
        acknowledged=acknowledged,
        unacknowledged=len(alerts) - acknowledged,
        top_patterns=rank_patterns(alerts),
    )


def aggregate(
    alerts: Iterable[Alert],
    filters: AlertFilters | None = None,
    now_ms: float | None = None,
) -> AlertView:
    """Filtered alert list plus statistics over the unfiltered set."""
    alerts = list(alerts)
    return AlertView(
        alerts=filter_alerts(alerts, filters, now_ms),
        stats=compute_stats(alerts),
    )
