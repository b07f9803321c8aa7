"""Display helpers for dashboard views."""

from __future__ import annotations

import time
from datetime import datetime

from nexus_monitor.types import Severity

_SEVERITY_COLORS = {
    Severity.CRITICAL: "red",
    Severity.HIGH: "orange",
    Severity.MEDIUM: "yellow",
    Severity.LOW: "blue",
}


def severity_color(severity: Severity | str) -> str:
    """Badge color; unknown severities render neutral gray."""
    return _SEVERITY_COLORS.get(Severity.parse(severity), "gray")


def format_alert_time(timestamp: int, now: float | None = None) -> str:
    """Relative age of an alert ("Just now", "5m ago", ...), a date past a week."""
    now = time.time() if now is None else now
    diff_s = now - timestamp
    minutes = int(diff_s // 60)
    hours = int(diff_s // 3600)
    days = int(diff_s // 86400)

    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return f"{minutes}m ago"
    if hours < 24:
        return f"{hours}h ago"
    if days < 7:
        return f"{days}d ago"
    return datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d")


def format_uptime(seconds: int) -> str:
    hours, rest = divmod(max(int(seconds), 0), 3600)
    minutes, secs = divmod(rest, 60)
    if hours > 0:
        return f"{hours}h {minutes}m"
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def blocks_per_second(blocks: int, uptime_seconds: int) -> float:
    if uptime_seconds <= 0:
        return 0.0
    return round(blocks / uptime_seconds, 2)


def confidence_percent(confidence: float) -> int:
    """Confidence as a 0-100 integer; out-of-range engine values are clamped."""
    return round(min(max(confidence, 0.0), 1.0) * 100)
