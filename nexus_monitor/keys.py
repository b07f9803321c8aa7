"""Cache keys shared by the client, the acknowledgment flow and the chain switch."""

from __future__ import annotations

STATS_KEY = ("monitoring", "stats")
HEALTH_KEY = ("monitoring", "health")
DETECTORS_KEY = ("monitoring", "detectors")
CHAINS_KEY = ("monitoring", "chains")
CURRENT_CHAIN_KEY = ("monitoring", "chains", "current")

# Prefix of every alert-bearing key.
ALERTS_PREFIX = ("monitoring", "alerts")
ALERTS_KEY = ("monitoring", "alerts", "all")
UNACKNOWLEDGED_KEY = ("monitoring", "alerts", "unacknowledged")
ALERT_HISTORY_KEY = ("monitoring", "alerts", "history")
