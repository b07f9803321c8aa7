"""Environment-driven configuration for the gateway."""

from __future__ import annotations

import os

from nexus_monitor.types import GatewayConfig


def _getenv_bool(key: str, default: bool = False) -> bool:
    value = os.getenv(key, str(default)).lower()
    return value in ("1", "true", "yes", "y", "on")


def _getenv_int(key: str, default: int) -> int:
    try:
        return int(os.getenv(key, str(default)))
    except ValueError:
        raise ValueError(f"Invalid integer value for {key}: {os.getenv(key)}")


def _getenv_float(key: str, default: float) -> float:
    try:
        return float(os.getenv(key, str(default)))
    except ValueError:
        raise ValueError(f"Invalid float value for {key}: {os.getenv(key)}")


def load_config() -> GatewayConfig:
    """Build a :class:`GatewayConfig` from ``MONITORING_*`` variables.

    Anything other than ``production`` in ``MONITORING_BUILD_MODE`` is a
    development build, which is what allows demo alert data.
    """
    defaults = GatewayConfig()
    build_mode = os.getenv("MONITORING_BUILD_MODE", defaults.build_mode).strip().lower()
    return GatewayConfig(
        engine_url=os.getenv("MONITORING_ENGINE_URL", defaults.engine_url).rstrip("/"),
        build_mode="production" if build_mode == "production" else "development",
        demo_mode=_getenv_bool("MONITORING_DEMO_MODE", defaults.demo_mode),
        demo_alerts_url=os.getenv("MONITORING_DEMO_ALERTS_URL", defaults.demo_alerts_url),
        request_timeout=_getenv_float("MONITORING_REQUEST_TIMEOUT", defaults.request_timeout),
        host=os.getenv("MONITORING_HOST", defaults.host),
        port=_getenv_int("MONITORING_PORT", defaults.port),
    )
