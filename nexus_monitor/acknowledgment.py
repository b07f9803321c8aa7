"""
Alert acknowledgment: one write to the engine, then every cached alert
view is invalidated so all subscribers converge on the engine's state.

Cached data is never edited in place. Acknowledgment is one-way; an
already-acknowledged alert is answered locally without a request.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from nexus_monitor.keys import ALERTS_KEY, ALERTS_PREFIX, UNACKNOWLEDGED_KEY
from nexus_monitor.polling import PollingClient
from nexus_monitor.types import AcknowledgeResult

logger = logging.getLogger(__name__)

AcknowledgeFn = Callable[[str], Awaitable[Any]]


class AcknowledgmentWorkflow:
    """Acknowledge alerts by id; distinct ids run concurrently."""

    def __init__(self, acknowledge_fn: AcknowledgeFn, poller: PollingClient) -> None:
        self._acknowledge_fn = acknowledge_fn
        self._poller = poller
        self._acknowledged: set[str] = set()
        self._in_flight: dict[str, asyncio.Task[AcknowledgeResult]] = {}

    def is_acknowledged(self, alert_id: str) -> bool:
        if alert_id in self._acknowledged:
            return True
        for key in (ALERTS_KEY, UNACKNOWLEDGED_KEY):
            for alert in self._poller.get(key) or []:
                if getattr(alert, "id", None) == alert_id and getattr(alert, "acknowledged", False):
                    return True
        return False

    def is_pending(self, alert_id: str) -> bool:
        return alert_id in self._in_flight

    def can_acknowledge(self, alert_id: str) -> bool:
        """Whether the UI should offer the acknowledge action."""
        return not self.is_acknowledged(alert_id) and not self.is_pending(alert_id)

    async def acknowledge(self, alert_id: str) -> AcknowledgeResult:
        """Acknowledge ``alert_id``.

        Concurrent calls for the same id share one request. Engine errors
        (``UpstreamError``, ``TransportFailure``) propagate and leave the
        cache untouched.
        """
        if self.is_acknowledged(alert_id):
            logger.debug("Alert %s already acknowledged", alert_id)
            return AcknowledgeResult(success=True, message="Alert already acknowledged")

        task = self._in_flight.get(alert_id)
        if task is None:
            task = asyncio.get_running_loop().create_task(self._acknowledge(alert_id))
            self._in_flight[alert_id] = task
            task.add_done_callback(lambda _t: self._in_flight.pop(alert_id, None))
        return await asyncio.shield(task)

    async def _acknowledge(self, alert_id: str) -> AcknowledgeResult:
        try:
            data = await self._acknowledge_fn(alert_id)
        except Exception as e:
            logger.error("Failed to acknowledge alert %s: %s", alert_id, e)
            raise

        result = AcknowledgeResult(success=True, message="Alert acknowledged")
        if isinstance(data, dict):
            result = AcknowledgeResult(
                success=bool(data.get("success", True)),
                message=str(data.get("message", "Alert acknowledged")),
            )
        if not result.success:
            logger.warning("Engine refused to acknowledge alert %s: %s", alert_id, result.message)
            return result

        self._acknowledged.add(alert_id)
        self._poller.invalidate(ALERTS_PREFIX)
        logger.info("Alert %s acknowledged", alert_id)
        return result
