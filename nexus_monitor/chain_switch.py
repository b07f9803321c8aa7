"""
State machine for switching the monitored chain.

    IDLE -> SELECTING -> CONFIRM_PENDING -> SWITCHING -> SUCCESS | FAILURE
                                |                            |
                              cancel                      dismiss
                                v                            v
                              IDLE                         IDLE

Selecting the chain that is already current is a no-op. A successful
switch only means the engine accepted the request: the engine applies a
new chain after a restart, so the current chain is still whatever the
next poll of the current-chain key reports.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Awaitable, Callable

from pydantic import ValidationError

from nexus_monitor.errors import InvalidTransition, TransportFailure, UpstreamError
from nexus_monitor.keys import CURRENT_CHAIN_KEY
from nexus_monitor.polling import PollingClient, call_listener
from nexus_monitor.types import ChainInfo, SwitchChainResult

logger = logging.getLogger(__name__)

SwitchFn = Callable[[str], Awaitable[Any]]
CurrentChainFn = Callable[[], str | None]
StateListener = Callable[["ChainSwitchStateMachine"], Any]

RESTART_NOTICE = "Restart the monitoring engine to apply the change."


class ChainSwitchState(str, Enum):
    IDLE = "idle"
    SELECTING = "selecting"
    CONFIRM_PENDING = "confirm_pending"
    SWITCHING = "switching"
    SUCCESS = "success"
    FAILURE = "failure"


class ChainSwitchStateMachine:
    """Select, confirm and issue a chain switch, then report the outcome."""

    def __init__(
        self,
        switch_fn: SwitchFn,
        current_chain: CurrentChainFn,
        poller: PollingClient | None = None,
    ) -> None:
        self._switch_fn = switch_fn
        self._current_chain = current_chain
        self._poller = poller
        self._listeners: list[StateListener] = []

        self.state = ChainSwitchState.IDLE
        self.target: ChainInfo | None = None
        self.message: str | None = None
        self.error: str | None = None

    def on_change(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    # ---- Transitions ----

    def open(self) -> ChainSwitchState:
        """Show the chain list."""
        self._require(ChainSwitchState.IDLE, ChainSwitchState.SELECTING)
        return self._move(ChainSwitchState.SELECTING)

    def close(self) -> ChainSwitchState:
        """Hide the chain list without choosing."""
        self._require(ChainSwitchState.IDLE, ChainSwitchState.SELECTING)
        return self._move(ChainSwitchState.IDLE)

    def select(self, chain: ChainInfo | str) -> ChainSwitchState:
        """Pick a target; picking the current chain returns to IDLE."""
        self._require(ChainSwitchState.IDLE, ChainSwitchState.SELECTING)
        if isinstance(chain, str):
            chain = ChainInfo(name=chain, display_name=chain)

        if chain.name == self._current_chain():
            logger.debug("Chain %s is already being monitored", chain.name)
            return self._move(ChainSwitchState.IDLE)

        self.target = chain
        return self._move(ChainSwitchState.CONFIRM_PENDING)

    def cancel(self) -> ChainSwitchState:
        self._require(ChainSwitchState.CONFIRM_PENDING)
        self.target = None
        return self._move(ChainSwitchState.IDLE)

    async def confirm(self) -> ChainSwitchState:
        """Issue the switch for the selected chain and record the outcome."""
        self._require(ChainSwitchState.CONFIRM_PENDING)
        if self.target is None:
            raise InvalidTransition("No chain selected")
        target = self.target
        self._move(ChainSwitchState.SWITCHING)
        logger.info("Requesting switch to chain %s", target.name)

        try:
            data = await self._switch_fn(target.name)
        except (UpstreamError, TransportFailure) as e:
            logger.warning("Chain switch to %s failed: %s", target.name, e)
            self.error = str(e)
            return self._move(ChainSwitchState.FAILURE)
        except Exception as e:
            logger.exception("Unexpected error switching to chain %s", target.name)
            self.error = str(e) or type(e).__name__
            return self._move(ChainSwitchState.FAILURE)

        result = SwitchChainResult()
        if isinstance(data, dict):
            try:
                result = SwitchChainResult.model_validate(data)
            except ValidationError:
                logger.debug("Unrecognised switch response from engine: %r", data)
        if not result.success:
            self.error = result.message or f"Engine rejected switch to {target.name}"
            logger.warning("Chain switch to %s rejected: %s", target.name, self.error)
            return self._move(ChainSwitchState.FAILURE)

        label = target.display_name or target.name
        message = result.message or f"Switched monitoring to {label}."
        if result.restart_required:
            message = f"{message} {RESTART_NOTICE}"
        self.message = message

        if self._poller is not None:
            self._poller.invalidate(CURRENT_CHAIN_KEY)
        return self._move(ChainSwitchState.SUCCESS)

    def dismiss(self) -> ChainSwitchState:
        self._require(ChainSwitchState.SUCCESS, ChainSwitchState.FAILURE)
        self.target = None
        self.message = None
        self.error = None
        return self._move(ChainSwitchState.IDLE)

    # ---- Internal ----

    def _require(self, *allowed: ChainSwitchState) -> None:
        if self.state not in allowed:
            raise InvalidTransition(
                f"Not allowed in state {self.state.value} "
                f"(expected {', '.join(s.value for s in allowed)})"
            )

    def _move(self, state: ChainSwitchState) -> ChainSwitchState:
        self.state = state
        for listener in list(self._listeners):
            call_listener(listener, self, "chain switch")
        return state
