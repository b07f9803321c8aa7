"""
Error taxonomy for the Nexus monitoring gateway.

- ``TransportFailure``: the engine (or the local gateway) could not be
  reached, or timed out.
- ``MalformedResponse``: the peer answered, but not with usable JSON.
  Treated like a transport failure by every caller.
- ``UpstreamError``: the peer answered with a non-2xx status. Subclasses
  ``httpx.HTTPStatusError`` so code that already catches httpx errors
  keeps working.
- ``InvalidTransition``: an illegal move of the chain switch state machine.
"""

from __future__ import annotations

import httpx


class MonitoringError(Exception):
    """Base error (do not raise directly)."""


class TransportFailure(MonitoringError):
    """Peer unreachable, connection dropped or request timed out."""


class MalformedResponse(TransportFailure):
    """Body was not JSON or did not match the expected shape."""


class UpstreamError(MonitoringError, httpx.HTTPStatusError):
    """Peer returned a non-2xx status."""

    def __init__(
        self,
        message: str,
        *,
        request: httpx.Request,
        response: httpx.Response,
    ) -> None:
        httpx.HTTPStatusError.__init__(self, message, request=request, response=response)

    @property
    def status_code(self) -> int:
        return self.response.status_code


class InvalidTransition(MonitoringError):
    """Chain switch action not allowed in the current state."""


__all__ = [
    "MonitoringError",
    "TransportFailure",
    "MalformedResponse",
    "UpstreamError",
    "InvalidTransition",
]
