"""Client-side projection, transport and session."""

from __future__ import annotations

from runpilot.client.projection import ClientProjection, should_ignore_stale_update
from runpilot.client.session import ClientSession
from runpilot.client.transport import LocalTransport, Transport, TransportError

__all__ = [
    "ClientProjection",
    "ClientSession",
    "LocalTransport",
    "Transport",
    "TransportError",
    "should_ignore_stale_update",
]
