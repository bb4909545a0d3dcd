"""Request/response contracts and dispatch for the Runpilot command surface."""

from __future__ import annotations

from runpilot.ipc.contracts import CoreErrorDetail, CoreRequest, CoreResponse
from runpilot.ipc.dispatch import RequestDispatcher, build_request_dispatch_map

__all__ = [
    "CoreErrorDetail",
    "CoreRequest",
    "CoreResponse",
    "RequestDispatcher",
    "build_request_dispatch_map",
]
