"""Transport between a client session and the command surface."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

from runpilot.ipc.contracts import CoreRequest
from runpilot.version import get_runpilot_version

if TYPE_CHECKING:
    from runpilot.ipc.dispatch import RequestDispatcher


class TransportError(RuntimeError):
    """Raised when a command did not reach the backend or the backend rejected it."""

    def __init__(self, message: str, *, code: str = "TRANSPORT_ERROR") -> None:
        super().__init__(message)
        self.code = code
        self.message = message


class Transport(Protocol):
    async def request(
        self, capability: str, method: str, params: dict[str, Any] | None = None
    ) -> dict[str, Any]: ...


class LocalTransport:
    """In-process transport that hands envelopes straight to a dispatcher."""

    def __init__(self, dispatcher: RequestDispatcher, *, session_id: str = "local") -> None:
        self._dispatcher = dispatcher
        self._session_id = session_id

    async def request(
        self, capability: str, method: str, params: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        response = await self._dispatcher.handle(
            CoreRequest(
                session_id=self._session_id,
                client_version=get_runpilot_version(),
                capability=capability,
                method=method,
                params=params or {},
            )
        )
        if not response.ok:
            error = response.error
            if error is None:
                raise TransportError(f"{capability}.{method} failed")
            raise TransportError(error.message, code=error.code)
        return response.result or {}


__all__ = ["LocalTransport", "Transport", "TransportError"]
