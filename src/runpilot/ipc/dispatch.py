"""Request handlers and dispatcher for the ``runs`` and ``autopilots`` capabilities.

Each handler takes ``(api, params)`` and returns a wire-shaped dict. Domain
errors map to ``CoreResponse.failure`` with their machine-readable code.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from runpilot.errors import CommandValidationError, RunpilotError
from runpilot.ipc.contracts import CoreRequest, CoreResponse

if TYPE_CHECKING:
    from runpilot.api import RunpilotAPI
    from runpilot.events import StateSnapshot

logger = logging.getLogger(__name__)

type RequestHandler = Callable[[RunpilotAPI, dict[str, Any]], Awaitable[dict[str, Any]]]


def _require_str(params: dict[str, Any], key: str) -> str:
    value = params.get(key)
    if not isinstance(value, str) or not value.strip():
        raise CommandValidationError(f"Missing required parameter: {key}")
    return value.strip()


def _optional_str(params: dict[str, Any], key: str) -> str | None:
    value = params.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise CommandValidationError(f"Parameter {key} must be a string")
    return value.strip() or None


def _optional_timeout(params: dict[str, Any]) -> float | None:
    value = params.get("timeoutSeconds")
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int | float) or value < 0:
        raise CommandValidationError("timeoutSeconds must be a non-negative number")
    return float(value)


def _payload(params: dict[str, Any], key: str) -> dict[str, Any]:
    value = params.get(key, params)
    if not isinstance(value, dict):
        raise CommandValidationError(f"Parameter {key} must be an object")
    return value


def snapshot_to_dict(snapshot: StateSnapshot) -> dict[str, Any]:
    return {
        "runs": [run.to_wire() for run in snapshot.runs],
        "autopilots": [autopilot.to_wire() for autopilot in snapshot.autopilots],
        "messages": [message.to_wire() for message in snapshot.messages],
    }


# ── runs ───────────────────────────────────────────────────────────────


async def handle_run_submit(api: RunpilotAPI, params: dict[str, Any]) -> dict[str, Any]:
    run = await api.submit_command(_payload(params, "command"))
    return {"run": run.to_wire()}


async def handle_run_approve(api: RunpilotAPI, params: dict[str, Any]) -> dict[str, Any]:
    run = api.decide_approval(_require_str(params, "runId"), _require_str(params, "decision"))
    return {"run": run.to_wire()}


async def handle_run_control(api: RunpilotAPI, params: dict[str, Any]) -> dict[str, Any]:
    run = api.control_run(_require_str(params, "runId"), _require_str(params, "action"))
    return {"run": run.to_wire()}


async def handle_run_get(api: RunpilotAPI, params: dict[str, Any]) -> dict[str, Any]:
    return {"run": api.get_run(_require_str(params, "runId")).to_wire()}


async def handle_run_list(api: RunpilotAPI, params: dict[str, Any]) -> dict[str, Any]:
    del params
    return {"runs": [summary.to_wire() for summary in api.list_runs()]}


async def handle_run_messages(api: RunpilotAPI, params: dict[str, Any]) -> dict[str, Any]:
    messages = api.list_messages(
        channel_id=_optional_str(params, "channelId"),
        run_id=_optional_str(params, "runId"),
    )
    return {"messages": [message.to_wire() for message in messages]}


async def handle_run_wait(api: RunpilotAPI, params: dict[str, Any]) -> dict[str, Any]:
    run = await api.wait_for_run(
        _require_str(params, "runId"), timeout_seconds=_optional_timeout(params)
    )
    return {"run": run.to_wire()}


async def handle_run_snapshot(api: RunpilotAPI, params: dict[str, Any]) -> dict[str, Any]:
    del params
    return {"snapshot": snapshot_to_dict(api.snapshot())}


# ── autopilots ─────────────────────────────────────────────────────────


async def handle_autopilot_create(api: RunpilotAPI, params: dict[str, Any]) -> dict[str, Any]:
    autopilot = api.create_autopilot(_payload(params, "autopilot"))
    return {"autopilot": autopilot.to_wire()}


async def handle_autopilot_update(api: RunpilotAPI, params: dict[str, Any]) -> dict[str, Any]:
    changes = params.get("changes")
    if not isinstance(changes, dict):
        raise CommandValidationError("Parameter changes must be an object")
    autopilot = api.update_autopilot(_require_str(params, "autopilotId"), changes)
    return {"autopilot": autopilot.to_wire()}


async def handle_autopilot_fire(api: RunpilotAPI, params: dict[str, Any]) -> dict[str, Any]:
    run = await api.fire_autopilot(_require_str(params, "autopilotId"))
    return {"run": run.to_wire()}


async def handle_autopilot_preview(api: RunpilotAPI, params: dict[str, Any]) -> dict[str, Any]:
    draft = await api.preview_autopilot(
        _payload(params, "command"), tz=_optional_str(params, "tz") or "UTC"
    )
    return {"autopilot": draft.to_wire()}


async def handle_autopilot_get(api: RunpilotAPI, params: dict[str, Any]) -> dict[str, Any]:
    return {"autopilot": api.get_autopilot(_require_str(params, "autopilotId")).to_wire()}


async def handle_autopilot_list(api: RunpilotAPI, params: dict[str, Any]) -> dict[str, Any]:
    del params
    return {"autopilots": [autopilot.to_wire() for autopilot in api.list_autopilots()]}


def build_request_dispatch_map() -> dict[tuple[str, str], RequestHandler]:
    return {
        ("runs", "submit"): handle_run_submit,
        ("runs", "approve"): handle_run_approve,
        ("runs", "control"): handle_run_control,
        ("runs", "get"): handle_run_get,
        ("runs", "list"): handle_run_list,
        ("runs", "messages"): handle_run_messages,
        ("runs", "wait"): handle_run_wait,
        ("runs", "snapshot"): handle_run_snapshot,
        ("autopilots", "create"): handle_autopilot_create,
        ("autopilots", "update"): handle_autopilot_update,
        ("autopilots", "fire"): handle_autopilot_fire,
        ("autopilots", "preview"): handle_autopilot_preview,
        ("autopilots", "get"): handle_autopilot_get,
        ("autopilots", "list"): handle_autopilot_list,
    }


class RequestDispatcher:
    """Routes ``CoreRequest`` envelopes to API handlers."""

    def __init__(self, api: RunpilotAPI) -> None:
        self._api = api
        self._handlers = build_request_dispatch_map()

    async def handle(self, request: CoreRequest) -> CoreResponse:
        handler = self._handlers.get((request.capability, request.method))
        if handler is None:
            return CoreResponse.failure(
                request.request_id,
                code="UNKNOWN_METHOD",
                message=f"No handler for {request.capability}.{request.method}",
            )
        try:
            result = await handler(self._api, request.params)
        except RunpilotError as exc:
            return CoreResponse.failure(request.request_id, code=exc.code, message=exc.message)
        except KeyError as exc:
            return CoreResponse.failure(
                request.request_id,
                code="INVALID_PARAMS",
                message=f"Missing required parameter: {exc}",
            )
        except ValueError as exc:
            return CoreResponse.failure(
                request.request_id,
                code="INVALID_PARAMS",
                message=str(exc),
            )
        except Exception:
            logger.exception("Handler error for %s.%s", request.capability, request.method)
            return CoreResponse.failure(
                request.request_id,
                code="INTERNAL_ERROR",
                message=f"Internal error processing {request.capability}.{request.method}",
            )
        return CoreResponse.success(request.request_id, result=result)


__all__ = ["RequestDispatcher", "RequestHandler", "build_request_dispatch_map", "snapshot_to_dict"]
