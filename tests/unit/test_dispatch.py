"""Tests for the typed API and the request dispatcher error mapping."""

from __future__ import annotations

import pytest

from runpilot.ipc.contracts import CoreRequest
from runpilot.ipc.dispatch import RequestDispatcher, build_request_dispatch_map
from runpilot.models.enums import RunStatus

pytestmark = pytest.mark.unit

_COMMAND = {"text": "Write the weekly report", "container": {"type": "channel", "id": "general"}}
_AUTOPILOT = {
    "title": "Morning digest",
    "instruction": "Summarize yesterday",
    "cadence": {"kind": "daily", "hour": 8, "minute": 30, "tz": "UTC"},
    "destination": {"type": "channel", "id": "general"},
}


@pytest.fixture
def dispatch(app_ctx):
    dispatcher = RequestDispatcher(app_ctx.api)

    async def _call(capability: str, method: str, params: dict | None = None):
        return await dispatcher.handle(
            CoreRequest(capability=capability, method=method, params=params or {})
        )

    return _call


def test_dispatch_map_covers_both_capabilities() -> None:
    keys = set(build_request_dispatch_map())

    assert {("runs", "submit"), ("runs", "approve"), ("runs", "control")} <= keys
    assert {("autopilots", "create"), ("autopilots", "fire"), ("autopilots", "preview")} <= keys


async def test_submit_and_wait(dispatch) -> None:
    submitted = await dispatch("runs", "submit", {"command": _COMMAND})
    assert submitted.ok
    run_id = submitted.result["run"]["id"]
    assert submitted.result["run"]["status"] == "running"

    waited = await dispatch("runs", "wait", {"runId": run_id, "timeoutSeconds": 5})

    assert waited.ok
    assert waited.result["run"]["status"] == RunStatus.COMPLETED
    assert waited.result["run"]["progressPct"] == 100


async def test_list_messages_and_snapshot(dispatch) -> None:
    submitted = await dispatch("runs", "submit", _COMMAND)
    run_id = submitted.result["run"]["id"]
    await dispatch("runs", "wait", {"runId": run_id})

    messages = await dispatch("runs", "messages", {"runId": run_id})
    listed = await dispatch("runs", "list")
    snapshot = await dispatch("runs", "snapshot")

    kinds = [message["kind"] for message in messages.result["messages"]]
    assert kinds[0] == "run_card"
    assert kinds[-1] == "deliverable"
    assert [row["id"] for row in listed.result["runs"]] == [run_id]
    assert len(snapshot.result["snapshot"]["runs"]) == 1


async def test_unknown_method(dispatch) -> None:
    response = await dispatch("runs", "explode")

    assert not response.ok
    assert response.error.code == "UNKNOWN_METHOD"


@pytest.mark.parametrize(
    ("capability", "method", "params", "code"),
    [
        ("runs", "approve", {"decision": "approve"}, "INVALID_PARAMS"),
        ("runs", "approve", {"runId": "r", "decision": "maybe"}, "INVALID_PARAMS"),
        ("runs", "control", {"runId": "missing", "action": "pause"}, "RUN_NOT_FOUND"),
        ("runs", "get", {"runId": "missing"}, "RUN_NOT_FOUND"),
        ("runs", "submit", {"command": {"text": "", "container": {"id": "general"}}}, "INVALID_PARAMS"),
        ("runs", "wait", {"runId": "missing", "timeoutSeconds": -1}, "INVALID_PARAMS"),
        ("autopilots", "get", {"autopilotId": "missing"}, "AUTOPILOT_NOT_FOUND"),
        ("autopilots", "update", {"autopilotId": "missing"}, "INVALID_PARAMS"),
        ("autopilots", "create", {"autopilot": {"title": "x"}}, "INVALID_PARAMS"),
    ],
)
async def test_error_codes(dispatch, capability, method, params, code) -> None:
    response = await dispatch(capability, method, params)

    assert not response.ok
    assert response.error.code == code


async def test_bad_decision_lists_allowed_values(dispatch) -> None:
    response = await dispatch("runs", "approve", {"runId": "r", "decision": "maybe"})

    assert "approve, deny" in response.error.message


async def test_invalid_transition_is_reported(dispatch) -> None:
    submitted = await dispatch("runs", "submit", {"command": _COMMAND})
    run_id = submitted.result["run"]["id"]

    response = await dispatch("runs", "approve", {"runId": run_id, "decision": "APPROVE"})

    assert response.error.code == "INVALID_TRANSITION"


async def test_gate_decision_through_dispatch(dispatch) -> None:
    command = {**_COMMAND, "text": "Deploy the release to staging"}
    run_id = (await dispatch("runs", "submit", {"command": command})).result["run"]["id"]
    gated = await dispatch("runs", "wait", {"runId": run_id})
    assert gated.result["run"]["status"] == "needs_approval"
    assert gated.result["run"]["approval"]["pending"] is True

    denied = await dispatch("runs", "approve", {"runId": run_id, "decision": "deny"})

    assert denied.result["run"]["status"] == "failed"


async def test_unexpected_errors_are_internal(app_ctx, monkeypatch) -> None:
    def _boom():
        raise RuntimeError("kaboom")

    monkeypatch.setattr(app_ctx.api, "list_runs", _boom)
    response = await RequestDispatcher(app_ctx.api).handle(
        CoreRequest(capability="runs", method="list")
    )

    assert response.error.code == "INTERNAL_ERROR"
    assert "kaboom" not in response.error.message


async def test_autopilot_lifecycle(dispatch) -> None:
    created = await dispatch("autopilots", "create", {"autopilot": _AUTOPILOT})
    assert created.ok
    autopilot_id = created.result["autopilot"]["id"]

    updated = await dispatch(
        "autopilots",
        "update",
        {"autopilotId": autopilot_id, "changes": {"deliveryMode": "verbose"}},
    )
    fired = await dispatch("autopilots", "fire", {"autopilotId": autopilot_id})
    fetched = await dispatch("autopilots", "get", {"autopilotId": autopilot_id})
    listed = await dispatch("autopilots", "list")

    assert updated.result["autopilot"]["deliveryMode"] == "verbose"
    assert fired.result["run"]["autopilotId"] == autopilot_id
    assert fetched.result["autopilot"]["history"][0]["runId"] == fired.result["run"]["id"]
    assert "lastRunAt" in fetched.result["autopilot"]
    assert [item["id"] for item in listed.result["autopilots"]] == [autopilot_id]


async def test_autopilot_preview_does_not_save(dispatch, app_ctx) -> None:
    response = await dispatch(
        "autopilots",
        "preview",
        {"command": {**_COMMAND, "text": "Post a recap every hour"}, "tz": "Europe/Berlin"},
    )

    draft = response.result["autopilot"]
    assert draft["cadence"]["kind"] == "hourly"
    assert draft["cadence"]["tz"] == "Europe/Berlin"
    assert app_ctx.api.list_autopilots() == []
