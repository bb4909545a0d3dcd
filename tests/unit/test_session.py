"""Tests for the client session wired to an in-process backend."""

from __future__ import annotations

from typing import Any

import pytest

from runpilot.client.projection import ClientProjection, is_provisional
from runpilot.client.session import ClientSession
from runpilot.client.transport import LocalTransport, TransportError
from runpilot.ipc.dispatch import RequestDispatcher
from runpilot.models.entities import Autopilot, ThreadRef
from runpilot.models.enums import ApprovalDecision, ControlAction, MessageKind, RunStatus
from tests.helpers import make_autopilot_spec, make_command

pytestmark = pytest.mark.unit


class _RejectingTransport:
    def __init__(self, message: str = "backend unavailable") -> None:
        self.message = message
        self.calls: list[tuple[str, str]] = []

    async def request(
        self, capability: str, method: str, params: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        self.calls.append((capability, method))
        raise TransportError(self.message)


@pytest.fixture
def connected(app_ctx):
    projection = ClientProjection()
    projection.attach(app_ctx.event_bus, app_ctx.api.snapshot())
    session = ClientSession(LocalTransport(RequestDispatcher(app_ctx.api)), projection)
    yield session, projection
    projection.detach()


def _notices(projection: ClientProjection) -> list[str]:
    return [message.text for message in projection.messages.values() if message.run_id is None]


async def test_submit_reconciles_provisional_run(connected, app_ctx) -> None:
    session, projection = connected

    run = await session.submit(make_command("Write the weekly report"))

    assert run is not None
    assert not is_provisional(run.id)
    assert not any(is_provisional(run_id) for run_id in projection.runs)
    assert not any(
        message.run_id and is_provisional(message.run_id)
        for message in projection.messages.values()
    )
    assert projection.selected_run_id == run.id
    assert len(projection.root_cards(run.id)) == 1

    await app_ctx.api.wait_for_run(run.id, timeout_seconds=5)

    assert projection.runs[run.id].status is RunStatus.COMPLETED
    kinds = [message.kind for message in projection.messages.values() if message.run_id == run.id]
    assert kinds.count(MessageKind.DELIVERABLE) == 1
    assert [row.id for row in projection.runs_index] == [run.id]


async def test_failed_submit_discards_and_notifies_once() -> None:
    projection = ClientProjection()
    transport = _RejectingTransport()
    session = ClientSession(transport, projection)

    result = await session.submit(make_command("Write the weekly report"))

    assert result is None
    assert transport.calls == [("runs", "submit")]
    assert projection.runs == {}
    assert projection.selected_run_id is None
    assert _notices(projection) == ["Agent call failed: backend unavailable."]


async def test_follow_up_to_unknown_run_posts_notice_in_thread(connected) -> None:
    session, projection = connected
    command = make_command(
        "Keep going", in_thread=ThreadRef(thread_id="thread-9", run_id="missing")
    )

    result = await session.submit(command)

    assert result is None
    assert projection.runs == {}
    [notice] = [message for message in projection.messages.values() if message.run_id is None]
    assert notice.parent_id == "thread-9"
    assert notice.text == "Agent call failed: Run missing not found."


async def test_follow_up_keeps_run_identity(connected, app_ctx) -> None:
    session, projection = connected
    first = await session.submit(make_command("Deploy the release to staging"))
    assert first is not None
    await app_ctx.api.wait_for_run(first.id, timeout_seconds=5)

    follow_up = await session.submit(
        make_command(
            "Draft the notes instead",
            in_thread=ThreadRef(thread_id=first.thread_id, run_id=first.id),
        )
    )

    assert follow_up is not None
    assert follow_up.id == first.id
    assert list(projection.runs) == [first.id]


async def test_decide_and_control_update_projection(connected, app_ctx) -> None:
    session, projection = connected
    run = await session.submit(make_command("Deploy the release to staging"))
    assert run is not None
    await app_ctx.api.wait_for_run(run.id, timeout_seconds=5)

    denied = await session.decide(run.id, ApprovalDecision.DENY)
    rejected = await session.control(run.id, ControlAction.RESUME)

    assert denied is not None
    assert denied.status is RunStatus.FAILED
    assert rejected is None
    assert projection.runs[run.id].status is RunStatus.FAILED
    assert _notices(projection)[-1].startswith("Agent call failed: Cannot resume run")


async def test_fire_autopilot_reconciles(connected, app_ctx) -> None:
    session, projection = connected
    autopilot = app_ctx.api.create_autopilot(make_autopilot_spec())

    run = await session.fire_autopilot(autopilot)

    assert run is not None
    assert run.autopilot_id == autopilot.id
    assert not any(is_provisional(run_id) for run_id in projection.runs)


async def test_failed_autopilot_fire_notifies() -> None:
    projection = ClientProjection()
    session = ClientSession(_RejectingTransport("quota exceeded"), projection)
    autopilot_spec = make_autopilot_spec()

    result = await session.fire_autopilot(Autopilot(id="ap-1", **dict(autopilot_spec)))

    assert result is None
    assert projection.runs == {}
    assert _notices(projection) == ["Autopilot run failed: quota exceeded."]


async def test_failed_follow_up_rolls_back_projected_step() -> None:
    projection = ClientProjection()
    session = ClientSession(_RejectingTransport(), projection)
    run = projection.create_provisional_run(make_command("Write the weekly report"))
    before_run = projection.runs[run.id]
    before_messages = dict(projection.messages)
    assert before_run.current_step == 1

    result = await session.submit(
        make_command(
            "Add a section on hiring",
            in_thread=ThreadRef(thread_id=run.root_message_id, run_id=run.id),
        )
    )

    assert result is None
    assert projection.runs[run.id] == before_run
    assert [row.id for row in projection.runs_index] == [run.id]
    added = {
        message_id: message
        for message_id, message in projection.messages.items()
        if message_id not in before_messages
    }
    [notice] = added.values()
    assert notice.run_id is None
    assert notice.parent_id == run.root_message_id
    assert notice.text == "Agent call failed: backend unavailable."
    for message_id, message in before_messages.items():
        assert projection.messages[message_id] == message
