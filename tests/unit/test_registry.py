"""Tests for the authoritative run registry and its publication contract."""

from __future__ import annotations

from datetime import timedelta
from itertools import count

import pytest

from runpilot.events import (
    AutopilotUpserted,
    MessagePosted,
    RunsIndexPublished,
    RunUpserted,
)
from runpilot.models.entities import Container
from runpilot.models.enums import MessageKind, RunStatus
from runpilot.services.registry import RunRegistry
from tests.helpers import make_autopilot_spec
from tests.helpers.factories import EPOCH

pytestmark = pytest.mark.unit


def _stepping_clock():
    ticks = count()
    return lambda: EPOCH + timedelta(seconds=next(ticks))


@pytest.fixture
def registry_and_events(recorded_events):
    events, publish = recorded_events
    return RunRegistry(publish, clock=_stepping_clock()), events


def test_create_run_publishes_run_then_index(registry_and_events) -> None:
    registry, events = registry_and_events

    run = registry.create_run(title="Report", created_by="you", container=Container(id="general"))

    assert run.status is RunStatus.QUEUED
    assert run.thread_id == run.root_message_id
    assert [type(event) for event in events] == [RunUpserted, RunsIndexPublished]
    assert events[0].run == run
    assert [row.id for row in events[1].runs] == [run.id]


def test_patch_run_merges_and_publishes(registry_and_events) -> None:
    registry, events = registry_and_events
    run = registry.create_run(title="Report", created_by="you", container=Container(id="general"))
    events.clear()

    updated = registry.patch_run(run.id, status=RunStatus.RUNNING, latest_update="Working")

    assert updated is not None
    assert updated.status is RunStatus.RUNNING
    assert updated.title == "Report"
    assert registry.get_run(run.id) == updated
    assert isinstance(events[0], RunUpserted)
    assert events[0].run.latest_update == "Working"
    assert events[1].runs[0].status is RunStatus.RUNNING


def test_patch_unknown_run_returns_none(registry_and_events) -> None:
    registry, events = registry_and_events

    assert registry.patch_run("missing", status=RunStatus.RUNNING) is None
    assert events == []


def test_patch_run_rejects_unknown_fields(registry_and_events) -> None:
    registry, _events = registry_and_events
    run = registry.create_run(title="Report", created_by="you", container=Container(id="general"))

    with pytest.raises(ValueError, match="bogus"):
        registry.patch_run(run.id, bogus=True)


def test_runs_index_is_sorted_newest_first(registry_and_events) -> None:
    registry, _events = registry_and_events
    first = registry.create_run(title="One", created_by="you", container=Container(id="a"))
    second = registry.create_run(title="Two", created_by="you", container=Container(id="a"))

    assert [row.id for row in registry.runs_index()] == [second.id, first.id]


def test_messages_are_published_and_filterable(registry_and_events) -> None:
    registry, events = registry_and_events
    run = registry.create_run(title="Report", created_by="you", container=Container(id="general"))
    events.clear()

    card = registry.post_run_card(run)
    note = registry.post_thread_message(run, "Step 1: Collect notes")
    deliverable = registry.post_deliverable(run, body="## Report\n\nDone", title="Report")

    assert card.id == run.root_message_id
    assert card.kind is MessageKind.RUN_CARD
    assert note.parent_id == run.thread_id
    assert deliverable.thread_root_id == run.thread_id
    assert deliverable.kind is MessageKind.DELIVERABLE
    assert all(isinstance(event, MessagePosted) for event in events)
    assert registry.list_messages(run_id=run.id) == [card, note, deliverable]
    assert registry.list_messages(channel_id="elsewhere") == []


def test_autopilot_firing_records_history(registry_and_events) -> None:
    registry, events = registry_and_events
    autopilot = registry.create_autopilot(make_autopilot_spec())

    fired_at = EPOCH + timedelta(hours=1)
    updated = registry.record_autopilot_firing(autopilot.id, fired_at=fired_at, run_id="run-9")
    failed = registry.record_autopilot_firing(
        autopilot.id, fired_at=fired_at + timedelta(days=1), run_id=None
    )

    assert updated is not None and failed is not None
    assert updated.last_run_at == fired_at
    assert [entry.run_id for entry in failed.history] == ["run-9"]
    assert failed.last_run_at == fired_at + timedelta(days=1)
    assert sum(isinstance(event, AutopilotUpserted) for event in events) == 3


def test_snapshot_contains_everything(registry_and_events) -> None:
    registry, _events = registry_and_events
    run = registry.create_run(title="Report", created_by="you", container=Container(id="general"))
    registry.post_run_card(run)
    registry.create_autopilot(make_autopilot_spec())

    snapshot = registry.snapshot()

    assert [item.id for item in snapshot.runs] == [run.id]
    assert len(snapshot.autopilots) == 1
    assert [message.id for message in snapshot.messages] == [run.root_message_id]
