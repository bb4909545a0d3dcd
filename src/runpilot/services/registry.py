"""Authoritative in-memory table of runs, autopilots and messages."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any

from runpilot.constants import AGENT_USER_ID, DELIVERABLE_DEFAULT_TITLE
from runpilot.events import (
    AutopilotUpserted,
    MessagePosted,
    RunsIndexPublished,
    RunUpserted,
    StateSnapshot,
)
from runpilot.models.entities import (
    Autopilot,
    AutopilotHistoryEntry,
    AutopilotSpec,
    Container,
    Message,
    Run,
    RunSummary,
)
from runpilot.models.enums import MessageKind
from runpilot.time import utc_now

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from datetime import datetime

    from runpilot.events import EventPublisher
    from runpilot.models.entities import ArtifactLink
    from runpilot.time import Clock


def _new_id() -> str:
    return str(uuid.uuid4())


def _check_fields(model: type[Run] | type[Autopilot], changes: dict[str, Any]) -> None:
    unknown = sorted(set(changes) - set(model.model_fields))
    if unknown:
        msg = f"Unknown {model.__name__} fields: {', '.join(unknown)}"
        raise ValueError(msg)


class RunRegistry:
    """Owns Run, Autopilot and Message records for the process lifetime.

    Every mutation stores the new record first and then publishes it through
    the injected ``publish`` callable before returning, so subscribers never
    observe a mutation without its projection. Run mutations also publish the
    full runs index.
    """

    def __init__(
        self,
        publish: EventPublisher,
        *,
        clock: Clock = utc_now,
        id_factory: Callable[[], str] = _new_id,
    ) -> None:
        self._publish = publish
        self._clock = clock
        self._new_id = id_factory
        self._runs: dict[str, Run] = {}
        self._autopilots: dict[str, Autopilot] = {}
        self._messages: dict[str, Message] = {}

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    def create_run(
        self,
        *,
        title: str,
        created_by: str,
        container: Container,
        autopilot_id: str | None = None,
    ) -> Run:
        root_message_id = self._new_id()
        run = Run(
            id=self._new_id(),
            title=title,
            created_at=self._clock(),
            created_by=created_by,
            container=container,
            root_message_id=root_message_id,
            thread_id=root_message_id,
            autopilot_id=autopilot_id,
        )
        self._runs[run.id] = run
        self._publish_run(run)
        return run

    def patch_run(self, run_id: str, **changes: Any) -> Run | None:
        """Shallow-merge ``changes`` into a run; returns None when the run is unknown."""
        current = self._runs.get(run_id)
        if current is None:
            return None
        _check_fields(Run, changes)
        updated = current.model_copy(update=changes)
        self._runs[run_id] = updated
        self._publish_run(updated)
        return updated

    def get_run(self, run_id: str) -> Run | None:
        return self._runs.get(run_id)

    def list_runs(self) -> list[Run]:
        return list(self._runs.values())

    def runs_index(self) -> tuple[RunSummary, ...]:
        ordered = sorted(self._runs.values(), key=lambda run: run.created_at, reverse=True)
        return tuple(run.summary() for run in ordered)

    def _publish_run(self, run: Run) -> None:
        self._publish(RunUpserted(run=run))
        self._publish(RunsIndexPublished(runs=self.runs_index()))

    # ------------------------------------------------------------------
    # Autopilots
    # ------------------------------------------------------------------

    def create_autopilot(self, spec: AutopilotSpec) -> Autopilot:
        autopilot = Autopilot(id=self._new_id(), **dict(spec))
        return self.upsert_autopilot(autopilot)

    def upsert_autopilot(self, autopilot: Autopilot) -> Autopilot:
        self._autopilots[autopilot.id] = autopilot
        self._publish(AutopilotUpserted(autopilot=autopilot))
        return autopilot

    def patch_autopilot(self, autopilot_id: str, **changes: Any) -> Autopilot | None:
        current = self._autopilots.get(autopilot_id)
        if current is None:
            return None
        _check_fields(Autopilot, changes)
        return self.upsert_autopilot(current.model_copy(update=changes))

    def record_autopilot_firing(
        self,
        autopilot_id: str,
        *,
        fired_at: datetime,
        run_id: str | None,
    ) -> Autopilot | None:
        """Stamp ``last_run_at`` and, when a run was created, append it to the history."""
        current = self._autopilots.get(autopilot_id)
        if current is None:
            return None
        history = list(current.history)
        if run_id is not None:
            history.append(AutopilotHistoryEntry(run_id=run_id, fired_at=fired_at))
        return self.patch_autopilot(autopilot_id, last_run_at=fired_at, history=history)

    def get_autopilot(self, autopilot_id: str) -> Autopilot | None:
        return self._autopilots.get(autopilot_id)

    def list_autopilots(self) -> list[Autopilot]:
        return list(self._autopilots.values())

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def post_message(self, message: Message) -> Message:
        self._messages[message.id] = message
        self._publish(MessagePosted(message=message))
        return message

    def post_run_card(self, run: Run) -> Message:
        """Post the root thread anchor of a run."""
        return self.post_message(
            Message(
                id=run.root_message_id,
                channel_id=run.container.id,
                user_id=AGENT_USER_ID,
                text=run.title,
                ts=self._clock(),
                kind=MessageKind.RUN_CARD,
                is_bot=True,
                run_id=run.id,
            )
        )

    def post_thread_message(self, run: Run, text: str) -> Message:
        return self.post_message(
            Message(
                id=self._new_id(),
                channel_id=run.container.id,
                user_id=AGENT_USER_ID,
                text=text,
                ts=self._clock(),
                is_bot=True,
                parent_id=run.thread_id,
                run_id=run.id,
            )
        )

    def post_deliverable(
        self,
        run: Run,
        *,
        body: str,
        title: str = DELIVERABLE_DEFAULT_TITLE,
        artifact_links: Sequence[ArtifactLink] = (),
    ) -> Message:
        return self.post_message(
            Message(
                id=self._new_id(),
                channel_id=run.container.id,
                user_id=AGENT_USER_ID,
                text=body,
                title=title,
                body=body,
                artifact_links=list(artifact_links),
                ts=self._clock(),
                kind=MessageKind.DELIVERABLE,
                is_bot=True,
                thread_root_id=run.thread_id,
                run_id=run.id,
            )
        )

    def list_messages(
        self,
        *,
        channel_id: str | None = None,
        run_id: str | None = None,
    ) -> list[Message]:
        return [
            message
            for message in self._messages.values()
            if (channel_id is None or message.channel_id == channel_id)
            and (run_id is None or message.run_id == run_id)
        ]

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    def snapshot(self) -> StateSnapshot:
        return StateSnapshot(
            runs=tuple(self._runs.values()),
            autopilots=tuple(self._autopilots.values()),
            messages=tuple(self._messages.values()),
        )


__all__ = ["RunRegistry"]
