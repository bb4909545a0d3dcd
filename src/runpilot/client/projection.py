"""Client-side mirror of runs and messages.

The projection shows work immediately by creating provisional runs before
the backend answers, then swaps them for the authoritative run. Pushed
updates may race the command response, so updates that would regress a
known run are ignored.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from runpilot.constants import (
    AGENT_USER_ID,
    CONCISE_LATEST_UPDATE,
    DEFAULT_CREATED_BY,
    PROVISIONAL_RUN_PREFIX,
)
from runpilot.events import (
    AgentTyping,
    AutopilotUpserted,
    MessagePosted,
    RunsIndexPublished,
    RunUpserted,
    StateSnapshot,
)
from runpilot.limits import PROVISIONAL_TITLE_MAX_LENGTH
from runpilot.models.entities import ApprovalState, Artifact, Message, Run, RunSummary
from runpilot.models.enums import ArtifactType, MessageKind, OutputFormat, RunStatus
from runpilot.services.policies import is_concise_request
from runpilot.time import utc_now
from runpilot.utils import shorten

if TYPE_CHECKING:
    from collections.abc import Iterable

    from runpilot.events import DomainEvent, EventBus
    from runpilot.models.entities import AgentCommand, Autopilot, Container
    from runpilot.time import Clock

PROVISIONAL_APPROVAL_REASON = "This action may post updates or change external documents."

_TITLE_PREFIXES = ("/agent", "/autopilot")
_AGENT_MENTIONS = ("@workspaceagent", "@workspace-agent", "@agent")


def _local_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


def normalize_title(text: str) -> str:
    """Title for a provisional run: command prefixes and agent mentions removed."""
    cleaned = text.strip()
    lowered = cleaned.lower()
    for prefix in _TITLE_PREFIXES:
        if lowered.startswith(prefix):
            cleaned = cleaned[len(prefix) :].lstrip()
            break
    for mention in _AGENT_MENTIONS:
        index = cleaned.lower().find(mention)
        while index >= 0:
            cleaned = cleaned[:index] + cleaned[index + len(mention) :]
            index = cleaned.lower().find(mention)
    cleaned = cleaned.strip()
    if not cleaned:
        return "Agent task"
    short = shorten(cleaned, PROVISIONAL_TITLE_MAX_LENGTH)
    return short[0].upper() + short[1:]


def infer_next_update(step: int, total_steps: int, output_format: OutputFormat | str) -> str:
    return f"Step {step}/{total_steps}: preparing {output_format} output and artifacts."


def should_ignore_stale_update(current: Run, incoming: Run) -> bool:
    """Whether a pushed update would regress a run the client already knows."""
    if current.id != incoming.id or current.created_at != incoming.created_at:
        return False
    if current.status.is_terminal and not incoming.status.is_terminal:
        return True
    if current.status is RunStatus.RUNNING and incoming.status is RunStatus.QUEUED:
        return True
    return current.progress_pct > incoming.progress_pct and incoming.status is RunStatus.QUEUED


def is_provisional(run_id: str) -> bool:
    return run_id.startswith(PROVISIONAL_RUN_PREFIX)


class ClientProjection:
    """Local run and message state kept in step with the push channel."""

    def __init__(self, *, clock: Clock = utc_now, user_id: str = DEFAULT_CREATED_BY) -> None:
        self._clock = clock
        self._user_id = user_id
        self.runs: dict[str, Run] = {}
        self.messages: dict[str, Message] = {}
        self.autopilots: dict[str, Autopilot] = {}
        self.runs_index: list[RunSummary] = []
        self.selected_run_id: str | None = None
        self.active_thread_root_id: str | None = None
        self.typing: AgentTyping | None = None
        self._bus: EventBus | None = None

    # ------------------------------------------------------------------
    # Push channel
    # ------------------------------------------------------------------

    def attach(self, bus: EventBus, snapshot: StateSnapshot | None = None) -> None:
        """Load the initial snapshot (when given) and follow future events."""
        if snapshot is not None:
            self.apply_event(snapshot)
        bus.add_handler(self.apply_event)
        self._bus = bus

    def detach(self) -> None:
        if self._bus is not None:
            self._bus.remove_handler(self.apply_event)
            self._bus = None

    def apply_event(self, event: DomainEvent) -> None:
        match event:
            case RunUpserted(run=run):
                self.upsert_run(run)
            case RunsIndexPublished(runs=rows):
                self.runs_index = list(rows)
            case MessagePosted(message=message):
                self.add_message(message)
            case AutopilotUpserted(autopilot=autopilot):
                self.autopilots[autopilot.id] = autopilot
            case AgentTyping():
                self.typing = event
            case StateSnapshot(runs=runs, autopilots=autopilots, messages=messages):
                for run in runs:
                    self.upsert_run(run)
                for autopilot in autopilots:
                    self.autopilots[autopilot.id] = autopilot
                for message in messages:
                    self.add_message(message)
            case _:
                pass

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    def upsert_run(self, run: Run) -> bool:
        """Install ``run`` unless it is a stale regression; returns whether it was applied."""
        existing = self.runs.get(run.id)
        if existing is not None and should_ignore_stale_update(existing, run):
            return False
        self.runs[run.id] = run
        self._reindex()
        return True

    def create_provisional_run(
        self, command: AgentCommand, *, autopilot_id: str | None = None
    ) -> Run:
        """Show a locally simulated run for ``command`` until the backend answers."""
        concise = is_concise_request(command.text, command.output_format)
        requires_approval = command.require_approval
        if requires_approval:
            current_step, total_steps = 2, 4
        else:
            current_step, total_steps = 1, 2 if concise else 3
        if requires_approval:
            latest_update = "Waiting approval for a proposed action in thread."
        elif concise:
            latest_update = CONCISE_LATEST_UPDATE
        else:
            latest_update = infer_next_update(current_step, total_steps, command.output_format)

        root_message_id = _local_id("msg-run")
        run = Run(
            id=_local_id(PROVISIONAL_RUN_PREFIX.rstrip("-")),
            title=normalize_title(command.text),
            status=RunStatus.NEEDS_APPROVAL if requires_approval else RunStatus.RUNNING,
            current_step=current_step,
            total_steps=total_steps,
            progress_pct=round(current_step / total_steps * 100),
            latest_update=latest_update,
            approval=ApprovalState(
                required=requires_approval,
                pending=requires_approval,
                reason=PROVISIONAL_APPROVAL_REASON if requires_approval else None,
            ),
            artifacts=[
                Artifact(id=_local_id("artifact"), type=ArtifactType.DOC, title="Working notes"),
                Artifact(id=_local_id("artifact"), type=ArtifactType.PR, title="Draft PR link"),
                Artifact(id=_local_id("artifact"), type=ArtifactType.CANVAS, title="Plan canvas"),
            ],
            container=command.container,
            root_message_id=root_message_id,
            thread_id=root_message_id,
            autopilot_id=autopilot_id,
            created_at=self._clock(),
            created_by=self._user_id,
        )
        self.runs[run.id] = run
        self._reindex()

        self._post_agent_message(
            run, f"Run started: {run.title}", kind=MessageKind.RUN_CARD, message_id=root_message_id
        )
        if not concise:
            self._post_agent_message(
                run,
                f"Step 1/{total_steps}: gathering context from selected messages and files.",
                parent_id=root_message_id,
            )
        if requires_approval:
            self._post_agent_message(run, f"Proposed action: {command.text}", parent_id=root_message_id)
        return run

    def project_continuation(self, run_id: str, command: AgentCommand) -> Run | None:
        """Optimistically advance a known run by one step for a follow-up in its thread."""
        run = self.runs.get(run_id)
        if run is None or run.status.is_terminal:
            return None
        concise = is_concise_request(command.text, command.output_format)
        total_steps = run.total_steps or 3
        next_step = min(run.current_step + 1, total_steps)
        gated = command.require_approval and next_step >= 2
        status = RunStatus.NEEDS_APPROVAL if gated else RunStatus.RUNNING
        next_update = infer_next_update(next_step, total_steps, command.output_format)
        updated = run.model_copy(
            update={
                "status": status,
                "current_step": next_step,
                "progress_pct": max(run.progress_pct, round(next_step / total_steps * 100)),
                "latest_update": (
                    "Waiting approval for proposed action in thread." if gated else next_update
                ),
                "approval": (
                    ApprovalState(
                        required=True,
                        pending=True,
                        reason=run.approval.reason or PROVISIONAL_APPROVAL_REASON,
                    )
                    if gated
                    else run.approval
                ),
            }
        )
        self.runs[run_id] = updated
        self._reindex()
        if gated:
            self._post_agent_message(updated, f"Proposed action: {command.text}", parent_id=run.root_message_id)
        elif not concise:
            self._post_agent_message(updated, next_update, parent_id=run.root_message_id)
        return updated

    def reconcile(self, provisional_id: str, authoritative: Run) -> Run:
        """Replace a provisional run with the backend's run and redirect local pointers."""
        provisional = self.runs.pop(provisional_id, None)
        if provisional is None:
            self.upsert_run(authoritative)
            return self.runs[authoritative.id]

        provisional_root = provisional.root_message_id
        self._drop_run_messages(provisional_id, provisional_root)

        existing = self.runs.get(authoritative.id)
        if existing is None or not should_ignore_stale_update(existing, authoritative):
            self.runs[authoritative.id] = authoritative
        installed = self.runs[authoritative.id]

        if installed.root_message_id not in self.messages:
            self.messages[installed.root_message_id] = Message(
                id=installed.root_message_id,
                channel_id=installed.container.id,
                user_id=AGENT_USER_ID,
                text=installed.title,
                ts=self._clock(),
                kind=MessageKind.RUN_CARD,
                is_bot=True,
                run_id=installed.id,
            )

        if self.selected_run_id == provisional_id:
            self.selected_run_id = installed.id
        if self.active_thread_root_id == provisional_root:
            self.active_thread_root_id = installed.root_message_id
        self._reindex()
        return installed

    def rollback_continuation(self, previous: Run, message_ids: Iterable[str]) -> None:
        """Put back a run as it was before :meth:`project_continuation` touched it."""
        self.runs[previous.id] = previous
        for message_id in message_ids:
            self.messages.pop(message_id, None)
        self._reindex()

    def discard_run(self, run_id: str) -> None:
        """Forget a run and every message tied to it."""
        run = self.runs.pop(run_id, None)
        if run is None:
            return
        self._drop_run_messages(run_id, run.root_message_id)
        if self.selected_run_id == run_id:
            self.selected_run_id = None
        if self.active_thread_root_id == run.root_message_id:
            self.active_thread_root_id = None
        self._reindex()

    def select_run(self, run_id: str | None) -> None:
        self.selected_run_id = run_id

    def open_run_thread(self, run_id: str) -> None:
        run = self.runs.get(run_id)
        if run is None:
            return
        self.selected_run_id = run.id
        self.active_thread_root_id = run.root_message_id

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def add_message(self, message: Message) -> bool:
        """Add a message once; repeated deliveries of the same id are ignored."""
        if message.id in self.messages:
            return False
        self.messages[message.id] = message
        return True

    def post_notice(self, container: Container, text: str, *, parent_id: str | None = None) -> Message:
        message = Message(
            id=_local_id("msg"),
            channel_id=container.id,
            user_id=AGENT_USER_ID,
            text=text,
            ts=self._clock(),
            is_bot=True,
            parent_id=parent_id,
        )
        self.add_message(message)
        return message

    def thread_messages(self, root_message_id: str) -> list[Message]:
        return [message for message in self.messages.values() if message.parent_id == root_message_id]

    def root_cards(self, run_id: str) -> list[Message]:
        return [
            message
            for message in self.messages.values()
            if message.kind is MessageKind.RUN_CARD and message.run_id == run_id
        ]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _post_agent_message(
        self,
        run: Run,
        text: str,
        *,
        kind: MessageKind = MessageKind.MESSAGE,
        parent_id: str | None = None,
        message_id: str | None = None,
    ) -> Message:
        message = Message(
            id=message_id or _local_id("msg"),
            channel_id=run.container.id,
            user_id=AGENT_USER_ID,
            text=text,
            ts=self._clock(),
            kind=kind,
            is_bot=True,
            parent_id=parent_id,
            run_id=run.id,
        )
        self.add_message(message)
        return message

    def _drop_run_messages(self, run_id: str, root_message_id: str) -> None:
        self.messages = {
            message_id: message
            for message_id, message in self.messages.items()
            if message_id != root_message_id
            and message.parent_id != root_message_id
            and message.run_id != run_id
        }

    def _reindex(self) -> None:
        ordered = sorted(self.runs.values(), key=lambda run: run.created_at, reverse=True)
        self.runs_index = [run.summary() for run in ordered]


__all__ = [
    "ClientProjection",
    "infer_next_update",
    "is_provisional",
    "normalize_title",
    "should_ignore_stale_update",
]
