"""Run lifecycle engine.

Each run is advanced by at most one driver task. A driver sleeps between
steps and re-reads the run and its execution state after every suspension,
exiting as soon as the run is no longer allowed to progress. Pause, stop and
deny therefore need no task cancellation; resume and approve start a new
driver only when none is alive.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

import anyio

from runpilot.config import TimingConfig
from runpilot.constants import (
    AGENT_USER_ID,
    CANVAS_LINK_LABEL,
    CONCISE_LATEST_UPDATE,
    CONCISE_STEPS,
    DEFAULT_APPROVAL_REASON,
    DEFAULT_CREATED_BY,
    HALTED_RUN_STATUSES,
    TODO_RUN_TITLE,
)
from runpilot.debug_log import log as debug_log
from runpilot.errors import InvalidTransitionError, RunNotFoundError
from runpilot.events import AgentTyping
from runpilot.limits import MAX_PROGRESS_BEFORE_DELIVERY
from runpilot.models.entities import ApprovalState, ArtifactLink
from runpilot.models.enums import (
    ApprovalDecision,
    ControlAction,
    RunStatus,
    transition_status_from_approval,
    transition_status_from_control,
)
from runpilot.services.planner import PlanRequest, propose_plan_or_fallback
from runpilot.services.policies import (
    DEFAULT_APPROVAL_POLICIES,
    ApprovalContext,
    approval_reason,
    approval_required,
    is_concise_request,
    is_todo_request,
)
from runpilot.utils import BackgroundTasks

if TYPE_CHECKING:
    from collections.abc import Sequence

    from runpilot.events import EventPublisher
    from runpilot.models.entities import AgentCommand, Run
    from runpilot.services.planner import PlanProposer
    from runpilot.services.policies import ApprovalPolicy
    from runpilot.services.registry import RunRegistry

log = logging.getLogger(__name__)


@dataclass(slots=True)
class ExecutionState:
    """Engine-private progress of a running plan."""

    steps: tuple[str, ...]
    summary: str
    command: AgentCommand
    concise: bool
    gate_required: bool
    approval_reason: str | None = None
    current_step: int = 0
    approval_granted: bool = False

    @property
    def total_steps(self) -> int:
        return len(self.steps)


class TickAction(StrEnum):
    HALT = "halt"
    DELIVER = "deliver"
    ADVANCE = "advance"


class StepOutcome(StrEnum):
    AWAIT_APPROVAL = "await_approval"
    CONTINUE = "continue"


def decide_tick(run: Run | None, state: ExecutionState | None) -> TickAction:
    """Decide what a progression tick does for the current run and state."""
    if run is None or state is None or run.status in HALTED_RUN_STATUSES:
        return TickAction.HALT
    if state.current_step >= state.total_steps:
        return TickAction.DELIVER
    return TickAction.ADVANCE


def decide_after_step(run: Run, state: ExecutionState) -> StepOutcome:
    """Decide whether the approval gate opens after a step was executed."""
    if (
        state.gate_required
        and state.current_step >= 1
        and not state.approval_granted
        and run.status is not RunStatus.NEEDS_APPROVAL
    ):
        return StepOutcome.AWAIT_APPROVAL
    return StepOutcome.CONTINUE


def next_progress(current_pct: int, step: int, total_steps: int) -> int:
    """Progress after ``step`` of ``total_steps``; capped before delivery and never lowered."""
    if total_steps <= 0:
        return current_pct
    computed = min(MAX_PROGRESS_BEFORE_DELIVERY, step * 100 // total_steps)
    return max(current_pct, computed)


def build_deliverable_body(title: str, summary: str) -> str:
    """Markdown deliverable headed by ``title`` with a repeated leading title removed."""
    escaped = re.escape(title)
    redundant_title = re.compile(
        rf"^(?:\*\*{escaped}\*\*|#\s+{escaped}|##\s+{escaped})\s*\n+",
        re.IGNORECASE,
    )
    cleaned = redundant_title.sub("", summary.strip(), count=1)
    return f"## {title}\n\n{cleaned}".strip()


def deliverable_title(run: Run, command_text: str) -> str:
    if is_todo_request(command_text):
        return f"To-Do's from {run.container.label}"
    return run.title


class RunEngine:
    """Drives runs from ``running`` to a terminal status."""

    def __init__(
        self,
        registry: RunRegistry,
        proposer: PlanProposer,
        publish: EventPublisher,
        *,
        timing: TimingConfig | None = None,
        policies: Sequence[ApprovalPolicy] = DEFAULT_APPROVAL_POLICIES,
        created_by: str = DEFAULT_CREATED_BY,
    ) -> None:
        self._registry = registry
        self._proposer = proposer
        self._publish = publish
        self._timing = timing or TimingConfig()
        self._policies = tuple(policies)
        self._created_by = created_by
        self._executions: dict[str, ExecutionState] = {}
        self._drivers: dict[str, asyncio.Task[None]] = {}
        self._tasks = BackgroundTasks()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def start(self, command: AgentCommand, *, autopilot_id: str | None = None) -> Run:
        """Plan ``command`` and start a run, continuing the thread's run when it is still live."""
        continue_id = command.in_thread.run_id if command.in_thread else None
        if continue_id is not None and self._registry.get_run(continue_id) is None:
            raise RunNotFoundError(continue_id)

        plan = await propose_plan_or_fallback(self._proposer, PlanRequest.from_command(command))
        concise = is_concise_request(command.text, command.output_format)
        steps = CONCISE_STEPS if concise else plan.steps
        gate_context = ApprovalContext(
            request_text=command.text,
            steps=tuple(steps),
            require_approval=command.require_approval,
            proposer_declared=plan.needs_approval,
        )
        gate_required = approval_required(gate_context, self._policies)
        reason = approval_reason(gate_context, plan.approval_reason) if gate_required else None

        run = self._continuable_run(continue_id)
        if run is None:
            run = self._registry.create_run(
                title=TODO_RUN_TITLE if is_todo_request(command.text) else plan.title,
                created_by=self._created_by,
                container=command.container,
                autopilot_id=autopilot_id,
            )
            self._registry.post_run_card(run)

        started = self._registry.patch_run(
            run.id,
            status=RunStatus.PAUSED if run.status is RunStatus.PAUSED else RunStatus.RUNNING,
            current_step=0,
            total_steps=len(steps),
            latest_update=CONCISE_LATEST_UPDATE if concise else "Run started",
            artifacts=list(plan.artifacts),
            approval=ApprovalState(required=gate_required, pending=False, reason=reason),
        )
        assert started is not None
        if not concise:
            self._registry.post_thread_message(started, f"Starting run: {plan.title}")

        self._executions[started.id] = ExecutionState(
            steps=tuple(steps),
            summary=plan.summary,
            command=command,
            concise=concise,
            gate_required=gate_required,
            approval_reason=reason,
        )
        debug_log.info(
            "Run started",
            run_id=started.id,
            steps=len(steps),
            concise=concise,
            gated=gate_required,
            fallback=plan.is_fallback,
        )
        self._ensure_driver(started.id, delay=0.0)
        return started

    def approve(self, run_id: str, decision: ApprovalDecision) -> Run:
        """Resolve a pending approval gate."""
        run = self._require_run(run_id)
        if transition_status_from_approval(run.status, decision) is None:
            raise InvalidTransitionError(run_id, run.status, str(decision))

        settled = ApprovalState(required=True, pending=False, reason=run.approval.reason)
        if decision is ApprovalDecision.DENY:
            updated = self._registry.patch_run(
                run_id, status=RunStatus.FAILED, latest_update="Denied", approval=settled
            )
            assert updated is not None
            self._registry.post_thread_message(updated, "Approval denied. Run stopped.")
            self._executions.pop(run_id, None)
            debug_log.info("Run denied", run_id=run_id)
            return updated

        state = self._executions.get(run_id)
        if state is not None:
            state.approval_granted = True
        updated = self._registry.patch_run(
            run_id,
            status=RunStatus.RUNNING,
            latest_update="Approval granted, resuming",
            approval=settled,
        )
        assert updated is not None
        self._registry.post_thread_message(updated, "Approval granted. Continuing run.")
        debug_log.info("Run approved", run_id=run_id)
        self._ensure_driver(run_id, delay=self._timing.resume_delay_seconds)
        return updated

    def control(self, run_id: str, action: ControlAction) -> Run:
        """Pause, stop or resume a run."""
        run = self._require_run(run_id)
        if transition_status_from_control(run.status, action) is None:
            raise InvalidTransitionError(run_id, run.status, str(action))

        match action:
            case ControlAction.PAUSE:
                updated = self._registry.patch_run(
                    run_id, status=RunStatus.PAUSED, latest_update="Paused by user"
                )
            case ControlAction.STOP:
                updated = self._registry.patch_run(
                    run_id,
                    status=RunStatus.STOPPED,
                    latest_update="Stopped by user",
                    approval=run.approval.model_copy(update={"pending": False}),
                )
                self._executions.pop(run_id, None)
            case ControlAction.RESUME:
                updated = self._registry.patch_run(
                    run_id, status=RunStatus.RUNNING, latest_update="Resumed"
                )
                self._ensure_driver(run_id, delay=self._timing.resume_delay_seconds)
        assert updated is not None
        debug_log.info("Run control", run_id=run_id, action=str(action))
        return updated

    async def join(self, run_id: str, *, timeout_seconds: float | None = None) -> Run:
        """Wait until the run has no live driver, then return its current record."""
        task = self._drivers.get(run_id)
        if task is not None and not task.done():
            finished = anyio.Event()
            task.add_done_callback(lambda _task: finished.set())
            if timeout_seconds is None:
                await finished.wait()
            else:
                with anyio.move_on_after(timeout_seconds):
                    await finished.wait()
        return self._require_run(run_id)

    @property
    def proposer(self) -> PlanProposer:
        return self._proposer

    def has_execution(self, run_id: str) -> bool:
        return run_id in self._executions

    async def shutdown(self) -> None:
        await self._tasks.shutdown()
        self._drivers.clear()

    # ------------------------------------------------------------------
    # Driver
    # ------------------------------------------------------------------

    def _require_run(self, run_id: str) -> Run:
        run = self._registry.get_run(run_id)
        if run is None:
            raise RunNotFoundError(run_id)
        return run

    def _continuable_run(self, run_id: str | None) -> Run | None:
        if run_id is None:
            return None
        run = self._registry.get_run(run_id)
        if run is None:
            raise RunNotFoundError(run_id)
        return None if run.status.is_terminal else run

    def _ensure_driver(self, run_id: str, *, delay: float) -> None:
        current = self._drivers.get(run_id)
        if current is not None and not current.done():
            return
        task = self._tasks.spawn(self._drive(run_id, delay), name=f"run-driver-{run_id}")
        self._drivers[run_id] = task

        def _forget(done: asyncio.Task[None]) -> None:
            if self._drivers.get(run_id) is done:
                del self._drivers[run_id]

        task.add_done_callback(_forget)

    async def _drive(self, run_id: str, delay: float) -> None:
        if delay > 0:
            await asyncio.sleep(delay)
        while True:
            run = self._registry.get_run(run_id)
            state = self._executions.get(run_id)
            action = decide_tick(run, state)
            if action is TickAction.HALT:
                return
            assert run is not None and state is not None
            if action is TickAction.DELIVER:
                self._deliver(run, state)
                return

            self._publish(
                AgentTyping(user_id=AGENT_USER_ID, channel_id=run.container.id, parent_id=run.thread_id)
            )
            await asyncio.sleep(self._timing.step_latency_seconds)

            run = self._registry.get_run(run_id)
            state = self._executions.get(run_id)
            if decide_tick(run, state) is not TickAction.ADVANCE:
                # Paused, stopped or continued while the step was in flight.
                continue
            assert run is not None and state is not None
            run = self._advance(run, state)
            if decide_after_step(run, state) is StepOutcome.AWAIT_APPROVAL:
                self._open_gate(run, state)
                return
            await asyncio.sleep(self._timing.step_delay_seconds)

    def _advance(self, run: Run, state: ExecutionState) -> Run:
        step = state.steps[state.current_step]
        if not state.concise:
            self._registry.post_thread_message(run, f"Step {state.current_step + 1}: {step}")
        state.current_step += 1
        debug_log.debug("Run step", run_id=run.id, step=state.current_step, total=state.total_steps)
        updated = self._registry.patch_run(
            run.id,
            status=RunStatus.RUNNING,
            current_step=state.current_step,
            progress_pct=next_progress(run.progress_pct, state.current_step, state.total_steps),
            latest_update=CONCISE_LATEST_UPDATE if state.concise else step,
        )
        assert updated is not None
        return updated

    def _open_gate(self, run: Run, state: ExecutionState) -> None:
        reason = state.approval_reason or DEFAULT_APPROVAL_REASON
        gated = self._registry.patch_run(
            run.id,
            status=RunStatus.NEEDS_APPROVAL,
            latest_update="Waiting for approval",
            approval=ApprovalState(required=True, pending=True, reason=reason),
        )
        assert gated is not None
        self._registry.post_thread_message(gated, f"Approval gate: {reason} Use Approve or Deny.")
        debug_log.info("Run awaiting approval", run_id=run.id, step=state.current_step)

    def _deliver(self, run: Run, state: ExecutionState) -> None:
        title = deliverable_title(run, state.command.text)
        self._registry.post_deliverable(
            run,
            body=build_deliverable_body(title, state.summary),
            title=title,
            artifact_links=[ArtifactLink(label=CANVAS_LINK_LABEL, target_id=run.id)],
        )
        self._registry.patch_run(
            run.id,
            status=RunStatus.COMPLETED,
            progress_pct=100,
            latest_update=f"Delivered: {run.title}",
        )
        self._executions.pop(run.id, None)
        debug_log.info("Run completed", run_id=run.id)


__all__ = [
    "ExecutionState",
    "RunEngine",
    "StepOutcome",
    "TickAction",
    "build_deliverable_body",
    "decide_after_step",
    "decide_tick",
    "deliverable_title",
    "next_progress",
]
