"""Typed orchestration API for all Runpilot operations.

RunpilotAPI wraps AppContext and exposes direct method calls instead of
stringly-typed (capability, method) dispatch. Payloads may be passed as
validated models or as raw wire dictionaries; malformed payloads raise
:class:`CommandValidationError` before anything is mutated.
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ValidationError

from runpilot.errors import (
    AutopilotNotFoundError,
    CommandValidationError,
    InvalidTransitionError,
    RunNotFoundError,
    RunpilotError,
)
from runpilot.models.entities import AgentCommand, AutopilotSpec
from runpilot.models.enums import ApprovalDecision, ControlAction
from runpilot.services.planner import draft_autopilot_or_fallback

if TYPE_CHECKING:
    from runpilot.bootstrap import AppContext
    from runpilot.events import StateSnapshot
    from runpilot.models.entities import Autopilot, Message, Run, RunSummary


def _coerce_model[ModelT: BaseModel](model: type[ModelT], payload: ModelT | dict[str, Any]) -> ModelT:
    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise CommandValidationError(str(exc)) from exc


def _coerce_enum[EnumT: StrEnum](enum_type: type[EnumT], value: object, *, field: str) -> EnumT:
    try:
        return enum_type(str(value).strip().lower())
    except ValueError as exc:
        allowed = ", ".join(member.value for member in enum_type)
        raise CommandValidationError(f"Invalid {field} {value!r}; expected one of: {allowed}") from exc


class RunpilotAPI:
    """Command surface over the registry, engine and autopilot service."""

    def __init__(self, ctx: AppContext) -> None:
        self._ctx = ctx

    @property
    def ctx(self) -> AppContext:
        return self._ctx

    # ── Runs ───────────────────────────────────────────────────────────

    async def submit_command(self, command: AgentCommand | dict[str, Any]) -> Run:
        """Start a run for a user command (or continue the thread's run)."""
        return await self._ctx.engine.start(_coerce_model(AgentCommand, command))

    def decide_approval(self, run_id: str, decision: ApprovalDecision | str) -> Run:
        return self._ctx.engine.approve(
            run_id, _coerce_enum(ApprovalDecision, decision, field="decision")
        )

    def control_run(self, run_id: str, action: ControlAction | str) -> Run:
        return self._ctx.engine.control(run_id, _coerce_enum(ControlAction, action, field="action"))

    def get_run(self, run_id: str) -> Run:
        run = self._ctx.registry.get_run(run_id)
        if run is None:
            raise RunNotFoundError(run_id)
        return run

    def list_runs(self) -> tuple[RunSummary, ...]:
        """Recency-sorted runs index."""
        return self._ctx.registry.runs_index()

    def list_messages(
        self, *, channel_id: str | None = None, run_id: str | None = None
    ) -> list[Message]:
        return self._ctx.registry.list_messages(channel_id=channel_id, run_id=run_id)

    async def wait_for_run(self, run_id: str, *, timeout_seconds: float | None = None) -> Run:
        """Wait until the run stops progressing on its own (terminal, gated or paused)."""
        return await self._ctx.engine.join(run_id, timeout_seconds=timeout_seconds)

    # ── Autopilots ─────────────────────────────────────────────────────

    def create_autopilot(self, spec: AutopilotSpec | dict[str, Any]) -> Autopilot:
        return self._ctx.autopilots.create(_coerce_model(AutopilotSpec, spec))

    def update_autopilot(self, autopilot_id: str, changes: dict[str, Any]) -> Autopilot:
        return self._ctx.autopilots.update(autopilot_id, changes)

    def get_autopilot(self, autopilot_id: str) -> Autopilot:
        return self._ctx.autopilots.require(autopilot_id)

    def list_autopilots(self) -> list[Autopilot]:
        return self._ctx.registry.list_autopilots()

    async def fire_autopilot(self, autopilot_id: str) -> Run:
        """Run an autopilot immediately, recording the firing in its history."""
        return await self._ctx.autopilots.fire(autopilot_id)

    async def preview_autopilot(
        self, command: AgentCommand | dict[str, Any], *, tz: str = "UTC"
    ) -> AutopilotSpec:
        """Draft an autopilot definition from a command without saving it."""
        return await draft_autopilot_or_fallback(
            self._ctx.engine.proposer, _coerce_model(AgentCommand, command), tz=tz
        )

    # ── State ──────────────────────────────────────────────────────────

    def snapshot(self) -> StateSnapshot:
        return self._ctx.registry.snapshot()


__all__ = [
    "AutopilotNotFoundError",
    "CommandValidationError",
    "InvalidTransitionError",
    "RunNotFoundError",
    "RunpilotAPI",
    "RunpilotError",
]
