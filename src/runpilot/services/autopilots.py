"""Autopilot definitions and firing."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from runpilot.debug_log import log as debug_log
from runpilot.errors import AutopilotNotFoundError, CommandValidationError
from runpilot.models.entities import AgentCommand, Autopilot, AutopilotSpec
from runpilot.time import utc_now

if TYPE_CHECKING:
    from datetime import datetime

    from runpilot.models.entities import Run
    from runpilot.services.engine import RunEngine
    from runpilot.services.registry import RunRegistry
    from runpilot.time import Clock

_EDITABLE_FIELDS = frozenset(AutopilotSpec.model_fields)
_FIELD_BY_ALIAS = {
    info.alias or name: name for name, info in AutopilotSpec.model_fields.items()
}


class AutopilotService:
    """Creates, edits and fires autopilots.

    Firing is shared by the scheduler and manual triggers: it starts a run from
    the autopilot's instruction and destination, then stamps ``last_run_at``
    even when starting the run failed, so a failing autopilot is not retried
    before its next interval.
    """

    def __init__(self, registry: RunRegistry, engine: RunEngine, *, clock: Clock = utc_now) -> None:
        self._registry = registry
        self._engine = engine
        self._clock = clock

    def create(self, spec: AutopilotSpec) -> Autopilot:
        autopilot = self._registry.create_autopilot(spec)
        debug_log.info("Autopilot created", autopilot_id=autopilot.id, cadence=autopilot.cadence.kind)
        return autopilot

    def update(self, autopilot_id: str, changes: dict[str, Any]) -> Autopilot:
        """Apply a partial edit; unknown or invalid fields are rejected before mutation."""
        current = self.require(autopilot_id)
        changes = {_FIELD_BY_ALIAS.get(key, key): value for key, value in changes.items()}
        unknown = sorted(set(changes) - _EDITABLE_FIELDS)
        if unknown:
            raise CommandValidationError(f"Unknown autopilot fields: {', '.join(unknown)}")
        merged = {**current.model_dump(include=_EDITABLE_FIELDS), **changes}
        try:
            spec = AutopilotSpec.model_validate(merged)
        except ValueError as exc:
            raise CommandValidationError(str(exc)) from exc
        updated = self._registry.patch_autopilot(autopilot_id, **dict(spec))
        assert updated is not None
        return updated

    def require(self, autopilot_id: str) -> Autopilot:
        autopilot = self._registry.get_autopilot(autopilot_id)
        if autopilot is None:
            raise AutopilotNotFoundError(autopilot_id)
        return autopilot

    async def fire(self, autopilot_id: str, *, fired_at: datetime | None = None) -> Run:
        """Start a run for the autopilot now, regardless of its cadence."""
        autopilot = self.require(autopilot_id)
        return await self.dispatch(autopilot, fired_at or self._clock())

    async def dispatch(self, autopilot: Autopilot, fired_at: datetime) -> Run:
        run: Run | None = None
        try:
            run = await self._engine.start(
                AgentCommand.from_autopilot(autopilot), autopilot_id=autopilot.id
            )
            return run
        finally:
            self._registry.record_autopilot_firing(
                autopilot.id,
                fired_at=fired_at,
                run_id=run.id if run is not None else None,
            )
            debug_log.info(
                "Autopilot fired",
                autopilot_id=autopilot.id,
                run_id=run.id if run is not None else None,
            )


__all__ = ["AutopilotService"]
