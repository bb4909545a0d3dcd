"""Client session: optimistic command submission over a transport."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from runpilot.client.transport import TransportError
from runpilot.models.entities import AgentCommand, Run

if TYPE_CHECKING:
    from runpilot.client.projection import ClientProjection
    from runpilot.client.transport import Transport
    from runpilot.models.entities import Autopilot, Container
    from runpilot.models.enums import ApprovalDecision, ControlAction

log = logging.getLogger(__name__)


class ClientSession:
    """Submits commands and keeps a :class:`ClientProjection` consistent.

    A failed call is never retried: the provisional run and its messages are
    discarded, a projected follow-up is rolled back, and exactly one failure
    notice is posted where the command was issued.
    """

    def __init__(self, transport: Transport, projection: ClientProjection) -> None:
        self._transport = transport
        self._projection = projection

    @property
    def projection(self) -> ClientProjection:
        return self._projection

    async def submit(self, command: AgentCommand) -> Run | None:
        """Submit a user command; returns the reconciled run or None on failure."""
        continue_id = command.in_thread.run_id if command.in_thread else None
        previous = self._projection.runs.get(continue_id) if continue_id else None
        known_messages = set(self._projection.messages)
        continued = (
            self._projection.project_continuation(continue_id, command) if continue_id else None
        )
        provisional = None
        if continued is None:
            provisional = self._projection.create_provisional_run(command)
            self._projection.select_run(provisional.id)

        try:
            result = await self._transport.request(
                "runs", "submit", {"command": command.to_wire()}
            )
        except TransportError as exc:
            if provisional is not None:
                self._projection.discard_run(provisional.id)
            elif continued is not None and previous is not None:
                added = set(self._projection.messages) - known_messages
                self._projection.rollback_continuation(previous, added)
            self._notify_failure(
                command.container,
                parent_id=command.in_thread.thread_id if command.in_thread else None,
                text=f"Agent call failed: {exc.message}.",
            )
            return None

        run = Run.model_validate(result["run"])
        if provisional is not None:
            return self._projection.reconcile(provisional.id, run)
        self._projection.upsert_run(run)
        return self._projection.runs[run.id]

    async def fire_autopilot(self, autopilot: Autopilot) -> Run | None:
        """Run an autopilot now, showing a provisional run until the backend answers."""
        provisional = self._projection.create_provisional_run(
            AgentCommand.from_autopilot(autopilot), autopilot_id=autopilot.id
        )
        try:
            result = await self._transport.request(
                "autopilots", "fire", {"autopilotId": autopilot.id}
            )
        except TransportError as exc:
            self._projection.discard_run(provisional.id)
            self._notify_failure(
                autopilot.destination, text=f"Autopilot run failed: {exc.message}."
            )
            return None
        return self._projection.reconcile(provisional.id, Run.model_validate(result["run"]))

    async def decide(self, run_id: str, decision: ApprovalDecision) -> Run | None:
        return await self._run_action(run_id, "approve", {"runId": run_id, "decision": str(decision)})

    async def control(self, run_id: str, action: ControlAction) -> Run | None:
        return await self._run_action(run_id, "control", {"runId": run_id, "action": str(action)})

    async def _run_action(self, run_id: str, method: str, params: dict[str, str]) -> Run | None:
        try:
            result = await self._transport.request("runs", method, params)
        except TransportError as exc:
            run = self._projection.runs.get(run_id)
            if run is not None:
                self._notify_failure(
                    run.container,
                    parent_id=run.root_message_id,
                    text=f"Agent call failed: {exc.message}.",
                )
            return None
        run = Run.model_validate(result["run"])
        self._projection.upsert_run(run)
        return self._projection.runs.get(run.id)

    def _notify_failure(self, container: Container, *, text: str, parent_id: str | None = None) -> None:
        log.warning("Client command failed: %s", text)
        self._projection.post_notice(container, text, parent_id=parent_id)


__all__ = ["ClientSession"]
