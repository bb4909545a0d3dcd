"""Core domain enums."""

from __future__ import annotations

from enum import StrEnum


class RunStatus(StrEnum):
    """Run lifecycle status values."""

    QUEUED = "queued"
    RUNNING = "running"
    NEEDS_APPROVAL = "needs_approval"
    PAUSED = "paused"
    STOPPED = "stopped"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_RUN_STATUSES


TERMINAL_RUN_STATUSES: frozenset[RunStatus] = frozenset(
    {RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.STOPPED}
)


class ApprovalDecision(StrEnum):
    APPROVE = "approve"
    DENY = "deny"


class ControlAction(StrEnum):
    PAUSE = "pause"
    STOP = "stop"
    RESUME = "resume"


def transition_status_from_approval(
    current_status: RunStatus, decision: ApprovalDecision
) -> RunStatus | None:
    """Return the status after an approval decision, or None when not awaiting one."""
    if current_status is not RunStatus.NEEDS_APPROVAL:
        return None
    if decision is ApprovalDecision.DENY:
        return RunStatus.FAILED
    return RunStatus.RUNNING


def transition_status_from_control(
    current_status: RunStatus, action: ControlAction
) -> RunStatus | None:
    """Return the status after a user control action, or None when not allowed."""
    if current_status.is_terminal:
        return None
    match action:
        case ControlAction.STOP:
            return RunStatus.STOPPED
        case ControlAction.PAUSE if current_status in (RunStatus.QUEUED, RunStatus.RUNNING):
            return RunStatus.PAUSED
        case ControlAction.RESUME if current_status is RunStatus.PAUSED:
            return RunStatus.RUNNING
        case _:
            return None


class ContainerType(StrEnum):
    """Where a run lives: a channel or a direct message."""

    CHANNEL = "channel"
    DM = "dm"


class OutputFormat(StrEnum):
    BRIEF = "brief"
    CHECKLIST = "checklist"
    DOC = "doc"
    PR = "pr"


class MessageKind(StrEnum):
    MESSAGE = "message"
    RUN_CARD = "run_card"
    DELIVERABLE = "deliverable"


class ArtifactType(StrEnum):
    DOC = "doc"
    LINK = "link"
    PR = "pr"
    CANVAS = "canvas"


class CadenceKind(StrEnum):
    """Recurrence kinds for autopilots."""

    HOURLY = "hourly"
    DAILY = "daily"
    WEEKDAY = "weekday"
    WEEKLY = "weekly"
    CUSTOM = "custom"


class DeliveryMode(StrEnum):
    DIGEST = "digest"
    VERBOSE = "verbose"


__all__ = [
    "TERMINAL_RUN_STATUSES",
    "ApprovalDecision",
    "ArtifactType",
    "CadenceKind",
    "ContainerType",
    "ControlAction",
    "DeliveryMode",
    "MessageKind",
    "OutputFormat",
    "RunStatus",
    "transition_status_from_approval",
    "transition_status_from_control",
]
