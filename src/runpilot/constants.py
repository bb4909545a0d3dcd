from runpilot.models.enums import RunStatus

AGENT_USER_ID = "workspace-agent"
DEFAULT_CREATED_BY = "you"

CONCISE_STEPS: tuple[str, str] = ("Gathering context", "Composing concise summary")
CONCISE_LATEST_UPDATE = "Preparing summary deliverable..."

RISKY_VERBS: tuple[str, ...] = (
    "send",
    "delete",
    "deploy",
    "create calendar event",
    "push",
    "merge",
)

DEFAULT_APPROVAL_REASON = "Run includes risky actions."
REQUESTED_APPROVAL_REASON = "Approval required by settings."
RISKY_ACTION_APPROVAL_REASON = "Potentially risky action detected."
CANVAS_LINK_LABEL = "Open Canvas"
DELIVERABLE_DEFAULT_TITLE = "Deliverable"
TODO_RUN_TITLE = "To-do list"

HALTED_RUN_STATUSES: frozenset[RunStatus] = frozenset(
    {
        RunStatus.PAUSED,
        RunStatus.STOPPED,
        RunStatus.FAILED,
        RunStatus.NEEDS_APPROVAL,
        RunStatus.COMPLETED,
    }
)
"""A progression tick that observes one of these statuses exits without acting."""

PROVISIONAL_RUN_PREFIX = "provisional-"
