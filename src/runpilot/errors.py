"""Domain errors with machine-readable codes."""

from __future__ import annotations


class RunpilotError(ValueError):
    """Base for domain errors carrying a machine-readable code."""

    def __init__(self, message: str, *, code: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


class RunNotFoundError(RunpilotError):
    """Raised when the target run does not exist."""

    def __init__(self, run_id: str) -> None:
        super().__init__(f"Run {run_id} not found", code="RUN_NOT_FOUND")
        self.run_id = run_id


class AutopilotNotFoundError(RunpilotError):
    """Raised when the target autopilot does not exist."""

    def __init__(self, autopilot_id: str) -> None:
        super().__init__(f"Autopilot {autopilot_id} not found", code="AUTOPILOT_NOT_FOUND")
        self.autopilot_id = autopilot_id


class InvalidTransitionError(RunpilotError):
    """Raised when an action is not allowed from the run's current status."""

    def __init__(self, run_id: str, status: str, action: str) -> None:
        super().__init__(
            f"Cannot {action} run {run_id} while it is {status}",
            code="INVALID_TRANSITION",
        )
        self.run_id = run_id
        self.status = status
        self.action = action


class CommandValidationError(RunpilotError):
    """Raised when a command payload fails validation before any mutation."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="INVALID_PARAMS")


__all__ = [
    "AutopilotNotFoundError",
    "CommandValidationError",
    "InvalidTransitionError",
    "RunNotFoundError",
    "RunpilotError",
]
