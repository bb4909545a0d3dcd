"""Test helpers package."""

from tests.helpers.factories import (
    FailingProposer,
    ScriptedProposer,
    make_autopilot_spec,
    make_command,
    make_run,
)
from tests.helpers.wait import wait_for_run_status, wait_until

__all__ = [
    "FailingProposer",
    "ScriptedProposer",
    "make_autopilot_spec",
    "make_command",
    "make_run",
    "wait_for_run_status",
    "wait_until",
]
