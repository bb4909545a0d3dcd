"""Service layer: registry, lifecycle engine, scheduler and plan proposers."""

from runpilot.services.autopilots import AutopilotService
from runpilot.services.engine import ExecutionState, RunEngine, StepOutcome, TickAction
from runpilot.services.planner import (
    FallbackPlanProposer,
    OpenAIPlanProposer,
    PlanProposer,
    PlanRequest,
    RunPlan,
    build_plan_proposer,
)
from runpilot.services.registry import RunRegistry
from runpilot.services.scheduler import AutopilotScheduler

__all__ = [
    "AutopilotService",
    "AutopilotScheduler",
    "ExecutionState",
    "FallbackPlanProposer",
    "OpenAIPlanProposer",
    "PlanProposer",
    "PlanRequest",
    "RunEngine",
    "RunPlan",
    "RunRegistry",
    "StepOutcome",
    "TickAction",
    "build_plan_proposer",
]
