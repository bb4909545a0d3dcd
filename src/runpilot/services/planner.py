"""Plan proposer adapters.

A proposer turns a request into a :class:`RunPlan`. The OpenAI-backed
proposer validates model output with pydantic; any failure on that path
falls back to a deterministic four-step plan derived from the request text,
so plan proposal never blocks run creation.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from runpilot.constants import RISKY_VERBS
from runpilot.debug_log import log as debug_log
from runpilot.limits import (
    AUTOPILOT_TITLE_INSTRUCTION_CHARS,
    DEFAULT_CUSTOM_CADENCE_MINUTES,
    FALLBACK_STEP_REQUEST_CHARS,
    MAX_PLAN_STEPS,
    MIN_PLAN_STEPS,
    RUN_TITLE_MAX_LENGTH,
)
from runpilot.models.entities import (
    AgentCommand,
    Artifact,
    AutopilotSpec,
    Container,
    CustomCadence,
    DailyCadence,
    HourlyCadence,
    WeekdayCadence,
    WeeklyCadence,
)
from runpilot.models.enums import ArtifactType, ContainerType, DeliveryMode, OutputFormat
from runpilot.utils import shorten

if TYPE_CHECKING:
    from openai import AsyncOpenAI

    from runpilot.config import PlannerConfig
    from runpilot.models.entities import Cadence

log = logging.getLogger(__name__)

RUN_PLAN_SYSTEM_PROMPT = """
You are simulating a workspace agent run.

Goal:
- Convert the user's request into a realistic, safe run plan and final output that feels like an in-progress job.
- Keep updates concrete and scoped to the provided context.

Rules:
1) Return strict JSON only with keys: title, steps, summary, needsApproval, approvalReason.
2) "steps" must be 2-7 items and describe progressive execution.
3) "summary" must be the final output content in the requested output_format style, using markdown.
   - If the user asks for action items/todos/tasks/next steps, prefer markdown task lists: "- [ ] item".
   - Do not include a top-level title that repeats the run title.
   - Keep exactly one main heading max; use bullets/checklists for the rest.
4) Set needsApproval=true if any step implies risky external action (see risky_verbs).
5) Keep language concise, specific, and realistic for chat updates.
""".strip()

AUTOPILOT_SYSTEM_PROMPT = (
    "Parse this recurring agent command. Return strict JSON only with: title, instruction, "
    "cadence(kind/hour/minute/dow/tz/everyMinutes), destinationSuggestion(type,id), deliveryMode."
)

_DAY_NAMES = {"sun": 0, "mon": 1, "tue": 2, "wed": 3, "thu": 4, "fri": 5, "sat": 6}
_VERBOSE_DELIVERY_ALIASES = frozenset({"verbose", "immediate", "post"})


class PlanProposalError(RuntimeError):
    """Raised by a proposer when its output cannot be turned into a plan."""


# ---------------------------------------------------------------------------
# Plan types
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PlanRequest:
    """Everything a proposer may use to shape a plan."""

    request_text: str
    output_format: OutputFormat
    container: Container
    thread_excerpts: tuple[str, ...] = ()
    require_approval: bool = False

    @classmethod
    def from_command(cls, command: AgentCommand) -> PlanRequest:
        return cls(
            request_text=command.text,
            output_format=command.output_format,
            container=command.container,
            thread_excerpts=tuple(command.context_messages),
            require_approval=command.require_approval,
        )

    @property
    def channel_name(self) -> str | None:
        return self.container.id if self.container.type is ContainerType.CHANNEL else None


@dataclass(frozen=True, slots=True)
class RunPlan:
    title: str
    steps: tuple[str, ...]
    summary: str
    artifacts: tuple[Artifact, ...] = ()
    needs_approval: bool = False
    approval_reason: str | None = None
    is_fallback: bool = field(default=False, compare=False)


class ProposedPlan(BaseModel):
    """Plan JSON returned by a language model."""

    model_config = ConfigDict(extra="ignore", alias_generator=to_camel, populate_by_name=True)

    title: str = Field(..., min_length=3)
    steps: list[str] = Field(..., min_length=MIN_PLAN_STEPS, max_length=MAX_PLAN_STEPS)
    summary: str = Field(..., min_length=3)
    needs_approval: bool = False
    approval_reason: str | None = None

    @field_validator("title", "summary", mode="before")
    @classmethod
    def _clean_text(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("steps")
    @classmethod
    def _check_steps(cls, v: list[str]) -> list[str]:
        cleaned = [step.strip() for step in v]
        if any(len(step) < 3 for step in cleaned):
            msg = "Every step must be at least 3 characters"
            raise ValueError(msg)
        return cleaned

    @field_validator("approval_reason", mode="before")
    @classmethod
    def _clean_reason(cls, v: Any) -> str | None:
        if v is None:
            return None
        text = str(v).strip()
        return text or None


class PlanProposer(Protocol):
    """Boundary to whatever proposes run plans."""

    async def propose(self, request: PlanRequest) -> RunPlan: ...


@runtime_checkable
class AutopilotDrafter(Protocol):
    async def draft_autopilot(self, command: AgentCommand, *, tz: str) -> AutopilotSpec: ...


# ---------------------------------------------------------------------------
# Output shaping
# ---------------------------------------------------------------------------


def format_summary(summary: str, output_format: OutputFormat) -> str:
    """Shape a plain summary into the requested output format."""
    match output_format:
        case OutputFormat.CHECKLIST:
            lines = [line.strip() for line in summary.split(".")]
            return "\n".join(f"- [ ] {line}" for line in lines if line)
        case OutputFormat.DOC:
            return (
                f"## Overview\n\n{summary}\n\n"
                "## Next Steps\n\n- [ ] Validate assumptions\n- [ ] Share with team"
            )
        case OutputFormat.PR:
            return (
                f"## Summary\n{summary}\n\n"
                "## Proposed Changes\n- [ ] Update implementation\n- [ ] Add tests\n\n"
                "## Risks\n- [ ] Verify rollout"
            )
        case _:
            return summary


def fallback_title(request_text: str) -> str:
    return shorten(request_text, RUN_TITLE_MAX_LENGTH)


def build_fallback_plan(request: PlanRequest) -> RunPlan:
    """Deterministic plan used whenever no proposer output is usable."""
    text = request.request_text
    steps = (
        f"Understand the ask: {text[:FALLBACK_STEP_REQUEST_CHARS]}",
        "Collect relevant context from current channel and selected scope",
        "Draft output and verify key facts",
        f"Deliver {request.output_format} response with concise highlights",
    )
    where = f"#{request.channel_name}" if request.channel_name else "this workspace"
    return RunPlan(
        title=fallback_title(text),
        steps=steps,
        summary=format_summary(f'Prepared a plan for "{text}" in {where}.', request.output_format),
        artifacts=(
            Artifact(id="a1", type=ArtifactType.DOC, title="Working draft"),
            Artifact(id="a2", type=ArtifactType.LINK, title="References"),
            Artifact(id="a3", type=ArtifactType.CANVAS, title="Open Canvas"),
        ),
        is_fallback=True,
    )


def _json_candidates(output: str) -> list[str]:
    # Models often wrap the object in prose or code fences.
    candidates = [output]
    first, last = output.find("{"), output.rfind("}")
    if first >= 0 and last > first:
        candidates.append(output[first : last + 1])
    return candidates


def extract_json_object(output: str) -> Any | None:
    """Decode JSON directly or, failing that, from the outermost brace span."""
    for candidate in _json_candidates(output):
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue
    return None


def parse_plan_json(output: str) -> ProposedPlan | None:
    """Parse model output into a validated plan, tolerating prose or fences around it."""
    for candidate in _json_candidates(output):
        try:
            return ProposedPlan.model_validate_json(candidate)
        except ValidationError:
            continue
    return None


def plan_from_proposal(proposal: ProposedPlan, request: PlanRequest) -> RunPlan:
    return RunPlan(
        title=proposal.title,
        steps=tuple(proposal.steps),
        summary=format_summary(proposal.summary, request.output_format),
        artifacts=(
            Artifact(id="a-doc", type=ArtifactType.DOC, title="Draft output"),
            Artifact(id="a-link", type=ArtifactType.LINK, title="Source notes"),
            Artifact(id="a-canvas", type=ArtifactType.CANVAS, title="Open Canvas"),
        ),
        needs_approval=proposal.needs_approval,
        approval_reason=proposal.approval_reason,
    )


async def propose_plan_or_fallback(proposer: PlanProposer, request: PlanRequest) -> RunPlan:
    """Ask the proposer for a plan; any failure yields the fallback plan."""
    try:
        return await proposer.propose(request)
    except Exception as exc:
        log.warning("Plan proposer failed, using fallback plan: %s", exc)
        debug_log.warning("Plan proposer failed", error=type(exc).__name__)
        return build_fallback_plan(request)


# ---------------------------------------------------------------------------
# Autopilot drafting
# ---------------------------------------------------------------------------


def default_cadence_from_text(text: str, tz: str = "UTC") -> Cadence:
    """Infer a cadence from phrases in the command text; daily 09:00 otherwise."""
    lower = text.lower()
    if "every hour" in lower or "hourly" in lower:
        return HourlyCadence(minute=0, tz=tz)
    if "weekday" in lower:
        return WeekdayCadence(tz=tz)
    if "weekly" in lower:
        return WeeklyCadence(tz=tz)
    if "every" in lower and "minute" in lower:
        return CustomCadence(every_minutes=5, tz=tz)
    return DailyCadence(tz=tz)


def _clamp_int(value: object, low: int, high: int, default: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return default
    return max(low, min(high, int(value)))


def _day_index(entry: object) -> int | None:
    if isinstance(entry, int | float) and not isinstance(entry, bool):
        return max(0, min(6, int(entry)))
    return _DAY_NAMES.get(str(entry).lower()[:3])


def normalize_cadence(value: object, fallback_tz: str = "UTC") -> Cadence:
    """Coerce a loosely-shaped cadence object into a valid cadence."""
    raw: dict[str, Any] = value if isinstance(value, dict) else {}
    kind = str(raw.get("kind") or "daily").lower()
    dow_raw = raw.get("dow")
    days = [day for day in map(_day_index, dow_raw if isinstance(dow_raw, list) else []) if day is not None]
    hour = _clamp_int(raw.get("hour"), 0, 23, 9)
    minute = _clamp_int(raw.get("minute"), 0, 59, 0)
    tz_raw = raw.get("tz")
    tz = tz_raw if isinstance(tz_raw, str) and tz_raw.strip() else fallback_tz

    if kind in ("weekday", "weekdays") or (kind == "dow" and len(days) == 5):
        return WeekdayCadence(hour=hour, minute=minute, dow=days or [1, 2, 3, 4, 5], tz=tz)
    if kind == "weekly":
        return WeeklyCadence(hour=hour, minute=minute, dow=days or [1], tz=tz)
    if kind == "hourly":
        return HourlyCadence(minute=minute, tz=tz)
    if kind == "custom":
        every = raw.get("everyMinutes", raw.get("every_minutes"))
        every_minutes = (
            max(1, int(every))
            if isinstance(every, int | float) and not isinstance(every, bool)
            else DEFAULT_CUSTOM_CADENCE_MINUTES
        )
        return CustomCadence(every_minutes=every_minutes, tz=tz)
    return DailyCadence(hour=hour, minute=minute, tz=tz)


def normalize_delivery_mode(value: object) -> DeliveryMode:
    if str(value or "").lower() in _VERBOSE_DELIVERY_ALIASES:
        return DeliveryMode.VERBOSE
    return DeliveryMode.DIGEST


def build_fallback_autopilot(command: AgentCommand, *, tz: str = "UTC") -> AutopilotSpec:
    return AutopilotSpec(
        title=f"Autopilot: {command.text[:AUTOPILOT_TITLE_INSTRUCTION_CHARS]}",
        instruction=command.text,
        cadence=default_cadence_from_text(command.text, tz),
        destination=command.container,
        scope=command.scope,
        tools=command.tools,
        output_format=command.output_format,
        delivery_mode=(
            DeliveryMode.DIGEST
            if command.output_format is OutputFormat.BRIEF
            else DeliveryMode.VERBOSE
        ),
    )


def autopilot_from_payload(
    payload: object, command: AgentCommand, *, tz: str = "UTC"
) -> AutopilotSpec | None:
    """Build a draft from loosely-shaped model output; None when title or instruction is missing."""
    if not isinstance(payload, dict):
        return None
    title = payload.get("title")
    instruction = payload.get("instruction")
    if not (isinstance(title, str) and title.strip()):
        return None
    if not (isinstance(instruction, str) and instruction.strip()):
        return None

    suggestion = payload.get("destinationSuggestion")
    if not isinstance(suggestion, dict):
        suggestion = {}
    suggested_id = suggestion.get("id")
    destination = Container(
        type=ContainerType.DM if suggestion.get("type") == "dm" else ContainerType.CHANNEL,
        id=suggested_id if isinstance(suggested_id, str) and suggested_id.strip() else command.container.id,
    )
    return AutopilotSpec(
        title=title,
        instruction=instruction,
        cadence=normalize_cadence(payload.get("cadence"), tz),
        destination=destination,
        scope=command.scope,
        tools=command.tools,
        output_format=command.output_format,
        delivery_mode=normalize_delivery_mode(payload.get("deliveryMode")),
    )


async def draft_autopilot_or_fallback(
    drafter: PlanProposer | AutopilotDrafter, command: AgentCommand, *, tz: str = "UTC"
) -> AutopilotSpec:
    """Draft an autopilot with ``drafter`` when it supports drafting, else from the text."""
    if not isinstance(drafter, AutopilotDrafter):
        return build_fallback_autopilot(command, tz=tz)
    try:
        return await drafter.draft_autopilot(command, tz=tz)
    except Exception as exc:
        log.warning("Autopilot drafter failed, using fallback draft: %s", exc)
        return build_fallback_autopilot(command, tz=tz)


# ---------------------------------------------------------------------------
# Proposers
# ---------------------------------------------------------------------------


class FallbackPlanProposer:
    """Offline proposer that always returns the deterministic plan."""

    async def propose(self, request: PlanRequest) -> RunPlan:
        return build_fallback_plan(request)

    async def draft_autopilot(self, command: AgentCommand, *, tz: str = "UTC") -> AutopilotSpec:
        return build_fallback_autopilot(command, tz=tz)


class OpenAIPlanProposer:
    """Proposer backed by an OpenAI chat completion model."""

    def __init__(self, config: PlannerConfig, *, client: AsyncOpenAI | None = None) -> None:
        self.config = config
        if client is None:
            from openai import AsyncOpenAI

            kwargs: dict[str, Any] = {}
            api_key = config.api_key()
            if api_key:
                kwargs["api_key"] = api_key
            client = AsyncOpenAI(**kwargs)
        self._client = client

    async def _complete(self, system_prompt: str, payload: dict[str, Any], *, temperature: float) -> str:
        response = await self._client.chat.completions.create(
            model=self.config.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": json.dumps(payload)},
            ],
            temperature=temperature,
        )
        content = response.choices[0].message.content if response.choices else None
        return (content or "").strip()

    async def propose(self, request: PlanRequest) -> RunPlan:
        output = await self._complete(
            RUN_PLAN_SYSTEM_PROMPT,
            {
                "user_request": request.request_text,
                "output_format": str(request.output_format),
                "container": request.channel_name or request.container.id,
                "context": {"thread_text": "\n".join(request.thread_excerpts)},
                "risky_verbs": list(RISKY_VERBS),
            },
            temperature=self.config.temperature,
        )
        proposal = parse_plan_json(output)
        if proposal is None:
            raise PlanProposalError("Proposer output did not match the plan schema")
        return plan_from_proposal(proposal, request)

    async def draft_autopilot(self, command: AgentCommand, *, tz: str = "UTC") -> AutopilotSpec:
        output = await self._complete(
            AUTOPILOT_SYSTEM_PROMPT,
            {"text": command.text, "container": command.container.to_wire(), "tz": tz},
            temperature=0.2,
        )
        draft = autopilot_from_payload(extract_json_object(output), command, tz=tz)
        return draft if draft is not None else build_fallback_autopilot(command, tz=tz)


def build_plan_proposer(config: PlannerConfig) -> PlanProposer:
    """Return the OpenAI proposer when enabled and keyed, else the offline one."""
    if config.enabled and config.api_key():
        return OpenAIPlanProposer(config)
    return FallbackPlanProposer()


__all__ = [
    "AUTOPILOT_SYSTEM_PROMPT",
    "RUN_PLAN_SYSTEM_PROMPT",
    "AutopilotDrafter",
    "FallbackPlanProposer",
    "OpenAIPlanProposer",
    "PlanProposalError",
    "PlanProposer",
    "PlanRequest",
    "ProposedPlan",
    "RunPlan",
    "autopilot_from_payload",
    "build_fallback_autopilot",
    "build_fallback_plan",
    "build_plan_proposer",
    "default_cadence_from_text",
    "draft_autopilot_or_fallback",
    "extract_json_object",
    "fallback_title",
    "format_summary",
    "normalize_cadence",
    "normalize_delivery_mode",
    "parse_plan_json",
    "plan_from_proposal",
    "propose_plan_or_fallback",
]
