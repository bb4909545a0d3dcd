"""Core domain entities.

Every entity serializes to the camelCase wire shape shared with push
subscribers (``model_dump(by_alias=True, mode="json")``) while Python code
uses snake_case attributes.
"""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - Pydantic needs runtime access
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from runpilot.limits import DEFAULT_CUSTOM_CADENCE_MINUTES
from runpilot.models.enums import (
    ArtifactType,
    ContainerType,
    DeliveryMode,
    MessageKind,
    OutputFormat,
    RunStatus,
)


class DomainModel(BaseModel):
    """Base model with common config."""

    model_config = ConfigDict(
        from_attributes=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_wire(self) -> dict[str, object]:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class Container(DomainModel):
    """A channel or direct-message conversation."""

    type: ContainerType = ContainerType.CHANNEL
    id: str = Field(..., min_length=1)

    @property
    def label(self) -> str:
        return f"#{self.id}" if self.type is ContainerType.CHANNEL else self.id


class ApprovalState(DomainModel):
    required: bool = False
    pending: bool = False
    reason: str | None = None


class Artifact(DomainModel):
    id: str
    type: ArtifactType
    title: str
    url: str | None = None


class ArtifactLink(DomainModel):
    label: str
    target_id: str | None = None
    url: str | None = None


class Message(DomainModel):
    """Chat message; run cards and deliverables are tied to a run."""

    id: str
    channel_id: str
    user_id: str
    text: str
    ts: datetime
    kind: MessageKind = MessageKind.MESSAGE
    is_bot: bool = False
    parent_id: str | None = None
    thread_root_id: str | None = None
    run_id: str | None = None
    title: str | None = None
    body: str | None = None
    artifact_links: list[ArtifactLink] = Field(default_factory=list)


class Run(DomainModel):
    """One execution instance of a request.

    Relationships: container, root run-card message, optional autopilot.
    """

    id: str
    title: str
    status: RunStatus = RunStatus.QUEUED
    current_step: int = Field(default=0, ge=0)
    total_steps: int = Field(default=0, ge=0)
    progress_pct: int = Field(default=0, ge=0, le=100)
    latest_update: str = "Queued"
    approval: ApprovalState = Field(default_factory=ApprovalState)
    artifacts: list[Artifact] = Field(default_factory=list)
    container: Container
    root_message_id: str
    thread_id: str
    autopilot_id: str | None = None
    created_at: datetime
    created_by: str

    def summary(self) -> RunSummary:
        return RunSummary(
            id=self.id,
            title=self.title,
            status=self.status,
            progress_pct=self.progress_pct,
            latest_update=self.latest_update,
            created_at=self.created_at,
        )


class RunSummary(DomainModel):
    """Row of the recency-sorted runs index."""

    id: str
    title: str
    status: RunStatus
    progress_pct: int
    latest_update: str
    created_at: datetime


class ScopeChips(DomainModel):
    channel: bool | None = None
    thread: bool | None = None
    messages: list[str] = Field(default_factory=list)
    files: list[str] = Field(default_factory=list)
    people: list[str] = Field(default_factory=list)


class ToolToggles(DomainModel):
    drive: bool = False
    calendar: bool = False
    codebase: bool = False


# ---------------------------------------------------------------------------
# Cadence
# ---------------------------------------------------------------------------

Hour = Annotated[int, Field(ge=0, le=23)]
Minute = Annotated[int, Field(ge=0, le=59)]
DayOfWeek = Annotated[int, Field(ge=0, le=6)]


class _CadenceBase(DomainModel):
    tz: str = Field(default="UTC", min_length=1, description="Opaque timezone label")


class HourlyCadence(_CadenceBase):
    kind: Literal["hourly"] = "hourly"
    minute: Minute = 0


class DailyCadence(_CadenceBase):
    kind: Literal["daily"] = "daily"
    hour: Hour = 9
    minute: Minute = 0


class WeekdayCadence(_CadenceBase):
    kind: Literal["weekday"] = "weekday"
    hour: Hour = 9
    minute: Minute = 0
    dow: list[DayOfWeek] = Field(default_factory=lambda: [1, 2, 3, 4, 5])


class WeeklyCadence(_CadenceBase):
    kind: Literal["weekly"] = "weekly"
    hour: Hour = 9
    minute: Minute = 0
    dow: list[DayOfWeek] = Field(default_factory=lambda: [1])


class CustomCadence(_CadenceBase):
    kind: Literal["custom"] = "custom"
    every_minutes: int = Field(default=DEFAULT_CUSTOM_CADENCE_MINUTES, ge=1)


Cadence = Annotated[
    HourlyCadence | DailyCadence | WeekdayCadence | WeeklyCadence | CustomCadence,
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# Autopilots
# ---------------------------------------------------------------------------


class AutopilotHistoryEntry(DomainModel):
    run_id: str
    fired_at: datetime


class AutopilotSpec(DomainModel):
    """User-editable part of an autopilot (create/update payload)."""

    title: str = Field(..., min_length=1)
    instruction: str = Field(..., min_length=1)
    cadence: Cadence
    destination: Container
    scope: ScopeChips = Field(default_factory=ScopeChips)
    tools: ToolToggles = Field(default_factory=ToolToggles)
    output_format: OutputFormat = OutputFormat.BRIEF
    delivery_mode: DeliveryMode = DeliveryMode.DIGEST
    enabled: bool = True

    @field_validator("title", "instruction", mode="before")
    @classmethod
    def _strip_text(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value


class Autopilot(AutopilotSpec):
    """Recurring trigger definition."""

    id: str
    last_run_at: datetime | None = None
    history: list[AutopilotHistoryEntry] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


class ThreadRef(DomainModel):
    thread_id: str
    run_id: str | None = None


class AgentCommand(DomainModel):
    """A user request addressed to the agent."""

    text: str = Field(..., min_length=1)
    container: Container
    in_thread: ThreadRef | None = None
    context_messages: list[str] = Field(default_factory=list)
    scope: ScopeChips = Field(default_factory=ScopeChips)
    tools: ToolToggles = Field(default_factory=ToolToggles)
    output_format: OutputFormat = OutputFormat.BRIEF
    require_approval: bool = False
    as_autopilot: bool = False

    @field_validator("text", mode="before")
    @classmethod
    def _strip_text(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value

    @classmethod
    def from_autopilot(cls, autopilot: Autopilot) -> AgentCommand:
        return cls(
            text=autopilot.instruction,
            container=autopilot.destination,
            scope=autopilot.scope,
            tools=autopilot.tools,
            output_format=autopilot.output_format,
            require_approval=False,
        )


__all__ = [
    "AgentCommand",
    "ApprovalState",
    "Artifact",
    "ArtifactLink",
    "Autopilot",
    "AutopilotHistoryEntry",
    "AutopilotSpec",
    "Cadence",
    "Container",
    "CustomCadence",
    "DailyCadence",
    "DomainModel",
    "HourlyCadence",
    "Message",
    "Run",
    "RunSummary",
    "ScopeChips",
    "ThreadRef",
    "ToolToggles",
    "WeekdayCadence",
    "WeeklyCadence",
]
