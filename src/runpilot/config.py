"""Configuration loader for Runpilot."""

from __future__ import annotations

import asyncio
import os
import tempfile
import tomllib
from pathlib import Path
from typing import Literal

import tomlkit
from pydantic import BaseModel, Field, field_validator

from runpilot.limits import (
    RESUME_DELAY_SECONDS,
    SCHEDULER_TICK_SECONDS,
    STEP_DELAY_SECONDS,
    STEP_LATENCY_SECONDS,
)
from runpilot.paths import ensure_directories, get_config_path


def atomic_write(path: Path, content: str) -> None:
    """Write file atomically to avoid partial/corrupt writes."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".tmp_")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
        Path(tmp_path).replace(path)
    except Exception:
        Path(tmp_path).unlink(missing_ok=True)
        raise


type OutputFormatLiteral = Literal["brief", "checklist", "doc", "pr"]

OUTPUT_FORMAT_VALUES = frozenset({"brief", "checklist", "doc", "pr"})


def _coerce_delay(value: object, default: float) -> float:
    match value:
        case bool():
            return default
        case int() | float() as number if number >= 0:
            return float(number)
        case _:
            return default


class GeneralConfig(BaseModel):
    """General configuration settings."""

    created_by: str = Field(default="you", description="Identity recorded as run creator")
    default_output_format: OutputFormatLiteral = Field(
        default="brief",
        description="Output format used when a command does not name one",
    )

    @field_validator("default_output_format", mode="before")
    @classmethod
    def validate_default_output_format(cls, value: object) -> str:
        """Gracefully coerce unknown output formats to brief."""
        match value:
            case str() as fmt if fmt.strip().lower() in OUTPUT_FORMAT_VALUES:
                return fmt.strip().lower()
            case _:
                pass
        return "brief"


class TimingConfig(BaseModel):
    """Simulated execution and scheduler timings (seconds)."""

    step_latency_seconds: float = Field(
        default=STEP_LATENCY_SECONDS,
        description="Delay between the typing signal and a step narration",
    )
    step_delay_seconds: float = Field(
        default=STEP_DELAY_SECONDS,
        description="Delay between two progression ticks",
    )
    resume_delay_seconds: float = Field(
        default=RESUME_DELAY_SECONDS,
        description="Delay before an approved or resumed run continues",
    )
    scheduler_tick_seconds: float = Field(
        default=SCHEDULER_TICK_SECONDS,
        description="Period of the autopilot due-check loop",
    )
    accelerated: bool = Field(
        default=False,
        description="Shrink cadence intervals and the scheduler tick for demos",
    )

    @field_validator("step_latency_seconds", mode="before")
    @classmethod
    def validate_step_latency(cls, value: object) -> float:
        return _coerce_delay(value, STEP_LATENCY_SECONDS)

    @field_validator("step_delay_seconds", mode="before")
    @classmethod
    def validate_step_delay(cls, value: object) -> float:
        return _coerce_delay(value, STEP_DELAY_SECONDS)

    @field_validator("resume_delay_seconds", mode="before")
    @classmethod
    def validate_resume_delay(cls, value: object) -> float:
        return _coerce_delay(value, RESUME_DELAY_SECONDS)

    @field_validator("scheduler_tick_seconds", mode="before")
    @classmethod
    def validate_scheduler_tick(cls, value: object) -> float:
        coerced = _coerce_delay(value, SCHEDULER_TICK_SECONDS)
        return coerced if coerced > 0 else SCHEDULER_TICK_SECONDS


class PlannerConfig(BaseModel):
    """Plan proposer settings."""

    enabled: bool = Field(default=True, description="Use the LLM plan proposer when a key is set")
    model: str = Field(default="gpt-4.1-mini", description="Model used for plan proposals")
    temperature: float = Field(default=0.4, description="Sampling temperature for run plans")
    api_key_env: str = Field(
        default="OPENAI_API_KEY",
        description="Environment variable holding the proposer API key",
    )

    def api_key(self) -> str | None:
        value = os.environ.get(self.api_key_env, "").strip()
        return value or None


class ApprovalConfig(BaseModel):
    """Approval gate policy selection."""

    trust_proposer: bool = Field(
        default=False,
        description="Also gate runs whose plan proposer declared needsApproval",
    )
    risk_heuristic: bool = Field(
        default=True,
        description="Gate runs whose request or steps mention risky verbs",
    )


class RunpilotConfig(BaseModel):
    """Root configuration model."""

    general: GeneralConfig = Field(default_factory=GeneralConfig)
    timing: TimingConfig = Field(default_factory=TimingConfig)
    planner: PlannerConfig = Field(default_factory=PlannerConfig)
    approval: ApprovalConfig = Field(default_factory=ApprovalConfig)

    @classmethod
    def load(cls, config_path: Path | None = None) -> RunpilotConfig:
        """Load configuration from TOML file or use defaults."""
        ensure_directories()
        if config_path is None:
            config_path = get_config_path()

        if config_path.exists():
            with open(config_path, "rb") as f:
                data = tomllib.load(f)
            return cls.model_validate(data)

        return cls()

    async def save(self, path: Path) -> None:
        """Serialize current config to TOML file.

        Args:
            path: Path to write config file (created if missing)
        """
        doc = tomlkit.document()
        for section_name in ("general", "timing", "planner", "approval"):
            section: BaseModel = getattr(self, section_name)
            table = tomlkit.table()
            for key, value in section.model_dump().items():
                if value is not None:
                    table[key] = value
            doc[section_name] = table

        content = tomlkit.dumps(doc)
        await asyncio.to_thread(atomic_write, path, content)


__all__ = [
    "ApprovalConfig",
    "GeneralConfig",
    "PlannerConfig",
    "RunpilotConfig",
    "TimingConfig",
    "atomic_write",
]
