from __future__ import annotations

import pytest

from runpilot.config import (
    ApprovalConfig,
    PlannerConfig,
    RunpilotConfig,
    TimingConfig,
    atomic_write,
)
from runpilot.limits import SCHEDULER_TICK_SECONDS, STEP_DELAY_SECONDS

pytestmark = pytest.mark.unit


def test_missing_file_yields_defaults(tmp_path) -> None:
    config = RunpilotConfig.load(tmp_path / "absent.toml")

    assert config == RunpilotConfig()
    assert config.general.default_output_format == "brief"
    assert config.approval == ApprovalConfig(trust_proposer=False, risk_heuristic=True)


def test_load_coerces_invalid_values(tmp_path) -> None:
    path = tmp_path / "config.toml"
    path.write_text(
        "\n".join(
            [
                "[general]",
                'created_by = "ops-bot"',
                'default_output_format = "SLIDES"',
                "[timing]",
                "step_delay_seconds = -4",
                "step_latency_seconds = 0",
                "scheduler_tick_seconds = 0",
                "accelerated = true",
                "[approval]",
                "trust_proposer = true",
            ]
        ),
        encoding="utf-8",
    )

    config = RunpilotConfig.load(path)

    assert config.general.created_by == "ops-bot"
    assert config.general.default_output_format == "brief"
    assert config.timing.step_delay_seconds == STEP_DELAY_SECONDS
    assert config.timing.step_latency_seconds == 0.0
    assert config.timing.scheduler_tick_seconds == SCHEDULER_TICK_SECONDS
    assert config.timing.accelerated
    assert config.approval.trust_proposer


def test_output_format_is_case_insensitive() -> None:
    config = RunpilotConfig.model_validate({"general": {"default_output_format": " Checklist "}})

    assert config.general.default_output_format == "checklist"


def test_boolean_delays_fall_back_to_defaults() -> None:
    assert TimingConfig(step_delay_seconds=True).step_delay_seconds == STEP_DELAY_SECONDS


async def test_save_then_load(tmp_path) -> None:
    path = tmp_path / "nested" / "config.toml"
    original = RunpilotConfig.model_validate(
        {"general": {"created_by": "alice"}, "planner": {"model": "gpt-test", "enabled": False}}
    )

    await original.save(path)

    text = path.read_text(encoding="utf-8")
    assert "[timing]" in text
    assert RunpilotConfig.load(path) == original


def test_planner_api_key_reads_configured_variable(monkeypatch) -> None:
    monkeypatch.setenv("RUNPILOT_TEST_KEY", "  sk-123  ")
    monkeypatch.delenv("MISSING_KEY_VAR", raising=False)

    assert PlannerConfig(api_key_env="RUNPILOT_TEST_KEY").api_key() == "sk-123"
    assert PlannerConfig(api_key_env="MISSING_KEY_VAR").api_key() is None


def test_atomic_write_replaces_content(tmp_path) -> None:
    path = tmp_path / "file.txt"
    atomic_write(path, "one")
    atomic_write(path, "two")

    assert path.read_text(encoding="utf-8") == "two"
    assert [item.name for item in tmp_path.iterdir()] == ["file.txt"]
