"""Pytest fixtures for Runpilot tests."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

import pytest
from hypothesis import Phase, Verbosity, settings

_TEST_BASE_DIR = Path(tempfile.mkdtemp(prefix="runpilot-tests-"))
os.environ["RUNPILOT_DATA_DIR"] = str(_TEST_BASE_DIR / "data")
os.environ["RUNPILOT_CONFIG_DIR"] = str(_TEST_BASE_DIR / "config")
os.environ.pop("OPENAI_API_KEY", None)

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Callable

    from runpilot.bootstrap import AppContext, InMemoryEventBus
    from runpilot.config import RunpilotConfig
    from runpilot.events import DomainEvent


settings.register_profile(
    "ci",
    max_examples=100,
    deadline=None,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
)
settings.register_profile(
    "dev",
    max_examples=20,
    deadline=500,
)
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    deadline=None,
)
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "dev"))


@pytest.fixture
def fast_config() -> RunpilotConfig:
    """Config with zero simulated delays and the offline proposer."""
    from runpilot.config import RunpilotConfig

    config = RunpilotConfig()
    config.timing.step_latency_seconds = 0.0
    config.timing.step_delay_seconds = 0.0
    config.timing.resume_delay_seconds = 0.0
    config.planner.enabled = False
    return config


@pytest.fixture
def event_bus() -> InMemoryEventBus:
    from runpilot.bootstrap import InMemoryEventBus

    return InMemoryEventBus()


@pytest.fixture
def recorded_events() -> tuple[list[DomainEvent], Callable[[DomainEvent], None]]:
    """A list of published events and the publisher that appends to it."""
    events: list[DomainEvent] = []
    return events, events.append


@pytest.fixture
async def app_ctx(fast_config: RunpilotConfig) -> AsyncGenerator[AppContext, None]:
    from runpilot.bootstrap import bootstrap_app
    from runpilot.services.planner import FallbackPlanProposer

    async with bootstrap_app(config=fast_config, proposer=FallbackPlanProposer()) as ctx:
        yield ctx
