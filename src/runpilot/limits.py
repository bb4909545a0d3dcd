"""Numeric limits and timings - no circular dependencies."""

from __future__ import annotations

# Simulated execution timing (seconds)
STEP_LATENCY_SECONDS = 0.7
"""Delay between the typing signal and the step narration."""

STEP_DELAY_SECONDS = 1.1
"""Delay between two progression ticks of the same run."""

RESUME_DELAY_SECONDS = 0.5
"""Delay before a resumed or approved run re-enters its progression."""

# Autopilot scheduler
SCHEDULER_TICK_SECONDS = 30.0
ACCELERATED_SCHEDULER_TICK_SECONDS = 5.0
DEFAULT_CUSTOM_CADENCE_MINUTES = 60

# Plan shape
MIN_PLAN_STEPS = 2
MAX_PLAN_STEPS = 7
MAX_PROGRESS_BEFORE_DELIVERY = 95

# Titles
RUN_TITLE_MAX_LENGTH = 56
PROVISIONAL_TITLE_MAX_LENGTH = 64
AUTOPILOT_TITLE_INSTRUCTION_CHARS = 32
FALLBACK_STEP_REQUEST_CHARS = 70

# Logging
MAX_LOG_MESSAGE_LENGTH = 4096
MAX_LOG_LINES = 2000

# Shutdown
BACKGROUND_SHUTDOWN_TIMEOUT_SECONDS = 2.0
