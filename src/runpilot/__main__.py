"""CLI entry point for Runpilot."""

from __future__ import annotations

# Python version check - must be before any imports that use 3.12+ syntax.
import sys

if sys.version_info < (3, 12):  # noqa: UP036
    print("Error: Runpilot requires Python 3.12 or higher.")
    print(f"You are running Python {sys.version_info.major}.{sys.version_info.minor}")
    sys.exit(1)

from runpilot.cli.commands.root import cli  # noqa: E402

if __name__ == "__main__":
    cli()
