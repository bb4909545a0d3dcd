"""Root CLI command registration."""

from __future__ import annotations

import logging

import click

from runpilot.version import get_runpilot_version

from .autopilot import autopilot_preview
from .config import config_cmd
from .run import run


@click.group(invoke_without_command=True)
@click.option("--version", is_flag=True, help="Show version and exit")
@click.option("--debug", is_flag=True, help="Capture debug-level logs in the log buffer")
@click.pass_context
def cli(ctx: click.Context, version: bool, debug: bool) -> None:
    """Run long-lived agent tasks with approval gates and recurring autopilots."""
    if version:
        click.echo(f"runpilot {get_runpilot_version()}")
        ctx.exit(0)

    from runpilot.debug_log import setup_debug_logging

    setup_debug_logging(logging.DEBUG if debug else logging.INFO)

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


cli.add_command(run)
cli.add_command(autopilot_preview)
cli.add_command(config_cmd)
