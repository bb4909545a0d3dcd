"""Run a single agent command to completion."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import click

from runpilot.models.enums import ContainerType, OutputFormat, RunStatus

_DECISIONS = ("ask", "approve", "deny")


async def _run_command(
    *,
    text: str,
    container_id: str,
    container_type: ContainerType,
    output_format: str | None,
    require_approval: bool,
    decision: str,
    fast: bool,
    config_path: Path | None,
    timeout: float,
) -> dict[str, object]:
    from runpilot.bootstrap import bootstrap_app
    from runpilot.client.projection import ClientProjection
    from runpilot.client.session import ClientSession
    from runpilot.client.transport import LocalTransport
    from runpilot.config import RunpilotConfig
    from runpilot.ipc.dispatch import RequestDispatcher
    from runpilot.models.entities import AgentCommand, Container
    from runpilot.models.enums import ApprovalDecision

    config = RunpilotConfig.load(config_path)
    if fast:
        config.timing.step_latency_seconds = 0.0
        config.timing.step_delay_seconds = 0.0
        config.timing.resume_delay_seconds = 0.0

    async with bootstrap_app(config_path, config=config) as ctx:
        projection = ClientProjection(user_id=config.general.created_by)
        projection.attach(ctx.event_bus, ctx.api.snapshot())
        session = ClientSession(LocalTransport(RequestDispatcher(ctx.api)), projection)

        command = AgentCommand(
            text=text,
            container=Container(type=container_type, id=container_id),
            output_format=output_format or config.general.default_output_format,
            require_approval=require_approval,
        )
        run = await session.submit(command)
        if run is None:
            notices = [message.text for message in projection.messages.values() if message.run_id is None]
            raise click.ClickException(notices[-1] if notices else "Agent call failed")

        run = await ctx.api.wait_for_run(run.id, timeout_seconds=timeout)
        if run.status is RunStatus.NEEDS_APPROVAL:
            if decision == "ask":
                decision = "approve" if click.confirm(run.approval.reason or "Approve?") else "deny"
            run = ctx.api.decide_approval(run.id, ApprovalDecision(decision))
            run = await ctx.api.wait_for_run(run.id, timeout_seconds=timeout)

        projection.detach()
        return {
            "run": run.to_wire(),
            "messages": [message.to_wire() for message in ctx.api.list_messages(run_id=run.id)],
        }


@click.command()
@click.argument("text")
@click.option("--channel", "container_id", default="general", show_default=True, help="Channel or DM id")
@click.option("--dm", is_flag=True, help="Treat the container as a direct message")
@click.option(
    "--format",
    "output_format",
    type=click.Choice([fmt.value for fmt in OutputFormat]),
    default=None,
    help="Output format (defaults to general.default_output_format)",
)
@click.option("--require-approval", is_flag=True, help="Always gate the run for approval")
@click.option(
    "--decision",
    type=click.Choice(_DECISIONS),
    default="ask",
    show_default=True,
    help="How to answer an approval gate",
)
@click.option("--fast", is_flag=True, help="Skip simulated step delays")
@click.option("--timeout", type=float, default=120.0, show_default=True, help="Seconds to wait per phase")
@click.option("--json", "as_json", is_flag=True, help="Print the run and its messages as JSON")
@click.option("--export-logs", is_flag=True, help="Write the debug log buffer to the data directory")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file (defaults to the user config)",
)
def run(
    text: str,
    container_id: str,
    dm: bool,
    output_format: str | None,
    require_approval: bool,
    decision: str,
    fast: bool,
    timeout: float,
    as_json: bool,
    export_logs: bool,
    config_path: Path | None,
) -> None:
    """Run TEXT as an agent command and print its thread."""
    result = asyncio.run(
        _run_command(
            text=text,
            container_id=container_id,
            container_type=ContainerType.DM if dm else ContainerType.CHANNEL,
            output_format=output_format,
            require_approval=require_approval,
            decision=decision,
            fast=fast,
            config_path=config_path,
            timeout=timeout,
        )
    )
    run_data = result["run"]
    assert isinstance(run_data, dict)
    if export_logs:
        from runpilot.debug_log import export_logs_to_file
        from runpilot.paths import get_debug_log_path

        run_id = str(run_data["id"])
        log_path = get_debug_log_path()
        count = export_logs_to_file(log_path, run_id=run_id)
        click.echo(f"Exported {count} log entries for run {run_id} to {log_path}", err=True)
    if as_json:
        click.echo(json.dumps(result, indent=2))
        return

    click.secho(f"{run_data['title']}", bold=True)
    messages = result["messages"]
    assert isinstance(messages, list)
    for message in messages:
        if message.get("kind") == "deliverable":
            click.echo()
            click.echo(message.get("body", ""))
        elif message.get("kind") != "run_card":
            click.echo(f"  {message['text']}")
    status = str(run_data["status"])
    color = "green" if status == RunStatus.COMPLETED else "yellow"
    click.secho(f"Status: {status} ({run_data['progressPct']}%)", fg=color)
