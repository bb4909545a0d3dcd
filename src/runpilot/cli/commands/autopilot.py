"""Autopilot draft preview command."""

from __future__ import annotations

import asyncio
import json

import click

from runpilot.models.enums import ContainerType


async def _preview(text: str, container_id: str, container_type: ContainerType, tz: str) -> dict[str, object]:
    from runpilot.bootstrap import bootstrap_app

    async with bootstrap_app() as ctx:
        draft = await ctx.api.preview_autopilot(
            {"text": text, "container": {"type": container_type.value, "id": container_id}},
            tz=tz,
        )
        return draft.to_wire()


@click.command("autopilot-preview")
@click.argument("text")
@click.option("--channel", "container_id", default="general", show_default=True, help="Channel or DM id")
@click.option("--dm", is_flag=True, help="Treat the container as a direct message")
@click.option("--tz", default="UTC", show_default=True, help="Timezone label for the cadence")
def autopilot_preview(text: str, container_id: str, dm: bool, tz: str) -> None:
    """Draft a recurring autopilot from TEXT without saving it."""
    draft = asyncio.run(
        _preview(text, container_id, ContainerType.DM if dm else ContainerType.CHANNEL, tz)
    )
    click.echo(json.dumps(draft, indent=2))
