"""Configuration inspection command."""

from __future__ import annotations

import asyncio

import click

from runpilot.paths import get_config_path


@click.command("config")
@click.option("--init", "init_file", is_flag=True, help="Write a config file with default values")
@click.option("--force", is_flag=True, help="Overwrite an existing config file with --init")
def config_cmd(init_file: bool, force: bool) -> None:
    """Show the effective configuration."""
    from runpilot.config import RunpilotConfig

    config_path = get_config_path()
    if init_file:
        if config_path.exists() and not force:
            raise click.ClickException(f"Config already exists: {config_path} (use --force)")
        asyncio.run(RunpilotConfig().save(config_path))
        click.secho(f"Wrote {config_path}", fg="green")
        return

    config = RunpilotConfig.load(config_path)
    click.echo(f"# {config_path}{'' if config_path.exists() else ' (defaults)'}")
    for section_name, section in config.model_dump().items():
        click.secho(f"[{section_name}]", bold=True)
        for key, value in section.items():
            click.echo(f"{key} = {value!r}")
