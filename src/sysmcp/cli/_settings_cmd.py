"""CLI commands: sysmcp settings show | init."""

from __future__ import annotations

import json
import sys

import click
from rich.console import Console
from rich.markup import escape

from sysmcp.cli._common import current_settings
from sysmcp.core.constants import ExitCode

console = Console()


@click.group("settings")
def settings_group() -> None:
    """View or create the sysmcp settings file."""


@settings_group.command("show")
@click.option("--json", "as_json", is_flag=True, default=False, help="Output as JSON")
def settings_show(as_json: bool) -> None:
    """Display effective settings (file + environment + defaults)."""
    settings = current_settings()
    data = {
        "settings_file": str(settings.settings_path) if settings.settings_path else None,
        "config_path": str(settings.resolved_config_path),
        "audit_path": str(settings.resolved_audit_path),
        "mapping_path": str(settings.resolved_mapping_path),
        "audit": settings.audit.model_dump(),
        "logging": settings.logging.model_dump(),
    }
    if as_json:
        click.echo(json.dumps(data, indent=2))
        return

    console.print("[bold]sysmcp settings[/bold]\n")
    for key, value in data.items():
        if isinstance(value, dict):
            console.print(f"  [cyan]\\[{key}][/cyan]")
            for k, v in value.items():
                console.print(f"    {k} = {v!r}")
        else:
            console.print(f"  {key} = {value!r}")


@settings_group.command("init")
@click.option("--force", is_flag=True, default=False, help="Overwrite an existing settings file")
def settings_init(force: bool) -> None:
    """Write a settings.toml with the current effective values."""
    from sysmcp.core.config import save_settings, settings_file_path
    from sysmcp.core.exceptions import ConfigError

    settings = current_settings()
    target = settings.settings_path or settings_file_path()
    if target.exists() and not force:
        console.print(f"[yellow]Settings file already exists:[/yellow] {target} (use --force)")
        sys.exit(ExitCode.ERROR)

    data = {
        "config_path": str(settings.resolved_config_path),
        "audit_path": str(settings.resolved_audit_path),
        "mapping_path": str(settings.resolved_mapping_path),
        "audit": settings.audit.model_dump(),
        "logging": settings.logging.model_dump(),
    }
    try:
        written = save_settings(data, target)
    except ConfigError as exc:
        console.print(f"[red]{escape(str(exc))}[/red]")
        sys.exit(ExitCode.CONFIG_ERROR)
    console.print(f"[green]Settings written:[/green] {written}")
