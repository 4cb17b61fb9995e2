"""CLI commands: sysmcp config show | validate."""

from __future__ import annotations

import json
import sys

import click
from rich.console import Console
from rich.markup import escape

from sysmcp.cli._common import current_settings, run_async
from sysmcp.core.constants import ExitCode

console = Console()


@click.group("config")
def config_group() -> None:
    """View and validate the persisted access-control config."""


@config_group.command("show")
@click.option("--json", "as_json", is_flag=True, default=False, help="Output as JSON")
def config_show(as_json: bool) -> None:
    """Display the persisted configuration (a corrupt file is quarantined)."""
    from sysmcp.core.store import ConfigStore

    async def _load():
        store = ConfigStore(current_settings().resolved_config_path)
        return store.path, await store.load()

    path, document = run_async(_load())
    if document is None:
        console.print(f"[yellow]No usable config at[/yellow] {path}; all services use secure defaults.")
        return

    data = document.to_json_dict()
    if as_json:
        click.echo(json.dumps(data, indent=2))
        return

    console.print(f"[bold]sysmcp configuration[/bold]  ({path})\n")
    console.print(f"  version = {data.get('version')!r}")
    console.print(f"  lastModified = {data.get('lastModified')!r}")
    for service_id, values in data["services"].items():
        console.print(f"  [cyan]\\[{service_id}][/cyan]")
        for k, v in values.items():
            console.print(f"    {k} = {v!r}")
    console.print()


@config_group.command("validate")
@click.argument("path", required=False, type=click.Path(dir_okay=False))
def config_validate(path: str | None) -> None:
    """Validate a config file against the schema without modifying it."""
    from sysmcp.core.exceptions import ConfigValidationError
    from sysmcp.core.paths import validate_storage_path
    from sysmcp.core.store import validate_config

    try:
        cfg_path = validate_storage_path(path or current_settings().resolved_config_path, "config path")
    except ConfigValidationError as exc:
        console.print(f"[red]{escape(str(exc))}[/red]")
        sys.exit(ExitCode.CONFIG_ERROR)

    if not cfg_path.exists():
        console.print(f"[red]Config not found:[/red] {cfg_path}")
        sys.exit(ExitCode.CONFIG_ERROR)

    try:
        document = validate_config(json.loads(cfg_path.read_text(encoding="utf-8")), source=str(cfg_path))
    except (OSError, ValueError, RecursionError) as exc:
        console.print(f"[red]Config validation failed:[/red] {escape(str(exc))}")
        sys.exit(ExitCode.CONFIG_ERROR)

    console.print(f"[green]Config is valid:[/green] {cfg_path} ({len(document.services)} services)")
