"""CLI commands: sysmcp service list | check | enable | disable | set-level | set-pii | reset."""

from __future__ import annotations

import json
import sys

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from sysmcp.cli._common import current_settings, run_async
from sysmcp.core.constants import ExitCode

console = Console()

CLI_AUDIT_SOURCE = "cli"

_LEVEL_STYLE = {"disabled": "red", "read-only": "yellow", "read-write": "green"}


@click.group("service")
def service_group() -> None:
    """Inspect and change per-service access control."""


async def _context():
    from sysmcp.core.context import TrustContext

    return await TrustContext.create(current_settings(), source=CLI_AUDIT_SOURCE)


# ---------------------------------------------------------------------------
# Read-only
# ---------------------------------------------------------------------------


@service_group.command("list")
@click.option("--json", "as_json", is_flag=True, default=False, help="Output as JSON")
def service_list(as_json: bool) -> None:
    """Show the effective configuration of every service."""

    async def _list():
        ctx = await _context()
        return {m.service_id: m.to_service_config() for m in ctx.registry}

    configs = run_async(_list())

    if as_json:
        data = {sid: cfg.model_dump(mode="json", by_alias=True) for sid, cfg in configs.items()}
        click.echo(json.dumps(data, indent=2))
        return

    table = Table(title="Services")
    table.add_column("Service", style="bold")
    table.add_column("Enabled")
    table.add_column("Permission")
    table.add_column("Anonymization")
    table.add_column("Max results", justify="right")
    table.add_column("Timeout (ms)", justify="right")
    for sid, cfg in configs.items():
        level = cfg.permission_level.value
        table.add_row(
            escape(sid),
            "[green]yes[/green]" if cfg.enabled else "[red]no[/red]",
            f"[{_LEVEL_STYLE[level]}]{level}[/{_LEVEL_STYLE[level]}]",
            "on" if cfg.enable_anonymization else "[red]off[/red]",
            str(cfg.max_results or ""),
            str(cfg.timeout_ms or ""),
        )
    console.print(table)


@service_group.command("check")
@click.argument("service_id")
@click.argument("operation", type=click.Choice(["read", "write"]))
@click.option("--json", "as_json", is_flag=True, default=False, help="Output as JSON")
def service_check(service_id: str, operation: str, as_json: bool) -> None:
    """Report whether OPERATION on SERVICE_ID would be allowed."""

    async def _check():
        ctx = await _context()
        return ctx.checker.check(service_id, operation)

    decision = run_async(_check())
    if as_json:
        click.echo(json.dumps(decision.to_dict()))
    elif decision.allowed:
        console.print(f"[green]allowed[/green]  {escape(service_id)} {operation}")
    else:
        console.print(f"[red]denied[/red]   {escape(decision.reason or '')}")
    if not decision.allowed:
        sys.exit(ExitCode.PERMISSION_ERROR)


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


def _mutate(service_id: str, op_name: str, *args) -> None:
    async def _apply():
        ctx = await _context()
        operation = getattr(ctx.coordinator, op_name)
        return await operation(service_id, *args)

    cfg = run_async(_apply())
    console.print(
        f"[green]{escape(service_id)}[/green]: enabled={cfg.enabled} "
        f"permissionLevel={cfg.permission_level.value} "
        f"enableAnonymization={cfg.enable_anonymization}"
    )


@service_group.command("enable")
@click.argument("service_id")
def service_enable(service_id: str) -> None:
    """Enable SERVICE_ID at read-only."""
    _mutate(service_id, "enable_service")


@service_group.command("disable")
@click.argument("service_id")
def service_disable(service_id: str) -> None:
    """Disable SERVICE_ID."""
    _mutate(service_id, "disable_service")


@service_group.command("set-level")
@click.argument("service_id")
@click.argument("level", type=click.Choice(["disabled", "read-only", "read-write"]))
def service_set_level(service_id: str, level: str) -> None:
    """Set the permission level of SERVICE_ID."""
    _mutate(service_id, "set_permission_level", level)


@service_group.command("set-pii")
@click.argument("service_id")
@click.argument("state", type=click.Choice(["on", "off"]))
def service_set_pii(service_id: str, state: str) -> None:
    """Turn PII anonymization on or off for SERVICE_ID."""
    _mutate(service_id, "set_pii_anonymization", state == "on")


@service_group.command("reset")
@click.argument("service_id")
def service_reset(service_id: str) -> None:
    """Restore SERVICE_ID to its secure defaults."""
    _mutate(service_id, "reset_service_config")
