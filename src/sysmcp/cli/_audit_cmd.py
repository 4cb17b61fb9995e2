"""CLI commands: sysmcp audit verify | tail."""

from __future__ import annotations

import json
import sys

import click
from rich.console import Console
from rich.table import Table

from sysmcp.cli._common import current_settings, run_async
from sysmcp.core.constants import ExitCode

console = Console()


@click.group("audit")
def audit_group() -> None:
    """Inspect the tamper-evident audit log."""


def _audit_log():
    from sysmcp.core.audit import AuditLog

    settings = current_settings()
    return AuditLog(
        settings.resolved_audit_path,
        max_file_size=settings.audit.max_file_size,
        max_files=settings.audit.max_files,
    )


@audit_group.command("verify")
@click.option("--json", "as_json", is_flag=True, default=False, help="Output as JSON")
def audit_verify(as_json: bool) -> None:
    """Verify the hash chain of the live audit log."""

    async def _verify():
        audit_log = _audit_log()
        return audit_log.path, await audit_log.verify_integrity()

    path, report = run_async(_verify())

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
    elif report.valid:
        console.print(f"[green]Audit log intact:[/green] {report.entries} entries ({path})")
    else:
        console.print(f"[red]Audit log integrity FAILED:[/red] {report.error}")
        console.print(f"  file: {path}")

    if not report.valid:
        sys.exit(ExitCode.INTEGRITY_ERROR)


@audit_group.command("tail")
@click.option("-n", "--limit", default=20, show_default=True, help="Number of entries")
@click.option("--json", "as_json", is_flag=True, default=False, help="Output as JSON lines")
def audit_tail(limit: int, as_json: bool) -> None:
    """Show the most recent audit entries."""

    async def _tail():
        audit_log = _audit_log()
        return audit_log.path, await audit_log.get_recent_entries(limit)

    path, entries = run_async(_tail())

    if as_json:
        for entry in entries:
            click.echo(json.dumps(entry))
        return

    if not entries:
        console.print("[dim]No audit entries.[/dim]")
        return

    table = Table(title=f"Audit log ({path})")
    table.add_column("Time", style="dim")
    table.add_column("Action", style="cyan")
    table.add_column("Service")
    table.add_column("Change")
    table.add_column("Source", style="dim")
    for entry in entries:
        table.add_row(
            str(entry.get("timestamp", ""))[:19],
            str(entry.get("action", "")),
            str(entry.get("serviceId", "")),
            f"{_short(entry.get('previousValue'))} -> {_short(entry.get('newValue'))}",
            str(entry.get("source", "")),
        )
    console.print(table)


def _short(value) -> str:
    if isinstance(value, dict):
        return ", ".join(f"{k}={v}" for k, v in value.items())
    return json.dumps(value)
