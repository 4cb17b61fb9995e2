"""
sysmcp CLI entry point.

Commands:
  sysmcp audit verify               — check the audit log hash chain
  sysmcp audit tail                 — show recent audit entries
  sysmcp config show                — show the persisted access-control config
  sysmcp config validate            — validate the config file without loading it
  sysmcp service list               — effective state of every service
  sysmcp service check <id> <op>    — would a read/write be allowed?
  sysmcp service enable <id>        — enable a service (read-only)
  sysmcp service disable <id>       — disable a service
  sysmcp service set-level <id> <l> — set disabled | read-only | read-write
  sysmcp service set-pii <id> on|off
  sysmcp service reset <id>         — restore secure defaults
  sysmcp anonymize [FILE]           — anonymize JSON records from FILE or stdin
  sysmcp settings show | init       — view or create settings.toml
  sysmcp version                    — show version
"""

from __future__ import annotations

import sys
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape

from sysmcp import __version__
from sysmcp.cli._anonymize_cmd import anonymize_command
from sysmcp.cli._audit_cmd import audit_group
from sysmcp.cli._config_cmd import config_group
from sysmcp.cli._service_cmd import service_group
from sysmcp.cli._settings_cmd import settings_group
from sysmcp.core.constants import ExitCode

console = Console()
err_console = Console(stderr=True)


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(__version__, "--version", "-V", message="sysmcp %(version)s")
@click.option(
    "--settings",
    "settings_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Settings file (default: $SYSMCP_SETTINGS or ~/.sysmcp/settings.toml)",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Override the configured log level",
)
@click.pass_context
def cli(ctx: click.Context, settings_path: Path | None, log_level: str | None) -> None:
    """sysmcp — access control, PII anonymization and audit for local system tools."""
    from sysmcp.core.config import load_settings
    from sysmcp.core.exceptions import ConfigError
    from sysmcp.core.logging import configure_logging

    try:
        settings = load_settings(settings_path)
    except ConfigError as exc:
        err_console.print(f"[red]Settings error:[/red] {escape(str(exc))}")
        sys.exit(ExitCode.CONFIG_ERROR)

    configure_logging(log_level or settings.logging.level, settings.logging.format)
    ctx.obj = settings


cli.add_command(audit_group)
cli.add_command(config_group)
cli.add_command(service_group)
cli.add_command(settings_group)
cli.add_command(anonymize_command)


# ---------------------------------------------------------------------------
# version
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--json", "as_json", is_flag=True, default=False)
def version(as_json: bool) -> None:
    """Show version information."""
    import json
    import platform

    if as_json:
        click.echo(json.dumps({"sysmcp": __version__, "python": platform.python_version()}))
        return
    console.print(f"sysmcp [bold]{__version__}[/bold]")
    console.print(f"Python {platform.python_version()}")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
