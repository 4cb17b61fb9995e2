"""CLI command: sysmcp anonymize — tokenize PII in JSON records."""

from __future__ import annotations

import json
import sys

import click

from sysmcp.cli._common import current_settings, run_async
from sysmcp.core.constants import ExitCode


@click.command("anonymize")
@click.argument("source", type=click.File("r", encoding="utf-8"), default="-")
@click.option(
    "--kind",
    type=click.Choice(["eventlog", "filesearch"]),
    default="eventlog",
    show_default=True,
    help="Record shape: event log entries or file-search results",
)
@click.option("--machine-name", default=None, help="Local machine name (default: this host)")
@click.option("--save-mapping/--no-save-mapping", default=True, help="Persist new tokens")
def anonymize_command(source, kind: str, machine_name: str | None, save_mapping: bool) -> None:
    """Anonymize a JSON record or array of records from SOURCE (default: stdin)."""
    from sysmcp.core.anonymize import MappingStore, PathAnonymizer, PiiAnonymizer

    try:
        payload = json.load(source)
    except (ValueError, RecursionError) as exc:
        click.echo(f"Invalid JSON input: {exc}", err=True)
        sys.exit(ExitCode.ERROR)

    async def _anonymize():
        store = MappingStore(current_settings().resolved_mapping_path)
        anonymizer = PiiAnonymizer(await store.load_or_empty(), machine_name=machine_name)
        engine = PathAnonymizer(anonymizer) if kind == "filesearch" else anonymizer
        records = payload if isinstance(payload, list) else [payload]
        result = engine.anonymize_entries(records)
        if save_mapping:
            await store.save(anonymizer.mapping)
        return result if isinstance(payload, list) else result[0]

    click.echo(json.dumps(run_async(_anonymize()), indent=2))
