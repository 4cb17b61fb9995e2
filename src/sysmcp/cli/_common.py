"""Helpers shared by the CLI command modules."""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Coroutine
from typing import Any, TypeVar

import click
from rich.console import Console
from rich.markup import escape

from sysmcp.core.config import Settings
from sysmcp.core.constants import ExitCode
from sysmcp.core.exceptions import ConfigError, SysmcpError

T = TypeVar("T")

err_console = Console(stderr=True)


def current_settings() -> Settings:
    settings = click.get_current_context().find_object(Settings)
    return settings if settings is not None else Settings()


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run one coroutine to completion, turning sysmcp errors into exit codes."""
    try:
        return asyncio.run(coro)
    except ConfigError as exc:
        err_console.print(f"[red]Config error:[/red] {escape(str(exc))}")
        sys.exit(ExitCode.CONFIG_ERROR)
    except SysmcpError as exc:
        err_console.print(f"[red]Error:[/red] {escape(str(exc))}")
        sys.exit(ExitCode.ERROR)
    except OSError as exc:
        err_console.print(f"[red]I/O error:[/red] {escape(str(exc))}")
        sys.exit(ExitCode.ERROR)
