"""Output helpers shared by kitsync commands."""

from __future__ import annotations

import click
from rich.console import Console

from kitsync.errors import KitsyncError

console = Console()


def abort_with(error: KitsyncError) -> None:
    """Report a kitsync error, naming the file involved, and abort."""
    console.print(f"[red]Error:[/red] {error.message}")
    if error.path:
        console.print(f"[dim]File: {error.path}[/dim]")
    if error.suggestion:
        console.print(f"[dim]{error.suggestion}[/dim]")
    console.print("[dim]No files were modified.[/dim]")
    raise click.Abort()


def load_config_or_abort():
    """Load kitsync.config (or defaults when absent), aborting on invalid settings."""
    from kitsync.config import get_config_or_default

    try:
        return get_config_or_default()
    except ValueError as e:
        console.print(f"[red]Error:[/red] Invalid kitsync.config: {e}")
        raise click.Abort()
