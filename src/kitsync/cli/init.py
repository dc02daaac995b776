"""kitsync init command - write the project configuration."""

from __future__ import annotations

import click
from rich.console import Console

from kitsync.config import KitsyncConfig, config_file_exists, create_config

console = Console()


@click.command()
@click.option(
    "--upstream",
    default=KitsyncConfig.DEFAULT_UPSTREAM_PATH,
    show_default=True,
    help="Directory holding one sub-directory per upstream version",
)
@click.option("--force", is_flag=True, help="Overwrite an existing kitsync.config")
def init(upstream: str, force: bool):
    """
    Initialize kitsync in the current directory.

    Example:
        kitsync init
        kitsync init --upstream vendor/releases
    """
    if config_file_exists() and not force:
        console.print("[yellow]kitsync.config already exists[/yellow]")
        console.print("[dim]Use --force to overwrite it[/dim]")
        return

    config = create_config(upstream)
    console.print("[green]✓[/green] Created kitsync.config")
    console.print(f"[dim]Upstream snapshot directory: {config.UPSTREAM_PATH}[/dim]")
    console.print()
    console.print("Next steps:")
    console.print("  1. Extract upstream releases into the snapshot directory as <version>/...")
    console.print("  2. Run [cyan]kitsync fingerprint build[/cyan]")
    console.print("  3. Run [cyan]kitsync status[/cyan]")
