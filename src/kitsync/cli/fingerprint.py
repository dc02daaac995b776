"""kitsync fingerprint and hash commands."""

from __future__ import annotations

from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from kitsync.cli.output import abort_with, load_config_or_abort
from kitsync.errors import KitsyncError
from kitsync.update.fingerprints import build_fingerprint_database, save_fingerprint_database
from kitsync.update.hasher import compute_file_hash
from kitsync.update.provider import DirectoryProvider

console = Console()


@click.group()
def fingerprint_group():
    """Fingerprint database commands."""
    pass


@fingerprint_group.command("build")
@click.option(
    "--version", "versions", multiple=True, help="Only include this version (repeatable)"
)
@click.option(
    "--signature", "signature_paths", multiple=True, help="Signature path (repeat 3 times)"
)
@click.option(
    "--output",
    type=click.Path(path_type=Path),
    default=None,
    help="Where to write the database (default: FINGERPRINTS_PATH)",
)
def build(versions: tuple[str, ...], signature_paths: tuple[str, ...], output: Path | None):
    """
    Build the fingerprint database from the upstream snapshot.

    Example:
        kitsync fingerprint build
        kitsync fingerprint build --version v0.3.0 --version v0.4.0
    """
    config = load_config_or_abort()
    provider = DirectoryProvider(config.get_absolute_upstream_path())
    target = output or config.get_absolute_fingerprints_path()

    try:
        database = build_fingerprint_database(
            provider,
            versions=list(versions) or None,
            signature_paths=list(signature_paths) or None,
        )
    except KitsyncError as e:
        abort_with(e)
    except ValueError as e:
        console.print(f"[red]Error:[/red] Invalid fingerprint database: {e}")
        raise click.Abort()

    save_fingerprint_database(database, target)

    table = Table(title="Fingerprints", show_header=True)
    table.add_column("Version", style="cyan")
    table.add_column("Files", justify="right")
    for version in database.versions_newest_first():
        table.add_row(version, str(len(database.versions[version])))
    console.print(table)
    console.print(f"[dim]Signature paths: {', '.join(database.signature_paths)}[/dim]")
    console.print(f"[green]✓[/green] Wrote {target}")


@click.command()
@click.argument("file", type=click.Path(path_type=Path))
def hash_cmd(file: Path):
    """
    Print the normalized hash of FILE.

    Line endings, a leading byte-order mark and trailing whitespace do not
    change the hash.
    """
    try:
        digest = compute_file_hash(file)
    except KitsyncError as e:
        abort_with(e)
    click.echo(str(digest))
