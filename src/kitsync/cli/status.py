"""kitsync status command - installed version and customization state."""

from __future__ import annotations

import json
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from kitsync.cli.output import abort_with, load_config_or_abort
from kitsync.errors import KitsyncError
from kitsync.update.fingerprints import detect_version, load_fingerprint_database
from kitsync.update.hasher import hash_project_files
from kitsync.update.manifest import load_manifest

console = Console()

_STATE_STYLES = {
    "clean": "green",
    "customized": "yellow",
    "conflict": "yellow",
    "missing": "red",
}


def _collect_status(config) -> dict:
    root = Path.cwd()
    manifest = load_manifest(config.get_absolute_manifest_path())

    if manifest is None:
        database = load_fingerprint_database(config.get_absolute_fingerprints_path())
        hashes = hash_project_files(root, database.tracked_paths)
        match = detect_version(hashes, database)
        files = {}
        for path in database.tracked_paths:
            if path not in hashes:
                files[path] = "missing"
            elif path in match.customized_paths:
                files[path] = "customized"
            else:
                files[path] = "clean"
        return {
            "version": match.version,
            "source": "detected",
            "detected": match.detected,
            "confidence": match.confidence.value,
            "files": files,
            "custom_files": [],
        }

    hashes = hash_project_files(root, manifest.tracked_files)
    files = {}
    for path in sorted(manifest.tracked_files):
        file_status = manifest.status(path, hashes.get(path))
        if not file_status.present:
            files[path] = "missing"
        elif file_status.tracked.pending_version:
            files[path] = "conflict"
        elif file_status.customized:
            files[path] = "customized"
        else:
            files[path] = "clean"
    return {
        "version": manifest.upstream_version,
        "source": "manifest",
        "detected": True,
        "confidence": None,
        "files": files,
        "custom_files": sorted(manifest.custom_files),
    }


@click.command()
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["pretty", "json"]),
    default="pretty",
    help="Output format",
)
def status(output_format: str):
    """
    Show the installed upstream version and which tracked files you changed.

    Uses the manifest when one exists; otherwise detects the version from the
    fingerprint database.

    Examples:
        kitsync status
        kitsync status --format json
    """
    config = load_config_or_abort()
    try:
        data = _collect_status(config)
    except KitsyncError as e:
        abort_with(e)

    if output_format == "json":
        print(json.dumps(data, indent=2))
        return

    if data["source"] == "manifest":
        console.print(f"[bold]Installed version:[/bold] {data['version']} [dim](manifest)[/dim]")
    elif data["detected"]:
        console.print(
            f"[bold]Detected version:[/bold] {data['version']} "
            f"[dim]({data['confidence']} confidence)[/dim]"
        )
    else:
        console.print("[yellow]Installed version could not be detected[/yellow]")
        console.print("[dim]Every tracked file will be treated as customized on update.[/dim]")
    console.print()

    table = Table(title="Tracked files", show_header=True)
    table.add_column("File", style="cyan")
    table.add_column("State", justify="center")
    for path, state in data["files"].items():
        table.add_row(path, f"[{_STATE_STYLES[state]}]{state}[/]")
    console.print(table)

    if data["custom_files"]:
        console.print()
        console.print(f"[dim]{len(data['custom_files'])} custom file(s) are never touched[/dim]")
