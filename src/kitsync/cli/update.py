"""kitsync update command - move tracked files to a new upstream version."""

from __future__ import annotations

from pathlib import Path

import click

from kitsync.cli.output import abort_with, load_config_or_abort
from kitsync.errors import KitsyncError
from kitsync.update import show_update_summary, update_project
from kitsync.update.provider import DirectoryProvider


@click.command()
@click.option("--to", "target_version", default=None, help="Version to update to (default: newest)")
@click.option("--dry-run", is_flag=True, help="Show what would change without writing anything")
def update(target_version: str | None, dry_run: bool):
    """
    Update tracked files to an upstream version.

    Files you have not changed are replaced. Files you changed are merged
    section by section; anything that cannot be merged is marked for review.
    Files you created are never touched.

    Example:
        kitsync update
        kitsync update --to v0.4.0 --dry-run
    """
    config = load_config_or_abort()
    provider = DirectoryProvider(config.get_absolute_upstream_path())

    try:
        report = update_project(
            Path.cwd(), provider, target_version, config=config, dry_run=dry_run
        )
    except KitsyncError as e:
        abort_with(e)

    show_update_summary(report)
