"""Main orchestration for the update process."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from kitsync.config import KitsyncConfig
from kitsync.errors import UpstreamVersionMissing
from kitsync.update.conflicts import report_path_for, resolve_customized_file, write_artifact
from kitsync.update.fingerprints import (
    UNKNOWN_VERSION,
    FingerprintDatabase,
    VersionMatch,
    detect_version,
    load_fingerprint_database,
)
from kitsync.update.hasher import hash_content, hash_project_files
from kitsync.update.lifecycle import advance_manifest, reconcile
from kitsync.update.manifest import Manifest, bootstrap_manifest, load_manifest, save_manifest
from kitsync.update.markers import has_conflict_markers
from kitsync.update.provider import UpstreamCache, UpstreamProvider

logger = logging.getLogger(__name__)

console = Console()

UNRESOLVED_MARKERS = "unresolved conflict markers from a previous update"
REPORT_RESOLVED = "conflict report removed; local copy taken as resolved"


class DataState(str, Enum):
    """What happened to the user's data in a file."""

    PRESERVED = "preserved"
    MODIFIED = "modified"
    NEEDS_ATTENTION = "needs_attention"


@dataclass
class FileAction:
    """One file touched (or deliberately left alone) by an update."""

    path: str
    action: str  # added, updated, removed, merged, conflict, orphaned, skipped, up_to_date
    data_state: DataState
    detail: str = ""
    report_path: Path | None = None

    @property
    def category(self) -> str:
        """Top-level directory, used to group the summary."""
        parts = Path(self.path).parts
        return parts[0] if len(parts) > 1 else "."


@dataclass
class UpdateReport:
    """Outcome of one update cycle."""

    from_version: str
    to_version: str
    dry_run: bool = False
    bootstrapped: bool = False
    version_match: VersionMatch | None = None
    actions: list[FileAction] = field(default_factory=list)
    manifest: Manifest | None = None

    def by_action(self, action: str) -> list[FileAction]:
        return [a for a in self.actions if a.action == action]

    @property
    def needs_attention(self) -> list[FileAction]:
        return [a for a in self.actions if a.data_state is DataState.NEEDS_ATTENTION]

    @property
    def changed(self) -> list[FileAction]:
        return [a for a in self.actions if a.action != "up_to_date"]


# =============================================================================
# Helpers
# =============================================================================


def _project_path(project_root: Path, value: str) -> Path:
    path = Path(value)
    return path if path.is_absolute() else project_root / path


def _write_text(target: Path, text: str) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp = target.with_name(target.name + ".kitsync-tmp")
    tmp.write_text(text, encoding="utf-8", errors="surrogateescape")
    os.replace(tmp, target)


def _read_text(path: Path) -> str:
    return path.read_text(encoding="utf-8", errors="surrogateescape")


def find_custom_files(project_root: Path, official_paths: Iterable[str]) -> list[str]:
    """
    List local files that sit beside official files but were never shipped.

    Only directories that contain official files are scanned; the project root
    itself is not.
    """
    official = set(official_paths)
    directories = {Path(p).parent for p in official} - {Path(".")}
    found = set()
    for directory in directories:
        local_dir = project_root / directory
        if not local_dir.is_dir():
            continue
        for local_file in local_dir.rglob("*"):
            if local_file.is_file() and not local_file.name.endswith(".kitsync-tmp"):
                rel_path = local_file.relative_to(project_root).as_posix()
                if rel_path not in official:
                    found.add(rel_path)
    return sorted(found)


def _bootstrap(
    project_root: Path,
    cache: UpstreamCache,
    database: FingerprintDatabase,
    official_now: list[str],
) -> tuple[Manifest, VersionMatch]:
    """Detect the installed version and build the first manifest."""
    current = hash_project_files(project_root, database.tracked_paths)
    match = detect_version(current, database)

    if match.detected and match.version in cache.list_versions():
        official_then = cache.list_paths(match.version)
    elif match.detected:
        official_then = list(database.versions[match.version])
    else:
        official_then = sorted(set(database.tracked_paths) | set(official_now))

    local_custom = find_custom_files(project_root, set(official_then) | set(official_now))
    manifest = bootstrap_manifest(match, database, official_then, local_custom)
    return manifest, match


# =============================================================================
# Update
# =============================================================================


def update_project(
    project_root: Path,
    provider: UpstreamProvider,
    target_version: str | None = None,
    database: FingerprintDatabase | None = None,
    config: KitsyncConfig | None = None,
    dry_run: bool = False,
) -> UpdateReport:
    """
    Run one update cycle.

    Every local file involved is hashed before anything is written, so a file
    that cannot be read stops the update with the project untouched. The
    manifest is written last, in one atomic replace.

    Args:
        project_root: Directory the tracked paths are relative to
        provider: Source of upstream content
        target_version: Version to move to (default: newest available)
        database: Fingerprint database, needed only when no manifest exists yet
            (loaded from FINGERPRINTS_PATH if omitted)
        config: Configuration (default: KitsyncConfig defaults)
        dry_run: Plan and resolve everything but write nothing

    Returns:
        UpdateReport

    Raises:
        UpstreamVersionMissing: If the target version is not available
        HashComputationError: If a local file cannot be read
        FingerprintDatabaseUnavailable: If detection is needed and the database is missing
        ManifestError: If the manifest is corrupt
    """
    project_root = Path(project_root)
    config = config or KitsyncConfig()
    cache = provider if isinstance(provider, UpstreamCache) else UpstreamCache(provider)

    versions = cache.list_versions()
    if not versions:
        raise UpstreamVersionMissing(
            "No upstream versions available",
            suggestion="Extract a release into the upstream directory as <version>/...",
        )
    target = target_version or versions[-1]
    if target not in versions:
        raise UpstreamVersionMissing(
            f"Upstream version {target} not found (available: {', '.join(versions)})"
        )

    official_now = cache.list_paths(target)
    manifest_path = _project_path(project_root, config.MANIFEST_PATH)
    manifest = load_manifest(manifest_path)

    report = UpdateReport(from_version=UNKNOWN_VERSION, to_version=target, dry_run=dry_run)
    if manifest is None:
        if database is None:
            database = load_fingerprint_database(
                _project_path(project_root, config.FINGERPRINTS_PATH)
            )
        manifest, report.version_match = _bootstrap(project_root, cache, database, official_now)
        report.bootstrapped = True
    report.from_version = manifest.upstream_version

    # Hash everything up front: nothing is written if any file is unreadable
    current_hashes = hash_project_files(
        project_root, set(official_now) | set(manifest.tracked_files)
    )
    incoming_text = {path: cache.get(target, path) for path in official_now}
    incoming_text = {path: text for path, text in incoming_text.items() if text is not None}
    incoming_hashes = {path: hash_content(text) for path, text in incoming_text.items()}

    plan = reconcile(manifest, sorted(incoming_text), current_hashes, incoming_hashes)

    base_version = manifest.upstream_version
    report_dir = _project_path(project_root, config.CONFLICT_REPORT_DIR)
    merged: list[str] = []
    conflicts: list[str] = []
    reported: list[str] = []

    for path in plan.to_add:
        if not dry_run:
            _write_text(project_root / path, incoming_text[path])
        report.actions.append(FileAction(path, "added", DataState.MODIFIED))

    for path in plan.to_update:
        if not dry_run:
            _write_text(project_root / path, incoming_text[path])
        report.actions.append(FileAction(path, "updated", DataState.MODIFIED, "no local changes"))

    for path in list(plan.to_merge):
        current = _read_text(project_root / path)
        if has_conflict_markers(current):
            logger.warning("%s still contains conflict markers; leaving it alone", path)
            plan.to_merge.remove(path)
            report.actions.append(
                FileAction(
                    path,
                    "skipped",
                    DataState.NEEDS_ATTENTION,
                    UNRESOLVED_MARKERS,
                )
            )
            continue

        tracked = manifest.tracked_files.get(path)
        if (
            tracked is not None
            and tracked.pending_version == target
            and not report_path_for(report_dir, path).exists()
        ):
            logger.info("Conflict report for %s is gone; taking %s as resolved", path, path)
            merged.append(path)
            report.actions.append(FileAction(path, "merged", DataState.PRESERVED, REPORT_RESOLVED))
            continue

        file_base_version = base_version
        if tracked is not None and tracked.base_version:
            file_base_version = tracked.base_version
        base = None
        if plan.has_base(path) and file_base_version != UNKNOWN_VERSION:
            base = cache.get(file_base_version, path)
        artifact = resolve_customized_file(
            path, current, base, incoming_text[path], file_base_version, target, config
        )

        report_path = None
        if not dry_run:
            report_path = write_artifact(artifact, project_root, report_dir)

        if artifact.needs_attention:
            conflicts.append(path)
            if artifact.file_content is None:
                # Left untouched; keep the old base until the report is dealt with
                reported.append(path)
            detail = f"{artifact.conflict_count} conflict(s) via {artifact.kind.value}"
            report.actions.append(
                FileAction(path, "conflict", DataState.NEEDS_ATTENTION, detail, report_path)
            )
        else:
            merged.append(path)
            report.actions.append(
                FileAction(path, "merged", DataState.PRESERVED, "local changes kept")
            )

    for path in plan.to_remove:
        target_file = project_root / path
        if not dry_run and target_file.exists():
            target_file.unlink()
        report.actions.append(FileAction(path, "removed", DataState.MODIFIED, "dropped upstream"))

    for path in plan.to_preserve_as_custom:
        logger.warning("%s was removed upstream but has local changes; keeping it", path)
        report.actions.append(
            FileAction(path, "orphaned", DataState.PRESERVED, "removed upstream, kept as custom")
        )

    for path in plan.up_to_date:
        local_file = project_root / path
        if local_file.is_file() and has_conflict_markers(_read_text(local_file)):
            report.actions.append(
                FileAction(
                    path,
                    "skipped",
                    DataState.NEEDS_ATTENTION,
                    UNRESOLVED_MARKERS,
                )
            )
            continue
        report.actions.append(FileAction(path, "up_to_date", DataState.PRESERVED))

    report.manifest = advance_manifest(
        manifest,
        plan,
        target,
        incoming_hashes,
        merged=merged,
        conflicts=conflicts,
        reported=reported,
    )
    if not dry_run:
        save_manifest(report.manifest, manifest_path)

    logger.info(
        "Update %s -> %s: %d changed, %d need attention",
        report.from_version,
        target,
        len(report.changed),
        len(report.needs_attention),
    )
    return report


# =============================================================================
# Display
# =============================================================================

_ACTION_STYLES = {
    "added": "green",
    "updated": "green",
    "merged": "cyan",
    "removed": "red",
    "orphaned": "yellow",
    "conflict": "yellow",
    "skipped": "yellow",
}


def show_update_summary(report: UpdateReport, out: Console | None = None) -> None:
    """Display a summary of an update cycle."""
    out = out or console

    title = "[bold cyan]kitsync Update[/bold cyan]"
    if report.dry_run:
        title += " [yellow](dry run)[/yellow]"
    lines = [title, f"[dim]{report.from_version} -> {report.to_version}[/dim]"]
    if report.bootstrapped and report.version_match is not None:
        match = report.version_match
        if match.detected:
            lines.append(
                f"[dim]Detected installed version {match.version} "
                f"({match.confidence.value} confidence)[/dim]"
            )
        else:
            lines.append("[yellow]Version unknown; all files count as customized[/yellow]")

    out.print()
    out.print(Panel.fit("\n".join(lines), border_style="cyan"))
    out.print()

    if not report.changed:
        out.print("[green]✓ All tracked files are up to date[/green]")
        out.print()
        return

    # Group files by category
    categories: dict[str, dict[str, int]] = {}
    for action in report.changed:
        counts = categories.setdefault(action.category, {})
        counts[action.action] = counts.get(action.action, 0) + 1

    table = Table(title="Changes", show_header=True)
    table.add_column("Directory", style="cyan")
    table.add_column("Status", justify="center")
    table.add_column("Files", justify="right")

    for category in sorted(categories):
        counts = categories[category]
        status = ", ".join(
            f"[{_ACTION_STYLES.get(name, 'white')}]{count} {name}[/]"
            for name, count in sorted(counts.items())
        )
        table.add_row(category, status, str(sum(counts.values())))

    out.print(table)
    out.print()

    if report.needs_attention:
        out.print("[bold yellow]Needs attention:[/bold yellow]")
        for action in report.needs_attention:
            where = f" (report: {action.report_path})" if action.report_path else ""
            out.print(f"  [yellow]![/yellow] {action.path}: {action.detail}{where}")
        out.print()

    orphaned = report.by_action("orphaned")
    if orphaned:
        out.print(
            f"[dim]Note: {len(orphaned)} customized file(s) dropped upstream were kept[/dim]"
        )
        out.print()

    verb = "Would change" if report.dry_run else "Changed"
    border = "yellow" if report.dry_run or report.needs_attention else "green"
    out.print(
        Panel.fit(
            f"[bold]{'Dry Run Complete' if report.dry_run else 'Update Complete!'}[/bold]\n"
            f"{verb}: {len(report.changed)} file(s)\n"
            f"Needs attention: {len(report.needs_attention)} file(s)",
            border_style=border,
        )
    )
    out.print()
