"""Decide what an update cycle does to each tracked file.

Everything here is pure: hashes go in, a plan comes out, and applying the plan
to the manifest yields a new manifest. File I/O belongs to the orchestrator.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from kitsync.update.hasher import NormalizedHash, hashes_equal
from kitsync.update.manifest import (
    UNKNOWN_HASH,
    FileStatus,
    HistoryEntry,
    Manifest,
    TrackedFile,
)

logger = logging.getLogger(__name__)


def classify(path: str, original_hash: str | NormalizedHash, current_hash: NormalizedHash) -> bool:
    """Return True if the file at `path` is customized."""
    status = FileStatus(TrackedFile(path=path, original_hash=str(original_hash)), current_hash)
    return status.customized


@dataclass
class ReconcilePlan:
    """Per-path actions for one update cycle.

    Attributes:
        to_add: Official paths to write; nothing local would be lost
        to_update: Uncustomized official paths to overwrite with upstream
        to_remove: Paths upstream dropped that hold no local edits
        to_preserve_as_custom: Paths upstream dropped that were customized;
            kept on disk and reclassified as custom (orphaned customizations)
        to_merge: Customized (or untracked but present) official paths that
            need conflict handling; `merge_bases` says which have a base
        up_to_date: Official paths that already hold the incoming content
        untouched_custom: Custom paths, listed for reporting only
    """

    to_add: list[str] = field(default_factory=list)
    to_update: list[str] = field(default_factory=list)
    to_remove: list[str] = field(default_factory=list)
    to_preserve_as_custom: list[str] = field(default_factory=list)
    to_merge: list[str] = field(default_factory=list)
    up_to_date: list[str] = field(default_factory=list)
    untouched_custom: list[str] = field(default_factory=list)
    merge_bases: dict[str, bool] = field(default_factory=dict)

    @property
    def has_changes(self) -> bool:
        return bool(
            self.to_add
            or self.to_update
            or self.to_remove
            or self.to_preserve_as_custom
            or self.to_merge
        )

    def has_base(self, path: str) -> bool:
        return self.merge_bases.get(path, False)


def reconcile(
    manifest: Manifest,
    official_paths_now: Iterable[str],
    current_hashes: Mapping[str, NormalizedHash],
    incoming_hashes: Mapping[str, NormalizedHash] | None = None,
) -> ReconcilePlan:
    """
    Plan an update cycle.

    Args:
        manifest: Manifest as last committed
        official_paths_now: Paths the incoming release ships
        current_hashes: Hashes of local files; absent paths are not on disk
        incoming_hashes: Hashes of the incoming release, used to skip files
            that already match it

    Returns:
        ReconcilePlan
    """
    official_now = set(official_paths_now)
    incoming_hashes = incoming_hashes or {}
    plan = ReconcilePlan()

    for path in sorted(official_now):
        current = current_hashes.get(path)
        incoming = incoming_hashes.get(path)
        tracked = manifest.tracked_files.get(path)

        if current is None:
            plan.to_add.append(path)
            continue

        if tracked is None:
            # Upstream now ships a path the user already has
            if hashes_equal(current, incoming):
                plan.up_to_date.append(path)
            else:
                plan.to_merge.append(path)
                plan.merge_bases[path] = False
            continue

        status = FileStatus(tracked, current)
        if status.customized:
            if hashes_equal(current, incoming) or hashes_equal(tracked.original_hash, incoming):
                # Already matches upstream, or upstream has not moved since the base
                plan.up_to_date.append(path)
            else:
                plan.to_merge.append(path)
                plan.merge_bases[path] = tracked.hash_known
        elif hashes_equal(tracked.original_hash, incoming):
            plan.up_to_date.append(path)
        else:
            plan.to_update.append(path)

    for path in sorted(set(manifest.tracked_files) - official_now):
        status = manifest.status(path, current_hashes.get(path))
        if status.customized:
            plan.to_preserve_as_custom.append(path)
        else:
            plan.to_remove.append(path)

    plan.untouched_custom = sorted(manifest.custom_files - official_now)

    logger.debug(
        "Reconciled: %d add, %d update, %d merge, %d remove, %d orphaned, %d up to date",
        len(plan.to_add),
        len(plan.to_update),
        len(plan.to_merge),
        len(plan.to_remove),
        len(plan.to_preserve_as_custom),
        len(plan.up_to_date),
    )
    return plan


def advance_manifest(
    manifest: Manifest,
    plan: ReconcilePlan,
    new_version: str,
    incoming_hashes: Mapping[str, NormalizedHash],
    merged: Iterable[str] = (),
    conflicts: Iterable[str] = (),
    reported: Iterable[str] = (),
) -> Manifest:
    """
    Return the manifest after `plan` has been applied.

    Every official path now records the incoming hash as its original, so a
    merged file stays customized and the next cycle merges against this
    release. Paths in `reported` were left untouched with a side conflict
    report; they keep their previous entry and are marked pending, so the
    next cycle merges them again from the same base. The input manifest is
    not modified.
    """
    tracked = {path: entry.model_copy() for path, entry in manifest.tracked_files.items()}
    custom = set(manifest.custom_files)

    for path in plan.to_add + plan.to_update + plan.to_merge + plan.up_to_date:
        incoming = incoming_hashes.get(path)
        tracked[path] = TrackedFile(
            path=path, original_hash=str(incoming) if incoming is not None else UNKNOWN_HASH
        )
        custom.discard(path)

    for path in sorted(set(reported)):
        previous = manifest.tracked_files.get(path)
        if previous is None:
            tracked[path] = TrackedFile(
                path=path, original_hash=UNKNOWN_HASH, pending_version=new_version
            )
        else:
            tracked[path] = previous.model_copy(
                update={
                    "base_version": previous.base_version or manifest.upstream_version,
                    "pending_version": new_version,
                }
            )

    for path in plan.to_remove:
        tracked.pop(path, None)

    for path in plan.to_preserve_as_custom:
        tracked.pop(path, None)
        custom.add(path)

    conflicts = sorted(set(conflicts))
    entry = HistoryEntry(
        from_version=manifest.upstream_version,
        to_version=new_version,
        added=list(plan.to_add),
        updated=list(plan.to_update),
        removed=list(plan.to_remove),
        merged=sorted(set(merged) - set(conflicts)),
        conflicts=conflicts,
        orphaned=list(plan.to_preserve_as_custom),
    )

    return Manifest(
        schema_version=manifest.schema_version,
        upstream_version=new_version,
        tracked_files=tracked,
        custom_files=custom,
        history=[*manifest.history, entry],
    )
