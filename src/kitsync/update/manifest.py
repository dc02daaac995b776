"""Persistent record of the files an upstream release installed.

The manifest is read once per update cycle, changed in memory and written
back with a single atomic replace. Whether a file is customized is never
stored; it is derived from the recorded hash each time (see `FileStatus`).
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError, field_serializer, model_validator

from kitsync.errors import ManifestError, UnsupportedManifestSchema
from kitsync.update.fingerprints import FingerprintDatabase, VersionMatch
from kitsync.update.hasher import NormalizedHash, hashes_equal

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

# Recorded when the installed content of a file is not known. Never equal to a
# real hash, so the file always counts as customized.
UNKNOWN_HASH = "unknown:"


class TrackedFile(BaseModel):
    """A file whose lifecycle follows the upstream release.

    `pending_version` is set while a side conflict report for that release is
    unresolved. The file is then left at its old base: `original_hash` still
    describes `base_version`, which differs from the manifest version.
    """

    path: str
    original_hash: str
    is_official: bool = True
    base_version: str | None = None
    pending_version: str | None = None

    @property
    def hash_known(self) -> bool:
        return self.original_hash != UNKNOWN_HASH


@dataclass(frozen=True)
class FileStatus:
    """A tracked file paired with its current hash (None if the file is gone)."""

    tracked: TrackedFile
    current_hash: NormalizedHash | None

    @property
    def path(self) -> str:
        return self.tracked.path

    @property
    def present(self) -> bool:
        return self.current_hash is not None

    @property
    def customized(self) -> bool:
        if self.current_hash is None or not self.tracked.hash_known:
            return self.current_hash is not None
        return not hashes_equal(self.current_hash, self.tracked.original_hash)


class HistoryEntry(BaseModel):
    """One committed update cycle."""

    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    from_version: str
    to_version: str
    added: list[str] = Field(default_factory=list)
    updated: list[str] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)
    merged: list[str] = Field(default_factory=list)
    conflicts: list[str] = Field(default_factory=list)
    orphaned: list[str] = Field(default_factory=list)


class Manifest(BaseModel):
    """Tracked and custom files of one project."""

    schema_version: int = SCHEMA_VERSION
    upstream_version: str
    tracked_files: dict[str, TrackedFile] = Field(default_factory=dict)
    custom_files: set[str] = Field(default_factory=set)
    history: list[HistoryEntry] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_consistency(self) -> "Manifest":
        overlap = self.custom_files & set(self.tracked_files)
        if overlap:
            raise ValueError(f"paths both tracked and custom: {sorted(overlap)}")
        for key, tracked in self.tracked_files.items():
            if key != tracked.path:
                raise ValueError(f"tracked file key {key!r} does not match path {tracked.path!r}")
        return self

    @field_serializer("custom_files")
    def serialize_custom_files(self, value: set[str]) -> list[str]:
        return sorted(value)

    def status(self, path: str, current_hash: NormalizedHash | None) -> FileStatus:
        return FileStatus(self.tracked_files[path], current_hash)


def load_manifest(path: Path) -> Manifest | None:
    """
    Load the manifest from disk.

    Returns:
        Manifest, or None if no manifest has been written yet

    Raises:
        UnsupportedManifestSchema: If the schema version is not one we write
        ManifestError: If the file is unreadable or malformed
    """
    path = Path(path)
    if not path.exists():
        return None

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ManifestError(f"Cannot read manifest: {e}", path=path) from e

    if not isinstance(raw, dict):
        raise ManifestError("Manifest must be a JSON object", path=path)

    schema_version = raw.get("schema_version")
    if schema_version != SCHEMA_VERSION:
        raise UnsupportedManifestSchema(schema_version, path=path)

    try:
        return Manifest.model_validate(raw)
    except ValidationError as e:
        raise ManifestError(
            f"Manifest is invalid: {e.error_count()} error(s)\n{e}",
            path=path,
            suggestion="Restore the manifest from version control or delete it to re-detect.",
        ) from e


def save_manifest(manifest: Manifest, path: Path) -> None:
    """Write the manifest all-or-nothing."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(manifest.model_dump_json(indent=2) + "\n", encoding="utf-8")
    os.replace(tmp, path)
    logger.debug("Saved manifest with %d tracked file(s) to %s", len(manifest.tracked_files), path)


def bootstrap_manifest(
    match: VersionMatch,
    database: FingerprintDatabase,
    official_paths: Iterable[str],
    local_custom: Iterable[str] = (),
) -> Manifest:
    """
    Build the first manifest for a project.

    Tracked files record the hash the detected version shipped. When no version
    was detected, or the database has no hash for a path, the path records
    `UNKNOWN_HASH` and is treated as customized.

    Args:
        match: Result of version detection
        database: Fingerprint database used for detection
        official_paths: Paths the detected version ships
        local_custom: Local paths upstream never declared official

    Returns:
        Manifest
    """
    recorded: Mapping[str, str] = database.versions.get(match.version, {}) if match.detected else {}
    tracked = {
        path: TrackedFile(path=path, original_hash=recorded.get(path, UNKNOWN_HASH))
        for path in sorted(set(official_paths))
    }
    custom = set(local_custom) - set(tracked)

    logger.info(
        "Bootstrapped manifest at %s: %d tracked, %d custom",
        match.version,
        len(tracked),
        len(custom),
    )
    return Manifest(upstream_version=match.version, tracked_files=tracked, custom_files=custom)
