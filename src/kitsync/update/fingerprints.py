"""Infer which upstream version a project matches from its file hashes.

The database maps each released version to the normalized hashes of the files
it tracks, plus three high-signal "signature" paths used for a fast exact
match. Detection itself is a pure function over two hash maps; loading and
building the database are the only I/O here.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from kitsync.errors import FingerprintDatabaseUnavailable
from kitsync.update.hasher import NormalizedHash, hash_content, hashes_equal
from kitsync.update.provider import UpstreamProvider, version_sort_key

logger = logging.getLogger(__name__)

FINGERPRINT_SCHEMA_VERSION = 1
UNKNOWN_VERSION = "unknown"

HIGH_CONFIDENCE = 0.95
MEDIUM_CONFIDENCE = 0.70
# A candidate must match strictly more than this fraction to count at all
MIN_MATCH_FRACTION = 0.0


class Confidence(str, Enum):
    """How sure we are about a detected version."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


def confidence_for(fraction: float) -> Confidence:
    if fraction >= HIGH_CONFIDENCE:
        return Confidence.HIGH
    if fraction >= MEDIUM_CONFIDENCE:
        return Confidence.MEDIUM
    return Confidence.LOW


class FingerprintDatabase(BaseModel):
    """Per-release file signatures."""

    schema_version: int = FINGERPRINT_SCHEMA_VERSION
    signature_paths: list[str] = Field(min_length=1)
    tracked_paths: list[str] = Field(min_length=1)
    versions: dict[str, dict[str, str]] = Field(min_length=1)

    @field_validator("schema_version")
    @classmethod
    def validate_schema_version(cls, v: int) -> int:
        if v != FINGERPRINT_SCHEMA_VERSION:
            raise ValueError(f"unsupported fingerprint schema version {v}")
        return v

    @field_validator("versions")
    @classmethod
    def validate_hashes(cls, v: dict[str, dict[str, str]]) -> dict[str, dict[str, str]]:
        for version, hashes in v.items():
            for path, value in hashes.items():
                if ":" not in value:
                    raise ValueError(f"{version}/{path}: hash must look like 'sha256:HEX'")
        return v

    @model_validator(mode="after")
    def check_signature_subset(self) -> "FingerprintDatabase":
        missing = set(self.signature_paths) - set(self.tracked_paths)
        if missing:
            raise ValueError(f"signature paths not tracked: {sorted(missing)}")
        return self

    def versions_newest_first(self) -> list[str]:
        return sorted(self.versions, key=version_sort_key, reverse=True)


@dataclass(frozen=True)
class VersionMatch:
    """Result of version detection.

    `detected` is False for the "undetected" sentinel, in which case every
    tracked path is reported as customized.
    """

    version: str
    confidence: Confidence
    customized_paths: frozenset[str] = field(default_factory=frozenset)
    match_fraction: float = 0.0
    detected: bool = True

    @classmethod
    def undetected(cls, tracked_paths: Iterable[str]) -> "VersionMatch":
        return cls(
            version=UNKNOWN_VERSION,
            confidence=Confidence.LOW,
            customized_paths=frozenset(tracked_paths),
            match_fraction=0.0,
            detected=False,
        )


def _signature_match(
    current_hashes: Mapping[str, NormalizedHash], database: FingerprintDatabase
) -> str | None:
    """Return the single version whose signature paths all match, if exactly one does."""
    if not all(path in current_hashes for path in database.signature_paths):
        return None

    candidates = []
    for version in database.versions:
        recorded = database.versions[version]
        if all(
            hashes_equal(current_hashes[path], recorded.get(path))
            for path in database.signature_paths
        ):
            candidates.append(version)

    if len(candidates) == 1:
        return candidates[0]
    if candidates:
        logger.debug(
            "Signature paths match %d versions, falling back to full scan", len(candidates)
        )
    return None


def detect_version(
    current_hashes: Mapping[str, NormalizedHash], database: FingerprintDatabase
) -> VersionMatch:
    """
    Match a project's current hashes against the fingerprint database.

    Args:
        current_hashes: Relative path -> current hash for files present locally
        database: Loaded fingerprint database

    Returns:
        VersionMatch; the undetected sentinel when nothing matches at all
    """
    version = _signature_match(current_hashes, database)
    if version is not None:
        logger.info("Detected upstream version %s from signature files", version)
        return VersionMatch(version=version, confidence=Confidence.HIGH, match_fraction=1.0)

    tracked = database.tracked_paths
    best_version: str | None = None
    best_fraction = MIN_MATCH_FRACTION

    # Newest first, and only a strictly better score replaces the leader, so
    # ties resolve to the most recent version.
    for candidate in database.versions_newest_first():
        recorded = database.versions[candidate]
        paths = [p for p in tracked if p in recorded]
        if not paths:
            continue
        matches = sum(1 for p in paths if hashes_equal(current_hashes.get(p), recorded[p]))
        fraction = matches / len(paths)
        if fraction > best_fraction:
            best_version, best_fraction = candidate, fraction

    if best_version is None:
        logger.warning("No upstream version matches; treating every tracked file as customized")
        return VersionMatch.undetected(tracked)

    recorded = database.versions[best_version]
    customized = frozenset(
        p for p in tracked if p in recorded and not hashes_equal(current_hashes.get(p), recorded[p])
    )
    confidence = confidence_for(best_fraction)
    logger.info(
        "Detected upstream version %s (%s confidence, %.0f%% match, %d customized)",
        best_version,
        confidence.value,
        best_fraction * 100,
        len(customized),
    )
    return VersionMatch(
        version=best_version,
        confidence=confidence,
        customized_paths=customized,
        match_fraction=best_fraction,
    )


def load_fingerprint_database(path: Path) -> FingerprintDatabase:
    """
    Load the fingerprint database snapshot.

    Raises:
        FingerprintDatabaseUnavailable: If the file is missing, unparsable or invalid
    """
    path = Path(path)
    try:
        with open(path) as f:
            raw = json.load(f)
    except FileNotFoundError as e:
        raise FingerprintDatabaseUnavailable(
            f"Fingerprint database not found: {path}",
            path=path,
            suggestion="Run 'kitsync fingerprint build' to create it from the upstream snapshot.",
        ) from e
    except (OSError, json.JSONDecodeError) as e:
        raise FingerprintDatabaseUnavailable(
            f"Fingerprint database is unreadable: {e}", path=path
        ) from e

    try:
        return FingerprintDatabase.model_validate(raw)
    except ValidationError as e:
        raise FingerprintDatabaseUnavailable(
            f"Fingerprint database is invalid: {e.error_count()} error(s)\n{e}", path=path
        ) from e


def save_fingerprint_database(database: FingerprintDatabase, path: Path) -> None:
    """Write the database atomically."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(database.model_dump_json(indent=2) + "\n")
    os.replace(tmp, path)


def build_fingerprint_database(
    provider: UpstreamProvider,
    versions: Iterable[str] | None = None,
    tracked_paths: Iterable[str] | None = None,
    signature_paths: Iterable[str] | None = None,
) -> FingerprintDatabase:
    """
    Build a fingerprint database from upstream content.

    Args:
        provider: Upstream source
        versions: Versions to include (default: all the provider knows)
        tracked_paths: Paths to fingerprint (default: union of all listed files)
        signature_paths: Fast-path subset (default: the 3 tracked paths whose
            hashes change across the most versions)

    Returns:
        FingerprintDatabase
    """
    versions = list(versions) if versions is not None else provider.list_versions()
    if not versions:
        raise FingerprintDatabaseUnavailable("No upstream versions available to fingerprint")

    if tracked_paths is None:
        tracked: set[str] = set()
        for version in versions:
            tracked.update(provider.list_paths(version))
        tracked_list = sorted(tracked)
    else:
        tracked_list = sorted(set(tracked_paths))

    table: dict[str, dict[str, str]] = {}
    for version in versions:
        hashes = {}
        for path in tracked_list:
            content = provider.get(version, path)
            if content is not None:
                hashes[path] = str(hash_content(content))
        table[version] = hashes

    if signature_paths is None:
        signature_list = _pick_signature_paths(table, tracked_list)
    else:
        signature_list = list(signature_paths)

    logger.info(
        "Built fingerprints for %d version(s), %d tracked path(s)", len(table), len(tracked_list)
    )
    return FingerprintDatabase(
        signature_paths=signature_list,
        tracked_paths=tracked_list,
        versions=table,
    )


def _pick_signature_paths(table: dict[str, dict[str, str]], tracked: list[str], count: int = 3):
    """Prefer paths present everywhere whose content differs across the most versions."""

    def score(path: str) -> tuple[int, int]:
        values = [hashes.get(path) for hashes in table.values()]
        present = sum(1 for v in values if v is not None)
        distinct = len({v for v in values if v is not None})
        return (present, distinct)

    ranked = sorted(tracked, key=lambda p: (score(p), p), reverse=True)
    return ranked[:count]
