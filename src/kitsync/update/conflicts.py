"""Resolution of files both the user and upstream changed.

Resolution runs as a pipeline of attempts, each returning an `Outcome`:

1. structural markdown merge (markdown files only)
2. granular diff report (files over the size threshold)
3. whole-file conflict markers, which always succeeds

A failed attempt carries a `FallbackReason`, so every path that leads to a
fallback is enumerable and shows up on the resulting artifact.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Generic, TypeVar

from kitsync.errors import ParseFailure
from kitsync.update.diffreport import (
    DEFAULT_CONTEXT_LINES,
    DiffSection,
    UnchangedRange,
    compute_diff_sections,
    render_diff_report,
)
from kitsync.update.markers import render_conflict_file
from kitsync.update.merger import MatchSettings, MergeResult, merge_markdown
from kitsync.update.sections import split_lines

logger = logging.getLogger(__name__)

LARGE_FILE_LINE_THRESHOLD = 100
MARKDOWN_SUFFIXES = frozenset({".md", ".markdown", ".mdc"})

T = TypeVar("T")


class FallbackReason(str, Enum):
    """Why an attempt handed over to the next one."""

    NOT_MARKDOWN = "not_markdown"
    PARSE_FAILURE = "parse_failure"
    DIFF_FAILURE = "diff_failure"
    EMPTY_DIFF = "empty_diff"


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Either a value or the reason there is none."""

    value: T | None = None
    reason: FallbackReason | None = None
    detail: str | None = None

    @classmethod
    def ok(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def failed(cls, reason: FallbackReason, detail: str | None = None) -> "Outcome[T]":
        return cls(reason=reason, detail=detail)

    @property
    def succeeded(self) -> bool:
        return self.reason is None

    def or_else(self, fallback: Callable[["Outcome[T]"], T]) -> T:
        if self.succeeded:
            return self.value
        return fallback(self)


class ResolutionKind(str, Enum):
    STRUCTURAL_MERGE = "structural_merge"
    DIFF_REPORT = "diff_report"
    INLINE_MARKERS = "inline_markers"


@dataclass
class ResolutionArtifact:
    """What to do with one conflicting file.

    `file_content` replaces the local file when set. `report_content` is a
    side document; when it is set the local file is left untouched.
    """

    path: str
    kind: ResolutionKind
    conflict_count: int
    file_content: str | None = None
    report_content: str | None = None
    fallbacks: tuple[FallbackReason, ...] = ()
    merge: MergeResult | None = None
    diff_sections: list[DiffSection] = field(default_factory=list)
    unchanged_ranges: list[UnchangedRange] = field(default_factory=list)

    @property
    def needs_attention(self) -> bool:
        return self.conflict_count > 0


def text_lines(text: str) -> list[str]:
    """Lines split on LF only; a final newline does not start another line."""
    lines = split_lines(text)
    if lines[-1] == "":
        lines.pop()
    return lines


def count_lines(text: str) -> int:
    return len(text_lines(text))


def is_markdown(path: str) -> bool:
    return Path(path).suffix.lower() in MARKDOWN_SUFFIXES


def inline_markers(
    path: str,
    current: str,
    base: str | None,
    incoming: str,
    base_label: str,
    incoming_label: str,
    fallbacks: tuple[FallbackReason, ...] = (),
) -> ResolutionArtifact:
    """Wrap the whole file in one three-part conflict block."""
    return ResolutionArtifact(
        path=path,
        kind=ResolutionKind.INLINE_MARKERS,
        conflict_count=1,
        file_content=render_conflict_file(current, base, incoming, base_label, incoming_label),
        fallbacks=fallbacks,
    )


def try_diff_report(
    path: str,
    current: str,
    base: str | None,
    incoming: str,
    base_label: str,
    incoming_label: str,
    context_lines: int = DEFAULT_CONTEXT_LINES,
) -> Outcome[ResolutionArtifact]:
    """Build a granular diff report of current against incoming.

    The base content plays no part in the diff; it only decides how the base
    is labelled.
    """
    current_lines = text_lines(current)
    incoming_lines = text_lines(incoming)
    try:
        sections, unchanged = compute_diff_sections(current_lines, incoming_lines, context_lines)
        report = render_diff_report(
            path,
            current_lines,
            incoming_lines,
            sections,
            unchanged,
            base_label if base is not None else None,
            incoming_label,
        )
    except (ValueError, TypeError, MemoryError, RecursionError) as e:
        logger.warning("Diff report failed for %s: %s", path, e)
        return Outcome.failed(FallbackReason.DIFF_FAILURE, str(e))

    if not sections:
        # Lines match but the texts do not (e.g. only the final newline differs).
        return Outcome.failed(FallbackReason.EMPTY_DIFF, "no differing lines")

    return Outcome.ok(
        ResolutionArtifact(
            path=path,
            kind=ResolutionKind.DIFF_REPORT,
            conflict_count=len(sections),
            report_content=report,
            diff_sections=sections,
            unchanged_ranges=unchanged,
        )
    )


def resolve(
    path: str,
    current: str,
    base: str | None,
    incoming: str,
    base_label: str,
    incoming_label: str,
    *,
    line_threshold: int = LARGE_FILE_LINE_THRESHOLD,
    context_lines: int = DEFAULT_CONTEXT_LINES,
) -> ResolutionArtifact:
    """
    Size-adaptive conflict resolution.

    Files of up to `line_threshold` lines (inclusive) get inline markers;
    larger files get a diff report, falling back to inline markers if the
    diff cannot be computed.
    """
    if count_lines(current) <= line_threshold:
        return inline_markers(path, current, base, incoming, base_label, incoming_label)

    return try_diff_report(
        path, current, base, incoming, base_label, incoming_label, context_lines
    ).or_else(
        lambda failed: inline_markers(
            path, current, base, incoming, base_label, incoming_label, (failed.reason,)
        )
    )


def try_structural_merge(
    path: str,
    current: str,
    base: str | None,
    incoming: str,
    base_label: str,
    incoming_label: str,
    settings: MatchSettings | None = None,
) -> Outcome[ResolutionArtifact]:
    """Section-aware merge for markdown files."""
    if not is_markdown(path):
        return Outcome.failed(FallbackReason.NOT_MARKDOWN)
    try:
        result = merge_markdown(base, current, incoming, base_label, incoming_label, settings)
    except ParseFailure as e:
        logger.warning("Structural merge failed for %s: %s", path, e.message)
        return Outcome.failed(FallbackReason.PARSE_FAILURE, e.message)

    return Outcome.ok(
        ResolutionArtifact(
            path=path,
            kind=ResolutionKind.STRUCTURAL_MERGE,
            conflict_count=result.conflict_count,
            file_content=result.merged_text,
            merge=result,
        )
    )


def resolve_customized_file(
    path: str,
    current: str,
    base: str | None,
    incoming: str,
    base_label: str,
    incoming_label: str,
    config=None,
) -> ResolutionArtifact:
    """
    Resolve a file changed both locally and upstream.

    Args:
        path: Project-relative path
        current: Local content
        base: Content of the version the local copy derives from; None if unknown
        incoming: New upstream content
        base_label: Label of the base version
        incoming_label: Label of the incoming version
        config: Optional KitsyncConfig supplying thresholds

    Returns:
        ResolutionArtifact; never raises for content problems
    """
    settings = MatchSettings.from_config(config) if config is not None else None
    line_threshold = config.LARGE_FILE_LINE_THRESHOLD if config else LARGE_FILE_LINE_THRESHOLD
    context_lines = config.DIFF_CONTEXT_LINES if config else DEFAULT_CONTEXT_LINES

    def fallback(failed: Outcome[ResolutionArtifact]) -> ResolutionArtifact:
        artifact = resolve(
            path,
            current,
            base,
            incoming,
            base_label,
            incoming_label,
            line_threshold=line_threshold,
            context_lines=context_lines,
        )
        artifact.fallbacks = (failed.reason, *artifact.fallbacks)
        return artifact

    artifact = try_structural_merge(
        path, current, base, incoming, base_label, incoming_label, settings
    ).or_else(fallback)
    logger.info(
        "Resolved %s via %s (%d conflict(s))", path, artifact.kind.value, artifact.conflict_count
    )
    return artifact


def report_path_for(report_dir: Path, path: str) -> Path:
    return Path(report_dir) / f"{path}.conflict.md"


def write_artifact(
    artifact: ResolutionArtifact, project_root: Path, report_dir: Path
) -> Path | None:
    """
    Commit an artifact to disk.

    Returns:
        Path of the side report if one was written, else None
    """
    if artifact.file_content is not None:
        target = Path(project_root) / artifact.path
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp = target.with_name(target.name + ".kitsync-tmp")
        tmp.write_text(artifact.file_content, encoding="utf-8", errors="surrogateescape")
        os.replace(tmp, target)

    if artifact.report_content is None:
        return None

    report_path = report_path_for(report_dir, artifact.path)
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(artifact.report_content, encoding="utf-8", errors="surrogateescape")
    logger.info("Wrote conflict report for %s to %s", artifact.path, report_path)
    return report_path
