"""Section-aware three-way merge for markdown files.

Each of base (what upstream shipped last time), current (the local copy) and
incoming (the new upstream release) is split into heading-delimited sections.
Incoming sections are matched to base and current sections by heading and
body similarity, and each is resolved independently:

- clean: no local edit (or a new upstream section) -> take incoming
- preserved: no upstream change -> keep current
- auto_merged: both sides edited disjoint lines -> combine the edits
- conflict: both sides edited the same lines -> three-part marked block

Incoming decides section order. Local sections that match nothing are
appended unchanged so purely local extensions survive every update.
"""

from __future__ import annotations

import difflib
import logging
import re
from dataclasses import dataclass, field
from enum import Enum

from kitsync.update.hasher import normalize_text
from kitsync.update.markers import conflict_block_lines
from kitsync.update.sections import MarkdownSection, parse_sections

logger = logging.getLogger(__name__)

DEFAULT_MATCH_THRESHOLD = 0.8
DEFAULT_HEADING_WEIGHT = 0.7

# Above this length headings are compared with difflib instead of Levenshtein
_MAX_LEVENSHTEIN_CHARS = 200


class MergeOutcome(str, Enum):
    """How a section was resolved."""

    CLEAN = "clean"
    PRESERVED = "preserved"
    AUTO_MERGED = "auto_merged"
    CONFLICT = "conflict"


@dataclass(frozen=True)
class MatchSettings:
    """Tunables for fuzzy section matching."""

    threshold: float = DEFAULT_MATCH_THRESHOLD
    heading_weight: float = DEFAULT_HEADING_WEIGHT

    @classmethod
    def from_config(cls, config) -> "MatchSettings":
        return cls(threshold=config.SECTION_MATCH_THRESHOLD, heading_weight=config.HEADING_WEIGHT)


@dataclass(frozen=True)
class SectionDecision:
    """Resolution of one section, for reporting."""

    header_text: str
    outcome: MergeOutcome
    reason: str


@dataclass
class MergeResult:
    """Result of a structural merge."""

    merged_text: str
    conflict_count: int = 0
    new_section_count: int = 0
    decisions: list[SectionDecision] = field(default_factory=list)

    def count(self, outcome: MergeOutcome) -> int:
        return sum(1 for d in self.decisions if d.outcome is outcome)


# =============================================================================
# Similarity
# =============================================================================


def levenshtein(a: str, b: str) -> int:
    """Edit distance between two strings."""
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        row = [i]
        for j, cb in enumerate(b, 1):
            row.append(min(previous[j] + 1, row[j - 1] + 1, previous[j - 1] + (ca != cb)))
        previous = row
    return previous[-1]


def text_similarity(a: str, b: str) -> float:
    """1.0 for identical strings down to 0.0 for nothing in common."""
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    if max(len(a), len(b)) > _MAX_LEVENSHTEIN_CHARS:
        return difflib.SequenceMatcher(None, a, b, autojunk=False).ratio()
    return 1.0 - levenshtein(a, b) / max(len(a), len(b))


def _heading_key(section: MarkdownSection) -> str:
    text = re.sub(r"\s+", " ", section.header_text).strip().lower()
    return text.rstrip(":")


def section_similarity(
    a: MarkdownSection, b: MarkdownSection, settings: MatchSettings
) -> float:
    """Weighted heading/body similarity. Preambles only ever match preambles."""
    if a.is_preamble != b.is_preamble:
        return 0.0
    if a.is_preamble:
        return 1.0

    heading = text_similarity(_heading_key(a), _heading_key(b))
    body_weight = 1.0 - settings.heading_weight
    body_a, body_b = a.normalized_body, b.normalized_body
    if body_a == body_b:
        body = 1.0
    else:
        matcher = difflib.SequenceMatcher(None, body_a, body_b, autojunk=False)
        # Skip the expensive ratio when even a perfect body could not reach the threshold
        ceiling = settings.heading_weight * heading + body_weight * matcher.real_quick_ratio()
        if ceiling < settings.threshold:
            return settings.heading_weight * heading
        body = matcher.ratio()
    return settings.heading_weight * heading + body_weight * body


def _best_match(
    section: MarkdownSection,
    candidates: list[MarkdownSection],
    consumed: set[int],
    settings: MatchSettings,
) -> int | None:
    """Index of the best unconsumed candidate, or None below the threshold.

    Identical headings win outright (first one in document order); otherwise
    the highest weighted similarity at or above the threshold.
    """
    key = _heading_key(section)
    for index, candidate in enumerate(candidates):
        if index in consumed or candidate.is_preamble != section.is_preamble:
            continue
        if _heading_key(candidate) == key:
            return index

    best_index, best_score = None, settings.threshold
    for index, candidate in enumerate(candidates):
        if index in consumed:
            continue
        score = section_similarity(section, candidate, settings)
        if score >= best_score and (best_index is None or score > best_score):
            best_index, best_score = index, score
    return best_index


# =============================================================================
# Line-level merge inside a section
# =============================================================================


@dataclass(frozen=True)
class _Hunk:
    start: int
    end: int
    lines: tuple[str, ...]

    def touches(self, other: "_Hunk") -> bool:
        # Closed intervals: adjacent edits and insertions at the same point count
        return self.start <= other.end and other.start <= self.end


def _hunks(base: list[str], other: list[str]) -> list[_Hunk]:
    matcher = difflib.SequenceMatcher(
        None,
        [line.rstrip(" \t") for line in base],
        [line.rstrip(" \t") for line in other],
        autojunk=False,
    )
    return [
        _Hunk(i1, i2, tuple(other[j1:j2]))
        for tag, i1, i2, j1, j2 in matcher.get_opcodes()
        if tag != "equal"
    ]


def merge_lines(base: list[str], current: list[str], incoming: list[str]) -> list[str] | None:
    """
    Combine two independent edits of the same base lines.

    Returns None unless the edits are provably disjoint: any two hunks that
    overlap or touch make the merge ambiguous, and ambiguity is a conflict.
    """
    current_hunks = _hunks(base, current)
    incoming_hunks = _hunks(base, incoming)

    for a in current_hunks:
        for b in incoming_hunks:
            if a != b and a.touches(b):
                return None

    merged: list[str] = []
    position = 0
    for hunk in sorted(set(current_hunks) | set(incoming_hunks), key=lambda h: (h.start, h.end)):
        merged.extend(base[position : hunk.start])
        merged.extend(hunk.lines)
        position = hunk.end
    merged.extend(base[position:])
    return merged


# =============================================================================
# Structural merge
# =============================================================================


def _same_body(a: MarkdownSection, b: MarkdownSection) -> bool:
    return a.normalized_body == b.normalized_body


def _same_heading(a: MarkdownSection, b: MarkdownSection) -> bool:
    return a.level == b.level and a.heading_line.strip() == b.heading_line.strip()


def _trailing_blank(lines: tuple[str, ...] | list[str]) -> list[str]:
    count = 0
    for line in reversed(lines):
        if line.strip():
            break
        count += 1
    return [""] * count


def _same_text(a: str, b: str) -> bool:
    return normalize_text(a).rstrip("\n") == normalize_text(b).rstrip("\n")


class _StructuralMerge:
    """State for one merge run. Not reused."""

    def __init__(
        self,
        base: str | None,
        current: str,
        incoming: str,
        base_label: str,
        incoming_label: str,
        settings: MatchSettings,
    ):
        self.has_base = base is not None
        self.base_sections = parse_sections(base) if base is not None else []
        self.current_sections = parse_sections(current)
        self.incoming_sections = parse_sections(incoming)
        self.base_label = base_label
        self.incoming_label = incoming_label
        self.settings = settings

        self.used_base: set[int] = set()
        self.used_current: set[int] = set()
        self.lines: list[str] = []
        self.decisions: list[SectionDecision] = []
        self.new_sections = 0

    def decide(self, header: str, outcome: MergeOutcome, reason: str) -> None:
        self.decisions.append(SectionDecision(header, outcome, reason))

    def emit(self, heading: MarkdownSection, body: list[str] | tuple[str, ...]) -> None:
        if not heading.is_preamble:
            self.lines.append(heading.heading_line)
        self.lines.extend(body)

    def emit_conflict(
        self,
        heading: MarkdownSection,
        current: MarkdownSection | None,
        base: MarkdownSection | None,
        incoming: MarkdownSection | None,
    ) -> None:
        if base is not None:
            base_lines: list[str] | None = list(base.body_lines)
        else:
            base_lines = [] if self.has_base else None
        if not heading.is_preamble:
            self.lines.append(heading.heading_line)
        self.lines.extend(
            conflict_block_lines(
                list(current.body_lines) if current else [],
                base_lines,
                list(incoming.body_lines) if incoming else [],
                self.base_label,
                self.incoming_label,
            )
        )
        trailer = (incoming or current or heading).body_lines
        self.lines.extend(_trailing_blank(trailer))

    def match(self, section: MarkdownSection, candidates, consumed: set[int]) -> int | None:
        index = _best_match(section, candidates, consumed, self.settings)
        if index is not None:
            consumed.add(index)
        return index

    def resolve_incoming(self, incoming: MarkdownSection) -> None:
        b_index = self.match(incoming, self.base_sections, self.used_base)
        base = self.base_sections[b_index] if b_index is not None else None

        c_index = self.match(incoming, self.current_sections, self.used_current)
        if c_index is None and base is not None:
            # Local rename: find the current section through its base ancestor
            c_index = self.match(base, self.current_sections, self.used_current)
        current = self.current_sections[c_index] if c_index is not None else None

        header = incoming.header_text

        if current is None and base is None:
            self.new_sections += 1
            self.emit(incoming, incoming.body_lines)
            self.decide(header, MergeOutcome.CLEAN, "new_upstream_section")
            return

        if current is None:
            if _same_body(incoming, base) and _same_heading(incoming, base):
                # Deleted locally, untouched upstream: keep the deletion
                self.decide(header, MergeOutcome.PRESERVED, "deleted_locally")
            else:
                self.emit_conflict(incoming, None, base, incoming)
                self.decide(header, MergeOutcome.CONFLICT, "deleted_locally_changed_upstream")
            return

        # Keep a local heading rename unless upstream renamed the section too
        heading = current if base is not None and _same_heading(incoming, base) else incoming

        if base is None:
            if _same_body(current, incoming):
                self.emit(heading, incoming.body_lines)
                self.decide(header, MergeOutcome.CLEAN, "identical_content")
            else:
                self.emit_conflict(incoming, current, None, incoming)
                self.decide(header, MergeOutcome.CONFLICT, "no_common_base")
            return

        if _same_body(current, base):
            self.emit(heading, incoming.body_lines)
            self.decide(header, MergeOutcome.CLEAN, "no_local_edit")
        elif _same_body(incoming, base):
            self.emit(heading, current.body_lines)
            self.decide(header, MergeOutcome.PRESERVED, "no_upstream_change")
        elif _same_body(current, incoming):
            self.emit(heading, incoming.body_lines)
            self.decide(header, MergeOutcome.CLEAN, "same_edit")
        else:
            merged = merge_lines(
                list(base.body_lines), list(current.body_lines), list(incoming.body_lines)
            )
            if merged is not None:
                self.emit(heading, merged)
                self.decide(header, MergeOutcome.AUTO_MERGED, "disjoint_edits")
            else:
                self.emit_conflict(incoming, current, base, incoming)
                self.decide(header, MergeOutcome.CONFLICT, "overlapping_edits")

    def resolve_leftover_current(self) -> tuple[list[str], list[str]]:
        """Handle local sections no incoming section claimed.

        Returns (lines to prepend, lines to append). A purely local preamble is
        prepended so front matter stays at the top.
        """
        main_lines = self.lines
        prefix: list[str] = []
        suffix: list[str] = []

        for index, current in enumerate(self.current_sections):
            if index in self.used_current:
                continue
            b_index = self.match(current, self.base_sections, self.used_base)
            target = prefix if current.is_preamble else suffix
            self.lines = target

            if b_index is None:
                self.emit(current, current.body_lines)
                self.decide(current.header_text, MergeOutcome.PRESERVED, "local_addition")
                continue

            base = self.base_sections[b_index]
            if _same_body(current, base):
                self.decide(current.header_text, MergeOutcome.CLEAN, "removed_upstream")
            else:
                self.emit_conflict(current, current, base, None)
                self.decide(
                    current.header_text, MergeOutcome.CONFLICT, "removed_upstream_edited_locally"
                )

        self.lines = main_lines
        return prefix, suffix

    def run(self) -> MergeResult:
        for incoming in self.incoming_sections:
            self.resolve_incoming(incoming)
        prefix, suffix = self.resolve_leftover_current()

        if suffix and self.lines and self.lines[-1].strip():
            self.lines.append("")
        lines = prefix + self.lines + suffix
        merged_text = "\n".join(lines)

        conflicts = sum(1 for d in self.decisions if d.outcome is MergeOutcome.CONFLICT)
        return MergeResult(
            merged_text=merged_text,
            conflict_count=conflicts,
            new_section_count=self.new_sections,
            decisions=self.decisions,
        )


def merge_markdown(
    base: str | None,
    current: str,
    incoming: str,
    base_label: str = "base",
    incoming_label: str = "incoming",
    settings: MatchSettings | None = None,
) -> MergeResult:
    """
    Three-way merge of a markdown document, section by section.

    Args:
        base: Upstream content the local copy was derived from; None if unknown
        current: Local content
        incoming: New upstream content
        base_label: Version label of the base, used in conflict markers
        incoming_label: Version label of the incoming content
        settings: Section matching tunables

    Returns:
        MergeResult with merged text and per-section decisions

    Raises:
        ParseFailure: If any input cannot be segmented
    """
    settings = settings or MatchSettings()
    result = _StructuralMerge(base, current, incoming, base_label, incoming_label, settings).run()

    # Exact texts for the two trivial cases, so neither side gets reflowed
    if base is not None and _same_text(current, base):
        result.merged_text = incoming
    elif base is not None and _same_text(incoming, base):
        result.merged_text = current
    elif _same_text(current, incoming):
        result.merged_text = incoming
    elif incoming.endswith("\n") and not result.merged_text.endswith("\n"):
        result.merged_text += "\n"

    logger.debug(
        "Merged %d section(s): %d conflict(s), %d new, %d auto-merged",
        len(result.decisions),
        result.conflict_count,
        result.new_section_count,
        result.count(MergeOutcome.AUTO_MERGED),
    )
    return result
