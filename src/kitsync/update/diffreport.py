"""Granular line diff reports for large conflicting files.

Instead of wrapping a whole large file in conflict markers, changed regions
between the local copy and the incoming version are grouped into padded
sections and written to a separate markdown report.
"""

from __future__ import annotations

import difflib
import re
from dataclasses import dataclass

from kitsync.update.markers import NO_BASE_PLACEHOLDER

DEFAULT_CONTEXT_LINES = 3


@dataclass(frozen=True)
class DiffSection:
    """A changed region, 1-based and inclusive on both sides.

    A side with no lines in the region has end == start - 1.
    """

    current_start: int
    current_end: int
    incoming_start: int
    incoming_end: int


@dataclass(frozen=True)
class UnchangedRange:
    """Lines of the current file outside every DiffSection (1-based, inclusive)."""

    start_line: int
    end_line: int


def compute_diff_sections(
    current_lines: list[str],
    incoming_lines: list[str],
    context: int = DEFAULT_CONTEXT_LINES,
) -> tuple[list[DiffSection], list[UnchangedRange]]:
    """
    Group changed lines into padded sections.

    Each changed region is padded by `context` lines on both sides; regions
    whose padding overlaps or touches are merged into one section.

    Returns:
        Tuple of (diff sections, unchanged ranges of the current file)
    """
    matcher = difflib.SequenceMatcher(None, current_lines, incoming_lines, autojunk=False)
    n_current, n_incoming = len(current_lines), len(incoming_lines)

    # Half-open 0-based spans [c1, c2) / [i1, i2)
    spans: list[list[int]] = []
    for tag, c1, c2, i1, i2 in matcher.get_opcodes():
        if tag == "equal":
            continue
        padded = [
            max(0, c1 - context),
            min(n_current, c2 + context),
            max(0, i1 - context),
            min(n_incoming, i2 + context),
        ]
        if spans and (padded[0] <= spans[-1][1] or padded[2] <= spans[-1][3]):
            spans[-1][1] = max(spans[-1][1], padded[1])
            spans[-1][3] = max(spans[-1][3], padded[3])
        else:
            spans.append(padded)

    sections = [DiffSection(c1 + 1, c2, i1 + 1, i2) for c1, c2, i1, i2 in spans]

    unchanged: list[UnchangedRange] = []
    next_line = 1
    for section in sections:
        if section.current_start > next_line:
            unchanged.append(UnchangedRange(next_line, section.current_start - 1))
        next_line = max(next_line, section.current_end + 1)
    if next_line <= n_current:
        unchanged.append(UnchangedRange(next_line, n_current))

    return sections, unchanged


def _fence_for(lines: list[str]) -> str:
    longest = 0
    for line in lines:
        for run in re.findall(r"`+", line):
            longest = max(longest, len(run))
    return "`" * max(3, longest + 1)


def _code_block(lines: list[str]) -> list[str]:
    fence = _fence_for(lines)
    return [f"{fence}text", *lines, fence]


def _range_label(start: int, end: int) -> str:
    if end < start:
        return f"none (before line {start})"
    if start == end:
        return f"line {start}"
    return f"lines {start}-{end}"


def render_diff_report(
    path: str,
    current_lines: list[str],
    incoming_lines: list[str],
    sections: list[DiffSection],
    unchanged: list[UnchangedRange],
    base_label: str | None,
    incoming_label: str,
) -> str:
    """
    Render a markdown report of the changed sections.

    Args:
        path: Project-relative path of the conflicting file
        current_lines: Local file lines
        incoming_lines: Upstream file lines
        sections: Changed sections from compute_diff_sections
        unchanged: Unchanged ranges from compute_diff_sections
        base_label: Version the local copy derives from; None if unknown
        incoming_label: Version being installed

    Returns:
        Markdown document
    """
    base = base_label if base_label is not None else NO_BASE_PLACEHOLDER
    out = [
        f"# Update conflict: `{path}`",
        "",
        f"Comparing **Current** (based on {base}) with **Incoming** ({incoming_label}).",
        "",
        f"The file was left unchanged. {len(sections)} section(s) differ; "
        "apply the incoming changes you want by hand.",
        "Delete this report when you are done; the next update then takes the file as "
        "resolved.",
        "",
        f"## Changed sections ({len(sections)})",
        "",
    ]

    for number, section in enumerate(sections, 1):
        current_body = current_lines[section.current_start - 1 : section.current_end]
        incoming_body = incoming_lines[section.incoming_start - 1 : section.incoming_end]
        out += [
            f"### {number}. Current {_range_label(section.current_start, section.current_end)}, "
            f"Incoming {_range_label(section.incoming_start, section.incoming_end)}",
            "",
            "**Current**",
            "",
            *_code_block(current_body),
            "",
            f"**Incoming ({incoming_label})**",
            "",
            *_code_block(incoming_body),
            "",
        ]

    out += ["## Unchanged ranges", ""]
    if unchanged:
        out += [f"- Lines {r.start_line}-{r.end_line}" for r in unchanged]
    else:
        out.append("- (none)")
    return "\n".join(out) + "\n"
