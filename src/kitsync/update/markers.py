"""Three-part conflict markers.

The format is diff3-style so editors that understand git conflicts can
render it, and every marker line starts with a unique seven-character run so
a line scanner can find block boundaries without parsing markdown:

    <<<<<<< Current (<base label>)
    ...current...
    ||||||| Base
    ...base...
    =======
    ...incoming...
    >>>>>>> Incoming (<incoming label>)
"""

from __future__ import annotations

from dataclasses import dataclass

MARKER_CURRENT = "<<<<<<<"
MARKER_BASE = "|||||||"
MARKER_SEPARATOR = "======="
MARKER_INCOMING = ">>>>>>>"

BASE_LABEL = "Base"
NO_BASE_PLACEHOLDER = "(no base version)"


def current_marker(base_label: str) -> str:
    return f"{MARKER_CURRENT} Current ({base_label})"


def base_marker() -> str:
    return f"{MARKER_BASE} {BASE_LABEL}"


def incoming_marker(incoming_label: str) -> str:
    return f"{MARKER_INCOMING} Incoming ({incoming_label})"


def _strip_trailing_blank(lines: list[str]) -> list[str]:
    lines = list(lines)
    while lines and not lines[-1].strip():
        lines.pop()
    return lines


def conflict_block_lines(
    current: list[str],
    base: list[str] | None,
    incoming: list[str],
    base_label: str,
    incoming_label: str,
) -> list[str]:
    """
    Build the marked block for one conflict.

    Args:
        current: Local lines
        base: Common-ancestor lines; None when no base version is known
        incoming: Upstream lines
        base_label: Version the local copy was derived from
        incoming_label: Version being installed

    Returns:
        Lines of the block, without a trailing newline
    """
    base_lines = [NO_BASE_PLACEHOLDER] if base is None else _strip_trailing_blank(base)
    return [
        current_marker(base_label),
        *_strip_trailing_blank(current),
        base_marker(),
        *base_lines,
        MARKER_SEPARATOR,
        *_strip_trailing_blank(incoming),
        incoming_marker(incoming_label),
    ]


def render_conflict_file(
    current: str, base: str | None, incoming: str, base_label: str, incoming_label: str
) -> str:
    """Wrap whole file contents in a single conflict block."""
    lines = conflict_block_lines(
        current.split("\n"),
        None if base is None else base.split("\n"),
        incoming.split("\n"),
        base_label,
        incoming_label,
    )
    return "\n".join(lines) + "\n"


@dataclass(frozen=True)
class ConflictBlock:
    """Location and contents of one conflict block found by the scanner (1-based lines)."""

    start_line: int
    end_line: int
    current: tuple[str, ...]
    base: tuple[str, ...] | None
    incoming: tuple[str, ...]


def find_conflict_blocks(text: str) -> list[ConflictBlock]:
    """Locate well-formed conflict blocks. Unterminated blocks are ignored."""
    blocks: list[ConflictBlock] = []
    lines = text.replace("\r\n", "\n").split("\n")

    state = None
    start = 0
    has_base = False
    parts: dict[str, list[str]] = {}
    for index, line in enumerate(lines):
        if line.startswith(MARKER_CURRENT):
            state, start = "current", index
            parts = {"current": [], "base": [], "incoming": []}
            has_base = False
            continue
        if state is None:
            continue
        if line.startswith(MARKER_BASE) and state == "current":
            state, has_base = "base", True
        elif line.startswith(MARKER_SEPARATOR) and state in ("current", "base"):
            state = "incoming"
        elif line.startswith(MARKER_INCOMING) and state == "incoming":
            base = tuple(parts["base"]) if has_base else None
            blocks.append(
                ConflictBlock(
                    start_line=start + 1,
                    end_line=index + 1,
                    current=tuple(parts["current"]),
                    base=base,
                    incoming=tuple(parts["incoming"]),
                )
            )
            state = None
        else:
            parts[state].append(line)
    return blocks


def has_conflict_markers(text: str) -> bool:
    return bool(find_conflict_blocks(text))
