"""Split markdown documents into heading-delimited sections."""

from __future__ import annotations

import re
from dataclasses import dataclass

from kitsync.errors import ParseFailure
from kitsync.update.hasher import normalize_text

_HEADING = re.compile(r"^[ ]{0,3}(#{1,6})(?:[ \t]+(.*?))?[ \t]*$")
_CLOSING_HASHES = re.compile(r"[ \t]+#+$")
_FENCE = re.compile(r"^[ ]{0,3}(`{3,}|~{3,})(.*)$")


@dataclass(frozen=True)
class MarkdownSection:
    """One heading and the lines up to the next heading of any level.

    Level 0 is the preamble before the first heading; it has no heading line.
    `line_start` is the 1-based line of the heading (or of the first preamble
    line).
    """

    header_text: str
    level: int
    line_start: int
    heading_line: str
    body_lines: tuple[str, ...]

    @property
    def body(self) -> str:
        return "\n".join(self.body_lines)

    @property
    def normalized_body(self) -> str:
        """Body with trailing blank lines removed, for equality checks."""
        return normalize_text(self.body).rstrip("\n")

    @property
    def is_preamble(self) -> bool:
        return self.level == 0

    def render_lines(self) -> list[str]:
        if self.is_preamble:
            return list(self.body_lines)
        return [self.heading_line, *self.body_lines]


def _closes(opening: str, marker: str, rest: str) -> bool:
    # A closing fence carries no info string.
    return marker[0] == opening[0] and len(marker) >= len(opening) and not rest.strip()


def _parse_heading(line: str) -> tuple[int, str] | None:
    match = _HEADING.match(line)
    if not match:
        return None
    text = match.group(2) or ""
    text = _CLOSING_HASHES.sub("", text).strip()
    return len(match.group(1)), text


def split_lines(text: str) -> list[str]:
    return text.replace("\r\n", "\n").split("\n")


def parse_sections(text: str) -> list[MarkdownSection]:
    """
    Parse a markdown document into an ordered section list.

    Lines inside fenced code blocks never start a section. Rendering the
    result with `render_sections` gives back the input (with CRLF as LF).

    Raises:
        ParseFailure: If the input is not text or looks binary
    """
    if not isinstance(text, str):
        raise ParseFailure(f"Expected text, got {type(text).__name__}")
    if "\x00" in text:
        raise ParseFailure("Document contains NUL bytes; refusing to parse as markdown")

    lines = split_lines(text)
    sections: list[MarkdownSection] = []

    header_text, level, line_start, heading_line = "", 0, 1, ""
    body: list[str] = []
    fence: str | None = None

    for index, line in enumerate(lines):
        fence_match = _FENCE.match(line)
        if fence is not None:
            if fence_match and _closes(fence, fence_match.group(1), fence_match.group(2)):
                fence = None
            body.append(line)
            continue
        if fence_match:
            fence = fence_match.group(1)
            body.append(line)
            continue

        heading = _parse_heading(line)
        if heading is None:
            body.append(line)
            continue

        if level > 0 or body:
            sections.append(
                MarkdownSection(header_text, level, line_start, heading_line, tuple(body))
            )
        level, header_text = heading
        line_start, heading_line, body = index + 1, line, []

    if level > 0 or body:
        sections.append(MarkdownSection(header_text, level, line_start, heading_line, tuple(body)))
    return sections


def render_sections(sections: list[MarkdownSection]) -> str:
    lines: list[str] = []
    for section in sections:
        lines.extend(section.render_lines())
    return "\n".join(lines)
