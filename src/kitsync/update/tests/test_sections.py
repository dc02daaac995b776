"""Tests for markdown section parsing."""

from __future__ import annotations

import pytest

from kitsync.errors import ParseFailure
from kitsync.update.sections import parse_sections, render_sections


class TestParseSections:
    """Tests for parse_sections."""

    def test_single_heading(self):
        """Test single heading."""
        sections = parse_sections("# Install\nstep A")
        assert len(sections) == 1
        section = sections[0]
        assert section.header_text == "Install"
        assert section.level == 1
        assert section.line_start == 1
        assert section.body_lines == ("step A",)

    def test_preamble_is_level_zero(self):
        """Test preamble is level zero."""
        sections = parse_sections("intro\n# A\nbody")
        assert [s.level for s in sections] == [0, 1]
        assert sections[0].is_preamble
        assert sections[0].body == "intro"
        assert sections[1].line_start == 2

    def test_splits_at_any_heading_level(self):
        """Test splits at any heading level."""
        text = "# Top\n\n## Child\n\ntext\n\n### Grandchild\n\nmore\n"
        sections = parse_sections(text)
        assert [(s.header_text, s.level) for s in sections] == [
            ("Top", 1),
            ("Child", 2),
            ("Grandchild", 3),
        ]

    def test_closing_hashes_dropped(self):
        """Test closing hashes dropped."""
        assert parse_sections("## Title ##\n")[0].header_text == "Title"

    @pytest.mark.parametrize(
        "line", ["#hashtag", "####### seven", "not # a heading", "    # code block"]
    )
    def test_non_headings(self, line):
        """Test non headings."""
        sections = parse_sections(f"{line}\n")
        assert len(sections) == 1
        assert sections[0].is_preamble

    def test_fenced_code_is_not_split(self):
        """Test fenced code is not split."""
        text = "# A\n```bash\n# not a heading\n```\n# B\nb\n"
        sections = parse_sections(text)
        assert [s.header_text for s in sections] == ["A", "B"]
        assert "# not a heading" in sections[0].body_lines

    def test_tilde_fence_needs_matching_close(self):
        """Test tilde fence needs matching close."""
        text = "# A\n~~~\n```\n# inside\n~~~\n# B\n"
        assert [s.header_text for s in parse_sections(text)] == ["A", "B"]

    def test_indented_heading(self):
        """Test headings indented by up to three spaces are recognized."""
        sections = parse_sections("intro\n   ## Setup\nbody\n")
        assert [(s.header_text, s.level) for s in sections] == [("", 0), ("Setup", 2)]
        assert sections[1].heading_line == "   ## Setup"

    def test_fence_with_info_string_does_not_close(self):
        """Test a fence line carrying an info string stays inside the block."""
        text = "# A\n```\n```js\n# inside\n```\n# B\n"
        sections = parse_sections(text)
        assert [s.header_text for s in sections] == ["A", "B"]
        assert "# inside" in sections[0].body_lines

    def test_normalized_body_ignores_trailing_blank_lines(self):
        """Test normalized body ignores trailing blank lines."""
        a = parse_sections("# A\ntext\n\n\n")[0]
        b = parse_sections("# A\ntext  \n")[0]
        assert a.normalized_body == b.normalized_body

    @pytest.mark.parametrize(
        "text",
        [
            "# Install\nstep A",
            "intro\n\n# A\n\nbody\n\n## B\n\nmore\n",
            "---\nname: x\n---\n# Title\n",
            "",
        ],
    )
    def test_render_round_trips(self, text):
        """Test render round trips."""
        assert render_sections(parse_sections(text)) == text

    def test_crlf_input(self):
        """Test crlf input."""
        sections = parse_sections("# A\r\nbody\r\n")
        assert sections[0].body_lines == ("body", "")

    def test_nul_bytes_fail(self):
        """Test nul bytes fail."""
        with pytest.raises(ParseFailure):
            parse_sections("# A\n\x00\x01binary")

    def test_non_text_fails(self):
        """Test non text fails."""
        with pytest.raises(ParseFailure):
            parse_sections(b"# A\n")
