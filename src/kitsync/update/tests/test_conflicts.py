"""Tests for conflict resolution and its fallbacks."""

from __future__ import annotations

from kitsync.config import KitsyncConfig
from kitsync.update import conflicts
from kitsync.update.conflicts import (
    FallbackReason,
    Outcome,
    ResolutionKind,
    count_lines,
    report_path_for,
    resolve,
    resolve_customized_file,
    write_artifact,
)
from kitsync.update.markers import find_conflict_blocks, has_conflict_markers


def lines_text(count: int, prefix: str = "line") -> str:
    return "".join(f"{prefix} {i}\n" for i in range(1, count + 1))


class TestOutcome:
    """Tests for the fallback pipeline value."""

    def test_ok_skips_fallback(self):
        """Test ok skips fallback."""
        assert Outcome.ok(1).or_else(lambda failed: 2) == 1

    def test_failed_hands_over_reason(self):
        """Test failed hands over reason."""
        outcome = Outcome.failed(FallbackReason.DIFF_FAILURE, "boom")
        assert not outcome.succeeded
        assert outcome.or_else(lambda failed: (failed.reason, failed.detail)) == (
            FallbackReason.DIFF_FAILURE,
            "boom",
        )


class TestSizeAdaptiveResolve:
    """Tests for inline markers versus diff reports."""

    def test_small_file_gets_inline_markers(self):
        """Test small file gets inline markers."""
        current = lines_text(100)
        incoming = lines_text(99) + "changed 100\n"

        artifact = resolve("a.txt", current, current, incoming, "v1", "v2")

        assert artifact.kind is ResolutionKind.INLINE_MARKERS
        assert artifact.conflict_count == 1
        assert artifact.report_content is None
        blocks = find_conflict_blocks(artifact.file_content)
        assert len(blocks) == 1

    def test_large_file_gets_report(self):
        """Test large file gets report."""
        current = lines_text(101)
        incoming = current.replace("line 50\n", "changed 50\n")

        artifact = resolve("a.txt", current, current, incoming, "v1", "v2")

        assert artifact.kind is ResolutionKind.DIFF_REPORT
        assert artifact.file_content is None
        assert artifact.conflict_count == len(artifact.diff_sections) == 1
        assert "changed 50" in artifact.report_content
        assert artifact.fallbacks == ()

    def test_missing_base_labels_report(self):
        """Test missing base labels report."""
        current = lines_text(120)
        incoming = current.replace("line 7\n", "changed 7\n")
        artifact = resolve("a.txt", current, None, incoming, "unknown", "v2")
        assert "(no base version)" in artifact.report_content

    def test_diff_failure_falls_back_to_markers(self, monkeypatch):
        """Test diff failure falls back to markers."""
        def explode(*args, **kwargs):
            raise MemoryError("too big")

        monkeypatch.setattr(conflicts, "compute_diff_sections", explode)
        current = lines_text(150)

        artifact = resolve("a.txt", current, current, lines_text(150, "new"), "v1", "v2")

        assert artifact.kind is ResolutionKind.INLINE_MARKERS
        assert artifact.fallbacks == (FallbackReason.DIFF_FAILURE,)
        assert has_conflict_markers(artifact.file_content)

    def test_lines_split_on_newline_only(self):
        """Test line counting ignores bare carriage returns and form feeds."""
        assert count_lines("a\nb\n") == count_lines("a\nb") == 2
        assert count_lines("a\rb\x0cc\n") == 1
        assert count_lines("") == 0

    def test_bare_carriage_returns_are_one_line(self):
        """Test a CR-only file is measured as a single line and gets markers."""
        current = "".join(f"line {i}\r" for i in range(1, 151))
        incoming = lines_text(150)

        artifact = resolve("x.txt", current, current, incoming, "v1", "v2")

        assert artifact.kind is ResolutionKind.INLINE_MARKERS
        assert artifact.conflict_count == 1

        report = resolve("x.txt", current, current, incoming, "v1", "v2", line_threshold=0)
        assert report.kind is ResolutionKind.DIFF_REPORT
        assert report.conflict_count == len(report.diff_sections) >= 1

    def test_empty_diff_still_needs_attention(self):
        """Test texts differing only in the final newline fall back to markers."""
        current = lines_text(150)
        incoming = current.rstrip("\n")

        artifact = resolve("a.txt", current, current, incoming, "v1", "v2")

        assert artifact.kind is ResolutionKind.INLINE_MARKERS
        assert artifact.fallbacks == (FallbackReason.EMPTY_DIFF,)
        assert artifact.needs_attention


class TestResolveCustomizedFile:
    """Tests for the full resolution pipeline."""

    def test_markdown_merges_structurally(self):
        """Test markdown merges structurally."""
        artifact = resolve_customized_file(
            "docs/guide.md",
            "# A\n\na local\n",
            "# A\n\na\n",
            "# A\n\na\n\n# B\n\nb\n",
            "v1",
            "v2",
        )
        assert artifact.kind is ResolutionKind.STRUCTURAL_MERGE
        assert artifact.file_content == "# A\n\na local\n\n# B\n\nb\n"
        assert not artifact.needs_attention
        assert artifact.merge is not None

    def test_markdown_conflict_counts(self):
        """Test conflicting sections are counted on the artifact."""
        artifact = resolve_customized_file(
            "install.md", "# Install\nstep X", "# Install\nstep A", "# Install\nstep Y", "v1", "v2"
        )
        assert artifact.kind is ResolutionKind.STRUCTURAL_MERGE
        assert artifact.conflict_count == 1
        assert artifact.needs_attention

    def test_non_markdown_falls_back(self):
        """Test non markdown falls back."""
        artifact = resolve_customized_file("run.sh", "echo a\n", "echo\n", "echo b\n", "v1", "v2")
        assert artifact.kind is ResolutionKind.INLINE_MARKERS
        assert artifact.fallbacks == (FallbackReason.NOT_MARKDOWN,)

    def test_parse_failure_falls_back(self):
        """Test parse failure falls back."""
        artifact = resolve_customized_file(
            "bin.md", "# A\n\x00\n", "# A\n", "# A\nnew\n", "v1", "v2"
        )
        assert artifact.kind is ResolutionKind.INLINE_MARKERS
        assert artifact.fallbacks == (FallbackReason.PARSE_FAILURE,)

    def test_config_threshold_is_honored(self):
        """Test config threshold is honored."""
        config = KitsyncConfig(LARGE_FILE_LINE_THRESHOLD=5)
        current = lines_text(10)
        incoming = current.replace("line 3\n", "changed 3\n")

        artifact = resolve_customized_file(
            "notes.txt", current, current, incoming, "v1", "v2", config
        )

        assert artifact.kind is ResolutionKind.DIFF_REPORT
        assert artifact.fallbacks == (FallbackReason.NOT_MARKDOWN,)


class TestWriteArtifact:
    """Tests for committing artifacts to disk."""

    def test_inline_markers_replace_file(self, tmp_path):
        """Test inline markers replace file."""
        (tmp_path / "a.txt").write_text("mine\n")
        artifact = resolve("a.txt", "mine\n", "base\n", "theirs\n", "v1", "v2")

        report = write_artifact(artifact, tmp_path, tmp_path / ".kitsync" / "conflicts")

        assert report is None
        assert has_conflict_markers((tmp_path / "a.txt").read_text())
        assert not list(tmp_path.glob("*.kitsync-tmp"))

    def test_report_leaves_file_untouched(self, tmp_path):
        """Test report leaves file untouched."""
        current = lines_text(200)
        (tmp_path / "docs").mkdir()
        (tmp_path / "docs" / "big.txt").write_text(current)
        artifact = resolve(
            "docs/big.txt", current, current, current.replace("line 9\n", "x\n"), "v1", "v2"
        )
        report_dir = tmp_path / ".kitsync" / "conflicts"

        report = write_artifact(artifact, tmp_path, report_dir)

        assert report == report_path_for(report_dir, "docs/big.txt")
        assert report == report_dir / "docs" / "big.txt.conflict.md"
        assert report.read_text().startswith("# Update conflict: `docs/big.txt`")
        assert (tmp_path / "docs" / "big.txt").read_text() == current
