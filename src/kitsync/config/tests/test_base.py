"""Tests for kitsync.config loading and validation."""

from __future__ import annotations

import pytest

from kitsync.config import (
    KitsyncConfig,
    config_file_exists,
    create_config,
    get_config_file_path,
    get_config_or_default,
    load_config,
)


@pytest.fixture
def in_tmp(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return tmp_path


class TestKitsyncConfig:
    """Tests for the config model."""

    def test_defaults(self):
        """Test default configuration values."""
        config = KitsyncConfig()
        assert config.UPSTREAM_PATH == ".kitsync/upstream"
        assert config.SECTION_MATCH_THRESHOLD == 0.8
        assert config.HEADING_WEIGHT == 0.7
        assert config.LARGE_FILE_LINE_THRESHOLD == 100
        assert config.DIFF_CONTEXT_LINES == 3

    def test_threshold_out_of_range(self):
        """Test threshold out of range."""
        with pytest.raises(ValueError):
            KitsyncConfig(SECTION_MATCH_THRESHOLD=1.5)

    def test_manifest_and_fingerprints_must_differ(self):
        """Test manifest and fingerprints must differ."""
        with pytest.raises(ValueError, match="different files"):
            KitsyncConfig(MANIFEST_PATH="state.json", FINGERPRINTS_PATH="state.json")

    def test_relative_paths_resolve_against_config_dir(self, in_tmp):
        """Test relative paths resolve against config dir."""
        config = KitsyncConfig(UPSTREAM_PATH="vendor/releases")
        assert config.get_absolute_upstream_path() == in_tmp / "vendor" / "releases"
        assert config.get_absolute_manifest_path() == in_tmp / ".kitsync" / "manifest.json"

    def test_absolute_paths_kept(self, in_tmp, tmp_path):
        """Test absolute paths kept."""
        config = KitsyncConfig(CONFLICT_REPORT_DIR=str(tmp_path / "reports"))
        assert config.get_absolute_conflict_report_dir() == tmp_path / "reports"


class TestConfigFile:
    """Tests for reading and writing kitsync.config."""

    def test_missing_file(self, in_tmp):
        """Test a missing file is reported."""
        assert not config_file_exists()
        with pytest.raises(FileNotFoundError, match="kitsync init"):
            load_config()

    def test_default_when_missing(self, in_tmp):
        """Test default when missing."""
        assert get_config_or_default() == KitsyncConfig()

    def test_create_then_load(self, in_tmp):
        """Test create then load."""
        created = create_config("vendor/releases")

        assert get_config_file_path() == in_tmp / "kitsync.config"
        assert load_config() == created
        assert load_config().UPSTREAM_PATH == "vendor/releases"

    def test_comments_quotes_and_numbers(self, in_tmp):
        """Test comments quotes and numbers."""
        (in_tmp / "kitsync.config").write_text(
            "# comment\n"
            "\n"
            "UPSTREAM_PATH='releases'\n"
            'MANIFEST_PATH = "state/manifest.json"\n'
            "LARGE_FILE_LINE_THRESHOLD=250\n"
            "HEADING_WEIGHT=0.5\n"
        )

        config = load_config()

        assert config.UPSTREAM_PATH == "releases"
        assert config.MANIFEST_PATH == "state/manifest.json"
        assert config.LARGE_FILE_LINE_THRESHOLD == 250
        assert config.HEADING_WEIGHT == 0.5

    def test_invalid_value(self, in_tmp):
        """Test invalid value."""
        (in_tmp / "kitsync.config").write_text("DIFF_CONTEXT_LINES=-1\n")
        with pytest.raises(ValueError):
            get_config_or_default()
