"""Tests for the kitsync command-line interface."""

from __future__ import annotations

import json

import pytest

from kitsync.cli.main import main
from kitsync.config import create_config
from kitsync.conftest import (
    INSTALL,
    NEW,
    RELEASES,
    SIGNATURE_PATHS,
    assert_cli_failure,
    assert_cli_success,
    assert_output_contains,
    invoke_cli,
)
from kitsync.update.fingerprints import save_fingerprint_database
from kitsync.update.hasher import hash_content
from kitsync.update.manifest import Manifest, TrackedFile, save_manifest


@pytest.fixture
def configured_project(project_dir, upstream_dir, fingerprint_db):
    """Project with kitsync.config and a fingerprint database in place."""
    config = create_config(str(upstream_dir))
    save_fingerprint_database(fingerprint_db, config.get_absolute_fingerprints_path())
    return project_dir


class TestMain:
    """Tests for the top-level group."""

    def test_help_lists_commands(self, cli_runner):
        """Test help lists commands."""
        result = invoke_cli(cli_runner, main, ["--help"])
        assert_cli_success(result)
        for cmd in ["init", "status", "update", "fingerprint", "hash"]:
            assert cmd in result.output

    def test_version(self, cli_runner):
        """Test --version prints the program name."""
        result = invoke_cli(cli_runner, main, ["--version"])
        assert_cli_success(result)
        assert_output_contains(result, "kitsync")

    def test_status_alias(self, cli_runner, configured_project):
        """Test status alias."""
        result = invoke_cli(cli_runner, main, ["st"])
        assert_cli_success(result)
        assert_output_contains(result, "v0.1.0")


class TestInitCommand:
    """Tests for `kitsync init`."""

    def test_creates_config(self, cli_runner, project_dir):
        """Test creates config."""
        result = invoke_cli(cli_runner, main, ["init", "--upstream", "vendor/releases"])

        assert_cli_success(result)
        assert_output_contains(result, "Created kitsync.config")
        assert 'UPSTREAM_PATH="vendor/releases"' in (project_dir / "kitsync.config").read_text()

    def test_existing_config_kept(self, cli_runner, project_dir):
        """Test existing config kept."""
        invoke_cli(cli_runner, main, ["init", "--upstream", "first"])

        result = invoke_cli(cli_runner, main, ["init", "--upstream", "second"])

        assert_cli_success(result)
        assert_output_contains(result, "already exists")
        assert "first" in (project_dir / "kitsync.config").read_text()

    def test_force_overwrites(self, cli_runner, project_dir):
        """Test force overwrites."""
        invoke_cli(cli_runner, main, ["init", "--upstream", "first"])
        result = invoke_cli(cli_runner, main, ["init", "--upstream", "second", "--force"])
        assert_cli_success(result)
        assert "second" in (project_dir / "kitsync.config").read_text()


class TestHashCommand:
    """Tests for `kitsync hash`."""

    def test_prints_normalized_hash(self, cli_runner, project_dir):
        """Test prints normalized hash."""
        result = invoke_cli(cli_runner, main, ["hash", INSTALL])
        assert_cli_success(result)
        assert result.output.strip() == str(hash_content(RELEASES["v0.1.0"][INSTALL]))

    def test_missing_file(self, cli_runner, project_dir):
        """Test a missing file is reported."""
        result = invoke_cli(cli_runner, main, ["hash", "nope.md"])
        assert_cli_failure(result)
        assert_output_contains(result, "No files were modified")


class TestFingerprintCommand:
    """Tests for `kitsync fingerprint build`."""

    def test_build(self, cli_runner, project_dir, upstream_dir):
        """Test fingerprint build writes the database."""
        create_config(str(upstream_dir))
        args = ["fingerprint", "build"]
        for path in SIGNATURE_PATHS:
            args += ["--signature", path]

        result = invoke_cli(cli_runner, main, args)

        assert_cli_success(result)
        data = json.loads((project_dir / ".kitsync" / "fingerprints.json").read_text())
        assert data["signature_paths"] == SIGNATURE_PATHS
        assert set(data["versions"]) == {"v0.1.0", "v0.2.0"}

    def test_no_versions(self, cli_runner, project_dir, tmp_path):
        """Test no versions."""
        create_config(str(tmp_path / "empty"))
        result = invoke_cli(cli_runner, main, ["fp", "build"])
        assert_cli_failure(result)
        assert_output_contains(result, "No upstream versions")


class TestStatusCommand:
    """Tests for `kitsync status`."""

    def test_json_detects_version(self, cli_runner, configured_project):
        """Test json detects version."""
        (configured_project / INSTALL).write_text("# Install\n\nmy step\n")

        result = invoke_cli(cli_runner, main, ["status", "--format", "json"])

        assert_cli_success(result)
        data = json.loads(result.output[result.output.index("{") :])
        assert data["version"] == "v0.1.0"
        assert data["source"] == "detected"
        assert data["files"][INSTALL] == "customized"
        assert data["files"][NEW] == "missing"

    def test_json_uses_manifest_after_update(self, cli_runner, configured_project):
        """Test json uses manifest after update."""
        invoke_cli(cli_runner, main, ["update"])

        result = invoke_cli(cli_runner, main, ["status", "--format", "json"])

        data = json.loads(result.output[result.output.index("{") :])
        assert data["source"] == "manifest"
        assert data["version"] == "v0.2.0"
        assert set(data["files"].values()) == {"clean"}

    def test_json_shows_pending_report(self, cli_runner, configured_project):
        """Test a file waiting on its conflict report is listed as a conflict."""
        entry = TrackedFile(
            path=INSTALL,
            original_hash=str(hash_content(RELEASES["v0.1.0"][INSTALL])),
            base_version="v0.1.0",
            pending_version="v0.2.0",
        )
        manifest = Manifest(upstream_version="v0.2.0", tracked_files={INSTALL: entry})
        save_manifest(manifest, configured_project / ".kitsync" / "manifest.json")

        result = invoke_cli(cli_runner, main, ["status", "--format", "json"])

        assert_cli_success(result)
        data = json.loads(result.output[result.output.index("{") :])
        assert data["files"][INSTALL] == "conflict"

    def test_missing_fingerprints(self, cli_runner, project_dir, upstream_dir):
        """Test missing fingerprints."""
        create_config(str(upstream_dir))
        result = invoke_cli(cli_runner, main, ["status"])
        assert_cli_failure(result)
        assert_output_contains(result, "kitsync fingerprint build")


class TestUpdateCommand:
    """Tests for `kitsync update`."""

    def test_update(self, cli_runner, configured_project):
        """Test update applies the newest release."""
        result = invoke_cli(cli_runner, main, ["update"])

        assert_cli_success(result)
        assert_output_contains(result, "Update Complete!")
        assert (configured_project / INSTALL).read_text() == RELEASES["v0.2.0"][INSTALL]

    def test_dry_run(self, cli_runner, configured_project):
        """Test a dry run is labelled and writes nothing."""
        result = invoke_cli(cli_runner, main, ["upgrade", "--dry-run"])

        assert_cli_success(result)
        assert_output_contains(result, "Dry Run Complete")
        assert (configured_project / INSTALL).read_text() == RELEASES["v0.1.0"][INSTALL]

    def test_unknown_version(self, cli_runner, configured_project):
        """Test unknown version."""
        result = invoke_cli(cli_runner, main, ["update", "--to", "v9.9.9"])

        assert_cli_failure(result)
        assert_output_contains(result, "v9.9.9 not found")
        assert_output_contains(result, "No files were modified")
