"""
Root pytest configuration for kitsync.

Provides CLI testing helpers and fixtures that lay out an upstream release
snapshot plus a project installed from one of its versions.
"""

from __future__ import annotations

from pathlib import Path

import pytest
from click.testing import CliRunner

# ============================================================================
# Sample Releases
# ============================================================================

INSTALL = ".claude/commands/install.md"
REVIEW = ".claude/commands/review.md"
PLAN = "templates/plan.md"
LEGACY = "templates/legacy.md"
NEW = "templates/new.md"

SIGNATURE_PATHS = [INSTALL, REVIEW, PLAN]

RELEASES: dict[str, dict[str, str]] = {
    "v0.1.0": {
        INSTALL: "# Install\n\nstep A\n",
        REVIEW: "# Review\n\nCheck the diff.\n",
        PLAN: "# Plan\n\n## Goals\n\nShip it.\n",
        LEGACY: "# Legacy\n\nOld stuff.\n",
    },
    "v0.2.0": {
        INSTALL: "# Install\n\nstep B\n",
        REVIEW: "# Review\n\nCheck the diff.\n",
        PLAN: "# Plan\n\n## Goals\n\nShip it.\n\n## Risks\n\nNone yet.\n",
        NEW: "# New\n\nFresh template.\n",
    },
}


def write_files(root: Path, files: dict[str, str]) -> None:
    """Write {relative path: text} under root."""
    for rel_path, text in files.items():
        target = root / rel_path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(text)


@pytest.fixture
def upstream_dir(tmp_path: Path) -> Path:
    """Upstream snapshot with every sample release extracted."""
    root = tmp_path / "upstream"
    for version, files in RELEASES.items():
        write_files(root / version, files)
    return root


@pytest.fixture
def project_dir(tmp_path: Path, monkeypatch) -> Path:
    """Project installed from v0.1.0, used as the working directory."""
    project = tmp_path / "project"
    project.mkdir()
    write_files(project, RELEASES["v0.1.0"])
    monkeypatch.chdir(project)
    return project


@pytest.fixture
def fingerprint_db(upstream_dir: Path):
    """Fingerprint database built from the sample releases."""
    from kitsync.update.fingerprints import build_fingerprint_database
    from kitsync.update.provider import DirectoryProvider

    return build_fingerprint_database(
        DirectoryProvider(upstream_dir), signature_paths=SIGNATURE_PATHS
    )


# ============================================================================
# CLI Testing Fixtures
# ============================================================================


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create a Click CLI runner for testing."""
    return CliRunner()


def invoke_cli(runner: CliRunner, cmd, args: list[str], **kwargs):
    """
    Helper to invoke CLI command.

    Args:
        runner: Click test runner
        cmd: Click command or group
        args: Command arguments
        **kwargs: Additional arguments to runner.invoke()

    Returns:
        Click Result object
    """
    return runner.invoke(cmd, args, catch_exceptions=False, **kwargs)


def assert_cli_success(result, msg: str = None):
    """Assert CLI command succeeded (exit code 0)."""
    if result.exit_code != 0:
        error_msg = f"CLI failed (exit code {result.exit_code})"
        if msg:
            error_msg = f"{msg}: {error_msg}"
        if result.output:
            error_msg += f"\nOutput: {result.output}"
        raise AssertionError(error_msg)


def assert_cli_failure(result, expected_code: int = None, msg: str = None):
    """Assert CLI command failed."""
    if result.exit_code == 0:
        error_msg = "CLI succeeded but expected failure"
        if msg:
            error_msg = f"{msg}: {error_msg}"
        raise AssertionError(error_msg)

    if expected_code is not None and result.exit_code != expected_code:
        raise AssertionError(f"Expected exit code {expected_code}, got {result.exit_code}")


def assert_output_contains(result, text: str):
    """Assert CLI output contains text."""
    if text not in result.output:
        raise AssertionError(f"Expected output to contain '{text}'\nGot: {result.output}")
