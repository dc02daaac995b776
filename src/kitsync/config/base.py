"""
kitsync configuration management.

Loads configuration from the kitsync.config file in the current directory.
This file stores project-specific settings like where the upstream snapshot
lives and the thresholds used by the merge engine.
"""

from pathlib import Path
from typing import ClassVar

from pydantic import BaseModel, Field, model_validator


class KitsyncConfig(BaseModel):
    """kitsync project configuration."""

    # Configuration defaults (ClassVar to avoid treating as fields)
    DEFAULT_UPSTREAM_PATH: ClassVar[str] = ".kitsync/upstream"
    DEFAULT_FINGERPRINTS_PATH: ClassVar[str] = ".kitsync/fingerprints.json"
    DEFAULT_MANIFEST_PATH: ClassVar[str] = ".kitsync/manifest.json"
    DEFAULT_CONFLICT_REPORT_DIR: ClassVar[str] = ".kitsync/conflicts"
    DEFAULT_SECTION_MATCH_THRESHOLD: ClassVar[float] = 0.8
    DEFAULT_HEADING_WEIGHT: ClassVar[float] = 0.7
    DEFAULT_LARGE_FILE_LINE_THRESHOLD: ClassVar[int] = 100
    DEFAULT_DIFF_CONTEXT_LINES: ClassVar[int] = 3

    UPSTREAM_PATH: str = Field(
        default=DEFAULT_UPSTREAM_PATH,
        description="Directory of per-version upstream snapshots (relative to kitsync.config)",
    )
    FINGERPRINTS_PATH: str = Field(
        default=DEFAULT_FINGERPRINTS_PATH,
        description="Fingerprint database JSON file (relative to kitsync.config)",
    )
    MANIFEST_PATH: str = Field(
        default=DEFAULT_MANIFEST_PATH,
        description="Manifest of tracked files (relative to kitsync.config)",
    )
    CONFLICT_REPORT_DIR: str = Field(
        default=DEFAULT_CONFLICT_REPORT_DIR,
        description="Where large-file conflict reports are written (relative to kitsync.config)",
    )
    SECTION_MATCH_THRESHOLD: float = Field(
        default=DEFAULT_SECTION_MATCH_THRESHOLD,
        description="Minimum similarity for two markdown sections to be considered the same",
        gt=0.0,
        le=1.0,
    )
    HEADING_WEIGHT: float = Field(
        default=DEFAULT_HEADING_WEIGHT,
        description="Weight of heading similarity in section matching (body gets the rest)",
        ge=0.0,
        le=1.0,
    )
    LARGE_FILE_LINE_THRESHOLD: int = Field(
        default=DEFAULT_LARGE_FILE_LINE_THRESHOLD,
        description="Files with more lines than this get a diff report instead of inline markers",
        ge=1,
    )
    DIFF_CONTEXT_LINES: int = Field(
        default=DEFAULT_DIFF_CONTEXT_LINES,
        description="Context lines added around each changed region in diff reports",
        ge=0,
        le=50,
    )

    @model_validator(mode="after")
    def check_paths_distinct(self) -> "KitsyncConfig":
        if self.MANIFEST_PATH == self.FINGERPRINTS_PATH:
            raise ValueError("MANIFEST_PATH and FINGERPRINTS_PATH must point to different files")
        return self

    def _get_project_root(self) -> Path:
        """Get project root directory (where kitsync.config is located) - internal use."""
        return get_config_file_path().parent

    def _resolve(self, value: str) -> Path:
        path = Path(value)
        if not path.is_absolute():
            return self._get_project_root() / path
        return path

    def get_absolute_upstream_path(self) -> Path:
        """Get absolute path to the upstream snapshot directory."""
        return self._resolve(self.UPSTREAM_PATH)

    def get_absolute_fingerprints_path(self) -> Path:
        """Get absolute path to the fingerprint database."""
        return self._resolve(self.FINGERPRINTS_PATH)

    def get_absolute_manifest_path(self) -> Path:
        """Get absolute path to the manifest file."""
        return self._resolve(self.MANIFEST_PATH)

    def get_absolute_conflict_report_dir(self) -> Path:
        """Get absolute path to the conflict report directory."""
        return self._resolve(self.CONFLICT_REPORT_DIR)


def get_config_file_path() -> Path:
    """Get the path to the kitsync configuration file."""
    return Path.cwd() / "kitsync.config"


def load_config() -> KitsyncConfig:
    """
    Load kitsync configuration from kitsync.config in the current directory.

    The file contains key=value pairs:

    UPSTREAM_PATH=".kitsync/upstream"
    SECTION_MATCH_THRESHOLD=0.8

    Returns:
        KitsyncConfig with loaded settings

    Raises:
        FileNotFoundError: If kitsync.config doesn't exist
        ValueError: If configuration is invalid
    """
    config_file = get_config_file_path()

    if not config_file.exists():
        raise FileNotFoundError(
            f"kitsync configuration file not found: {config_file}\n"
            "Run 'kitsync init' or create kitsync.config to configure the project."
        )

    config_data = {}
    with open(config_file, "r") as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue

            if "=" in line:
                key, value = line.split("=", 1)
                key = key.strip()
                value = value.strip().strip('"').strip("'")
                config_data[key] = value

    # Pydantic coerces the numeric strings
    return KitsyncConfig(**config_data)


def create_config(upstream_path: str = KitsyncConfig.DEFAULT_UPSTREAM_PATH) -> KitsyncConfig:
    """
    Create a new kitsync.config file in the current directory.

    Args:
        upstream_path: Directory holding upstream versions (relative to kitsync.config)

    Returns:
        KitsyncConfig instance
    """
    config = KitsyncConfig(UPSTREAM_PATH=upstream_path)

    config_file = get_config_file_path()
    config_file.parent.mkdir(parents=True, exist_ok=True)

    with open(config_file, "w") as f:
        f.write("# kitsync Project Configuration\n\n")
        f.write(f'UPSTREAM_PATH="{config.UPSTREAM_PATH}"\n')
        f.write(f'FINGERPRINTS_PATH="{config.FINGERPRINTS_PATH}"\n')
        f.write(f'MANIFEST_PATH="{config.MANIFEST_PATH}"\n')
        f.write(f'CONFLICT_REPORT_DIR="{config.CONFLICT_REPORT_DIR}"\n')
        f.write("\n# Merge engine tuning\n")
        f.write(f"SECTION_MATCH_THRESHOLD={config.SECTION_MATCH_THRESHOLD}\n")
        f.write(f"HEADING_WEIGHT={config.HEADING_WEIGHT}\n")
        f.write(f"LARGE_FILE_LINE_THRESHOLD={config.LARGE_FILE_LINE_THRESHOLD}\n")
        f.write(f"DIFF_CONTEXT_LINES={config.DIFF_CONTEXT_LINES}\n")

    return config


def config_file_exists() -> bool:
    """Check if kitsync.config exists."""
    return get_config_file_path().exists()


def get_config_or_default() -> KitsyncConfig:
    """
    Get configuration, or return default if kitsync.config doesn't exist.

    Returns:
        KitsyncConfig with loaded or default settings
    """
    if config_file_exists():
        return load_config()
    return KitsyncConfig()
