"""Safe updates for vendored template and command sets.

This package provides:
- Config: Project configuration management (KitsyncConfig)
- Update: Hashing, version fingerprinting, structural merge and lifecycle
- CLI: The `kitsync` command-line entry point
"""

__version__ = "0.1.0"

from kitsync.config import KitsyncConfig as KitsyncConfig
from kitsync.config import config_file_exists as config_file_exists
from kitsync.config import get_config_or_default as get_config_or_default
from kitsync.config import load_config as load_config
