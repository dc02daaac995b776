"""
kitsync configuration module.

Re-exports the project configuration model and its file helpers.
"""

from kitsync.config.base import (
    KitsyncConfig,
    config_file_exists,
    create_config,
    get_config_file_path,
    get_config_or_default,
    load_config,
)

__all__ = [
    "KitsyncConfig",
    "config_file_exists",
    "create_config",
    "get_config_file_path",
    "get_config_or_default",
    "load_config",
]
