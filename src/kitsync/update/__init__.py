"""
kitsync update engine.

Detects which vendored files the user customized, merges upstream changes
into them section by section, and keeps the manifest of tracked files.
"""

from .orchestrator import show_update_summary, update_project  # noqa: F401

__all__ = ["update_project", "show_update_summary"]
