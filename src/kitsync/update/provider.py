"""Access to upstream release content.

The engine only needs `get(version, path)` and a listing of the files a
version ships. Retrieval of release archives is someone else's job; the
provider here reads an already-extracted snapshot laid out as
`<root>/<version>/<path>`.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class UpstreamProvider(Protocol):
    """Source of upstream file content, keyed by version."""

    def get(self, version: str, path: str) -> str | None:
        """Return the text of `path` in `version`, or None if it does not exist."""
        ...

    def list_paths(self, version: str) -> list[str]:
        """Return every file path shipped by `version`."""
        ...

    def list_versions(self) -> list[str]:
        """Return the available versions, oldest first."""
        ...


def version_sort_key(version: str) -> tuple:
    """Numeric-aware ordering key: v0.0.9 < v0.0.10 < v0.1.0."""
    parts = re.split(r"(\d+)", version.lstrip("vV"))
    return tuple((0, int(p)) if p.isdigit() else (1, p) for p in parts if p)


class DirectoryProvider:
    """Reads upstream versions from an extracted snapshot directory."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def _version_dir(self, version: str) -> Path:
        return self.root / version

    def get(self, version: str, path: str) -> str | None:
        file_path = self._version_dir(version) / path
        if not file_path.is_file():
            return None
        return file_path.read_text(encoding="utf-8", errors="surrogateescape")

    def list_paths(self, version: str) -> list[str]:
        version_dir = self._version_dir(version)
        if not version_dir.is_dir():
            return []
        return sorted(
            p.relative_to(version_dir).as_posix() for p in version_dir.rglob("*") if p.is_file()
        )

    def list_versions(self) -> list[str]:
        if not self.root.is_dir():
            return []
        return sorted((p.name for p in self.root.iterdir() if p.is_dir()), key=version_sort_key)


class UpstreamCache:
    """Memoizes a provider's listings and file contents for one run.

    Owned by whoever runs the update cycle; call `invalidate` after the
    underlying snapshot changes.
    """

    def __init__(self, provider: UpstreamProvider):
        self.provider = provider
        self._contents: dict[tuple[str, str], str | None] = {}
        self._listings: dict[str, list[str]] = {}
        self._versions: list[str] | None = None

    def get(self, version: str, path: str) -> str | None:
        key = (version, path)
        if key not in self._contents:
            self._contents[key] = self.provider.get(version, path)
        return self._contents[key]

    def list_paths(self, version: str) -> list[str]:
        if version not in self._listings:
            self._listings[version] = list(self.provider.list_paths(version))
            logger.debug("Listed %d upstream file(s) for %s", len(self._listings[version]), version)
        return list(self._listings[version])

    def list_versions(self) -> list[str]:
        if self._versions is None:
            self._versions = list(self.provider.list_versions())
        return list(self._versions)

    def invalidate(self, version: str | None = None) -> None:
        """Drop cached data for one version, or everything when version is None."""
        if version is None:
            self._contents.clear()
            self._listings.clear()
            self._versions = None
            return
        self._listings.pop(version, None)
        for key in [k for k in self._contents if k[0] == version]:
            del self._contents[key]
        self._versions = None
