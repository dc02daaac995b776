"""Content-normalizing file hashes for detecting local customization.

Files are canonicalized before hashing so that editor noise does not count as
a customization:

1. A leading byte-order mark is stripped.
2. CRLF pairs become LF. Bare CR is left alone.
3. Trailing spaces and tabs are stripped from every line. Leading whitespace
   and empty lines are kept.
"""

from __future__ import annotations

import hashlib
import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from kitsync.errors import HashComputationError

logger = logging.getLogger(__name__)

ALGORITHM = "sha256"

_UTF8_BOM = b"\xef\xbb\xbf"
_BOM = "\ufeff"

# `$` in MULTILINE mode only anchors before "\n", so trailing blanks before a
# bare CR are kept.
_TRAILING_BLANKS = re.compile(r"[ \t]+$", re.MULTILINE)


@dataclass(frozen=True)
class NormalizedHash:
    """Algorithm tag plus hex digest of a file's canonical content."""

    algorithm: str
    digest: str

    def __post_init__(self):
        object.__setattr__(self, "algorithm", self.algorithm.lower())
        object.__setattr__(self, "digest", self.digest.upper())

    def __str__(self) -> str:
        return f"{self.algorithm}:{self.digest}"

    @classmethod
    def parse(cls, value: "str | NormalizedHash") -> "NormalizedHash":
        """Parse a rendered `algorithm:HEX` string. Bare digests are assumed sha256."""
        if isinstance(value, NormalizedHash):
            return value
        if ":" in value:
            algorithm, digest = value.split(":", 1)
        else:
            algorithm, digest = ALGORITHM, value
        return cls(algorithm=algorithm.strip(), digest=digest.strip())


def normalize_text(text: str) -> str:
    """Canonicalize already-decoded text."""
    if text.startswith(_BOM):
        text = text[1:]
    text = text.replace("\r\n", "\n")
    return _TRAILING_BLANKS.sub("", text)


def normalize_bytes(data: bytes) -> str:
    """Canonicalize raw file bytes.

    Undecodable bytes are carried through with surrogateescape so binary files
    still hash deterministically.
    """
    if data.startswith(_UTF8_BOM):
        data = data[len(_UTF8_BOM) :]
    return normalize_text(data.decode("utf-8", errors="surrogateescape"))


def hash_text(canonical: str) -> NormalizedHash:
    """Hash canonical text. Callers normalize first."""
    digest = hashlib.sha256(canonical.encode("utf-8", errors="surrogateescape")).hexdigest()
    return NormalizedHash(algorithm=ALGORITHM, digest=digest)


def hash_content(text: str) -> NormalizedHash:
    """Normalize and hash in-memory text."""
    return hash_text(normalize_text(text))


def hash_bytes(data: bytes) -> NormalizedHash:
    """Normalize and hash raw bytes."""
    return hash_text(normalize_bytes(data))


def hashes_equal(a: "NormalizedHash | str | None", b: "NormalizedHash | str | None") -> bool:
    """Compare two hashes, ignoring digest case. None never equals anything."""
    if a is None or b is None:
        return False
    left = NormalizedHash.parse(a)
    right = NormalizedHash.parse(b)
    return left.algorithm == right.algorithm and left.digest == right.digest


def compute_file_hash(file_path: Path) -> NormalizedHash:
    """
    Compute the normalized hash of a file.

    Raises:
        HashComputationError: If the file is missing or unreadable
    """
    try:
        data = Path(file_path).read_bytes()
    except OSError as e:
        logger.error("Failed to hash %s: %s", file_path, e)
        raise HashComputationError(file_path, e) from e
    return hash_bytes(data)


def hash_project_files(root: Path, rel_paths: Iterable[str]) -> dict[str, NormalizedHash]:
    """
    Hash the given project-relative paths that exist under root.

    Absent files are left out of the result. A file that exists but cannot be
    read still raises.

    Returns:
        Dict mapping relative path to its NormalizedHash
    """
    hashes: dict[str, NormalizedHash] = {}
    for rel_path in sorted(set(rel_paths)):
        file_path = root / rel_path
        if not file_path.is_file():
            continue
        hashes[rel_path] = compute_file_hash(file_path)
    logger.debug("Hashed %d file(s) under %s", len(hashes), root)
    return hashes
