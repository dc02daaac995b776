"""
Shared kitsync error classes.

Every error carries the path it concerns (when there is one) so callers can
tell the user which file was involved and whether anything was written.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path


class ErrorCode(Enum):
    """Error codes for update operations."""

    HASH_FAILED = "hash_failed"
    FINGERPRINTS_UNAVAILABLE = "fingerprints_unavailable"
    PARSE_FAILED = "parse_failed"
    MANIFEST_INVALID = "manifest_invalid"
    MANIFEST_SCHEMA_UNSUPPORTED = "manifest_schema_unsupported"
    UPSTREAM_VERSION_MISSING = "upstream_version_missing"


class KitsyncError(Exception):
    """Base error for kitsync.

    Attributes:
        code: Error code identifying the type of failure.
        message: Human-readable error message.
        path: File the error concerns, if any.
        suggestion: Optional fix suggestion.
    """

    code: ErrorCode = ErrorCode.HASH_FAILED

    def __init__(
        self,
        message: str,
        *,
        path: str | Path | None = None,
        suggestion: str | None = None,
    ):
        self.message = message
        self.path = str(path) if path is not None else None
        self.suggestion = suggestion
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code.value!r}, message={self.message!r})"


class HashComputationError(KitsyncError):
    """Raised when a file cannot be read for hashing.

    Fatal to the operation touching the file. Customization detection is
    meaningless without the hash, so this is never skipped.
    """

    code = ErrorCode.HASH_FAILED

    def __init__(self, path: str | Path, cause: BaseException):
        self.cause = cause
        super().__init__(
            f"Cannot hash {path}: {cause}",
            path=path,
            suggestion="Check that the file exists and is readable, then retry.",
        )


# Short alias used by the hasher API
HashError = HashComputationError


class FingerprintDatabaseUnavailable(KitsyncError):
    """Raised when the fingerprint database is missing or corrupt."""

    code = ErrorCode.FINGERPRINTS_UNAVAILABLE


class ParseFailure(KitsyncError):
    """Raised when a document cannot be segmented into sections."""

    code = ErrorCode.PARSE_FAILED


class ManifestError(KitsyncError):
    """Raised when the manifest file cannot be read or validated."""

    code = ErrorCode.MANIFEST_INVALID


class UnsupportedManifestSchema(ManifestError):
    """Raised for a manifest written with a schema version we do not know."""

    code = ErrorCode.MANIFEST_SCHEMA_UNSUPPORTED

    def __init__(self, schema_version: object, path: str | Path | None = None):
        self.schema_version = schema_version
        super().__init__(
            f"Unsupported manifest schema version: {schema_version!r}",
            path=path,
            suggestion="Upgrade kitsync or remove the manifest to re-detect the installed version.",
        )


class UpstreamVersionMissing(KitsyncError):
    """Raised when the requested upstream version is not available."""

    code = ErrorCode.UPSTREAM_VERSION_MISSING
