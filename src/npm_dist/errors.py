"""Exception hierarchy for npm-dist.

All exceptions inherit from NpmDistError (single catch point).
Each carries the workflow stage it belongs to so the orchestrator can report
where a run stopped. The underlying OS/HTTP error is always chained.
"""

from __future__ import annotations


class NpmDistError(Exception):
    """Base exception for all npm-dist errors."""

    default_stage: str | None = None

    def __init__(self, message: str, *, stage: str | None = None) -> None:
        super().__init__(message)
        self.stage = stage or self.default_stage


class ConfigReadError(NpmDistError):
    """Error reading the npm-dist config file."""


class RemoteUnavailableError(NpmDistError):
    """The remote version descriptor could not be fetched."""

    default_stage = "resolving_version"


class MalformedDescriptorError(NpmDistError):
    """The remote version descriptor has no usable version field."""

    default_stage = "resolving_version"


class MalformedVersionError(NpmDistError):
    """A version label is not a dotted numeric string."""

    default_stage = "resolving_version"


class InstallLockError(NpmDistError):
    """Another npm-dist run holds the install root."""

    default_stage = "downloading"


class DownloadError(NpmDistError):
    """The archive could not be streamed to disk."""

    default_stage = "downloading"


class ArchiveOpenError(NpmDistError):
    """The downloaded archive could not be opened."""

    default_stage = "extracting"


class ArchiveLayoutError(NpmDistError):
    """The archive does not hold exactly one top-level folder."""

    default_stage = "extracting"


class ArchiveEntryError(NpmDistError):
    """A single archive member could not be extracted.

    ``kind`` is one of ``open-entry``, ``create-file`` or ``copy-bytes``.
    """

    default_stage = "extracting"

    def __init__(self, message: str, *, kind: str, entry: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.entry = entry


class PromotionError(NpmDistError):
    """The extracted folder could not be moved into place."""

    default_stage = "promoting"


class BinaryCopyError(NpmDistError):
    """A launcher could not be copied into the install root.

    ``kind`` is one of ``open-source``, ``create-dest``, ``copy`` or ``sync``.
    """

    default_stage = "promoting"

    def __init__(self, message: str, *, kind: str, filename: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.filename = filename


class CleanError(NpmDistError):
    """A path could not be removed."""
