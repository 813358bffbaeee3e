"""Domain models for npm-dist. Frozen dataclasses -- no mutation after creation."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import StrEnum
from pathlib import Path

UNKNOWN = "unknown"
STAGED_SUFFIX = ".partial"

# ─── Enumerations ─────────────────────────────────────────────


class Comparison(StrEnum):
    GREATER = "greater"
    LESS = "less"
    EQUAL = "equal"


class Stage(StrEnum):
    IDLE = "idle"
    RESOLVING_VERSION = "resolving_version"
    DOWNLOADING = "downloading"
    PRE_CLEANING = "pre_cleaning"
    EXTRACTING = "extracting"
    PROMOTING = "promoting"
    POST_CLEANING = "post_cleaning"
    DONE = "done"
    FAILED = "failed"


class Mirror(StrEnum):
    DEFAULT = "default"
    TAOBAO = "taobao"


# ─── Filesystem Models ────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class InstallPaths:
    """Every path one install attempt touches, derived from root + version.

    ``extracted_root`` is the only field not known up front: it is the name
    of the archive's top-level folder and is filled in through
    ``with_extracted_root`` once extraction has discovered it.
    """

    root: Path
    version: str
    archive_name: str
    archive_path: Path
    modules_dir: Path
    package_dir: Path
    bin_dir: Path
    launchers: tuple[str, ...]
    extracted_root: str | None = None

    @property
    def launcher_paths(self) -> tuple[Path, ...]:
        return tuple(self.root / name for name in self.launchers)

    @property
    def staged_launcher_paths(self) -> tuple[Path, ...]:
        """Temporary copies of the launchers, renamed into place once all exist."""
        return tuple(self.root / f".{name}{STAGED_SUFFIX}" for name in self.launchers)

    @property
    def extracted_dir(self) -> Path | None:
        if self.extracted_root is None:
            return None
        return self.modules_dir / self.extracted_root

    def with_extracted_root(self, name: str) -> InstallPaths:
        return replace(self, extracted_root=name)

    def describe(self) -> str:
        return (
            f"root         = {self.root}\n"
            f"archive_name = {self.archive_name}\n"
            f"archive_path = {self.archive_path}\n"
            f"modules_dir  = {self.modules_dir}\n"
            f"package_dir  = {self.package_dir}\n"
            f"bin_dir      = {self.bin_dir}\n"
            f"extracted    = {self.extracted_root or '<pending>'}"
        )


@dataclass(frozen=True, slots=True)
class ArchiveEntry:
    """One zip member, as seen while extracting."""

    name: str
    is_dir: bool
    mode: int
    size: int


# ─── Result Models ────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class WorkflowResult:
    """Outcome of one install run."""

    success: bool
    stage: Stage
    message: str
    local_version: str = UNKNOWN
    target_version: str = ""
    comparison: Comparison | None = None
    installed: bool = False
    failed_stage: Stage | None = None
