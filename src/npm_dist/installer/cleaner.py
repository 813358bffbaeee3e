"""Remove install artifacts. Every function here is safe to call repeatedly."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from npm_dist.errors import CleanError
from npm_dist.models import InstallPaths

logger = logging.getLogger(__name__)


def clean(path: Path | str, *, stage: str | None = None) -> bool:
    """Remove *path* (file, symlink or directory tree) if it exists.

    Returns True if something was removed.

    Raises:
        CleanError: The path exists but could not be removed.
    """
    target = Path(path)
    if not target.exists() and not target.is_symlink():
        return False

    try:
        if target.is_dir() and not target.is_symlink():
            shutil.rmtree(target)
        else:
            target.unlink()
    except FileNotFoundError:
        return False
    except OSError as exc:
        raise CleanError(f"Failed to remove {target}: {exc}", stage=stage) from exc

    logger.debug("Removed %s", target)
    return True


def clean_previous_install(paths: InstallPaths, *, stage: str | None = None) -> list[Path]:
    """Remove the package directory, both launchers and any staged launcher copies.

    Runs unconditionally before extraction so a half-finished earlier
    install never blocks a retry. Returns the paths that were removed.
    """
    removed: list[Path] = []
    for target in (paths.package_dir, *paths.launcher_paths, *paths.staged_launcher_paths):
        if clean(target, stage=stage):
            removed.append(target)
    return removed


def unfinished_install(paths: InstallPaths) -> list[Path]:
    """Return what an install of ``paths.version`` left behind if it stopped early.

    A finished install removes its archive and has no staged launchers, so
    either one being present means the tree cannot be trusted as current.
    """
    return [
        target
        for target in (paths.archive_path, *paths.staged_launcher_paths)
        if target.exists() or target.is_symlink()
    ]
