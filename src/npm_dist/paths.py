"""Derive the filesystem layout of one install attempt. No I/O."""

from __future__ import annotations

from pathlib import Path

from npm_dist.models import InstallPaths

MODULES_DIRNAME = "node_modules"
PACKAGE_DIRNAME = "npm"
BIN_DIRNAME = "bin"
ARCHIVE_SUFFIX = ".zip"

# POSIX launcher first, then the Windows one.
LAUNCHERS = ("npm", "npm.cmd")


def archive_name(version: str) -> str:
    """Return the release archive file name, e.g. ``v3.8.5.zip``."""
    return f"v{version}{ARCHIVE_SUFFIX}"


def plan_paths(root: Path | str, version: str) -> InstallPaths:
    """Plan every path an install of *version* under *root* will touch.

    Layout::

        <root>/v<version>.zip           transient archive
        <root>/node_modules/npm/        package directory
        <root>/node_modules/npm/bin/    launcher sources
        <root>/npm, <root>/npm.cmd      promoted launchers
        <root>/.npm.partial, ...        staged launcher copies
    """
    root_path = Path(root).expanduser().absolute()
    modules_dir = root_path / MODULES_DIRNAME
    package_dir = modules_dir / PACKAGE_DIRNAME
    name = archive_name(version)
    return InstallPaths(
        root=root_path,
        version=version,
        archive_name=name,
        archive_path=root_path / name,
        modules_dir=modules_dir,
        package_dir=package_dir,
        bin_dir=package_dir / BIN_DIRNAME,
        launchers=LAUNCHERS,
    )
