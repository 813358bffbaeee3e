"""Ask the launcher in an install root which npm version it runs."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from npm_dist.installer.subprocess import run_command
from npm_dist.models import UNKNOWN

logger = logging.getLogger(__name__)


def launcher_path(root: Path | str) -> Path:
    name = "npm.cmd" if sys.platform == "win32" else "npm"
    return Path(root) / name


async def installed_version(root: Path | str, *, timeout: float = 10.0) -> str:
    """Return the output of ``<root>/npm -v``, or ``UNKNOWN``.

    No launcher, a failing launcher and empty output all mean "nothing
    usable installed" -- an expected state, so this never raises.
    """
    launcher = launcher_path(root)
    if not launcher.exists():
        logger.warning("No npm launcher at %s", launcher)
        return UNKNOWN

    returncode, stdout, stderr = await run_command([str(launcher), "-v"], timeout=timeout)
    version = stdout.strip()
    if returncode != 0 or not version:
        logger.warning("Could not read npm version from %s: %s", launcher, stderr or stdout)
        return UNKNOWN
    return version
