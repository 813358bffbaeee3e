"""Move an extracted npm tree into place and copy its launchers to the root."""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

from npm_dist.errors import BinaryCopyError, PromotionError
from npm_dist.models import InstallPaths

logger = logging.getLogger(__name__)


def copy_launcher(
    src_dir: Path, dst_dir: Path, name: str, *, dest_name: str | None = None
) -> Path:
    """Copy ``src_dir/name`` over ``dst_dir/name`` (or *dest_name*) and fsync it.

    Raises:
        BinaryCopyError: tagged ``open-source``, ``create-dest``, ``copy`` or ``sync``.
    """
    src = src_dir / name
    dst = dst_dir / (dest_name or name)

    try:
        source = open(src, "rb")
    except OSError as exc:
        raise BinaryCopyError(
            f"Cannot open launcher {src}: {exc}", kind="open-source", filename=name
        ) from exc

    with source:
        try:
            out = open(dst, "wb")
        except OSError as exc:
            raise BinaryCopyError(
                f"Cannot create {dst}: {exc}", kind="create-dest", filename=name
            ) from exc

        with out:
            try:
                shutil.copyfileobj(source, out)
            except OSError as exc:
                raise BinaryCopyError(
                    f"Cannot copy {src} to {dst}: {exc}", kind="copy", filename=name
                ) from exc
            try:
                out.flush()
                os.fsync(out.fileno())
            except OSError as exc:
                raise BinaryCopyError(
                    f"Cannot sync {dst}: {exc}", kind="sync", filename=name
                ) from exc

    try:
        shutil.copymode(src, dst)
    except OSError as exc:
        raise BinaryCopyError(
            f"Cannot copy permissions of {src} to {dst}: {exc}", kind="copy", filename=name
        ) from exc
    return dst


def promote(paths: InstallPaths) -> list[Path]:
    """Rename the extracted folder to ``node_modules/npm`` and promote launchers.

    Launchers are first copied to staged names in the root and renamed over
    the final names only after every copy succeeded. Stops at the first
    failure; whatever was already moved or staged stays in place for the
    next pre-clean to remove.

    Returns:
        Paths of the promoted launchers.
    """
    extracted = paths.extracted_dir
    if extracted is None:
        raise PromotionError("Extracted root folder is unknown; extract the archive first.")

    if extracted != paths.package_dir:
        try:
            os.replace(extracted, paths.package_dir)
        except OSError as exc:
            raise PromotionError(
                f"Failed to rename {extracted} to {paths.package_dir}: {exc}"
            ) from exc
    logger.info("Installed npm %s into %s", paths.version, paths.package_dir)

    moves = list(zip(paths.launchers, paths.staged_launcher_paths, paths.launcher_paths))
    for name, staged_path, _final in moves:
        copy_launcher(paths.bin_dir, paths.root, name, dest_name=staged_path.name)

    promoted: list[Path] = []
    for name, staged_path, final in moves:
        try:
            os.replace(staged_path, final)
        except OSError as exc:
            raise BinaryCopyError(
                f"Cannot move {staged_path} to {final}: {exc}", kind="create-dest", filename=name
            ) from exc
        logger.debug("Promoted %s", final)
        promoted.append(final)
    return promoted
