"""Extract a release zip into node_modules.

Release archives wrap everything in one top-level folder whose name is not
predictable (``npm-3.8.5/``, ``npm-npm-1a2b3c/``...). That name is checked
before anything is written and returned so promotion can find the folder.
"""

from __future__ import annotations

import logging
import os
import shutil
import zipfile
import zlib
from pathlib import Path, PurePosixPath

from npm_dist.errors import ArchiveEntryError, ArchiveLayoutError, ArchiveOpenError
from npm_dist.models import ArchiveEntry

logger = logging.getLogger(__name__)

_DEFAULT_DIR_MODE = 0o755
_DEFAULT_FILE_MODE = 0o644

# Raised by zipfile for corrupt, encrypted or unsupported members.
_ENTRY_READ_ERRORS = (OSError, zipfile.BadZipFile, NotImplementedError, RuntimeError, zlib.error)


def _member_parts(name: str) -> tuple[str, ...]:
    """Split a member name into safe relative path parts."""
    pure = PurePosixPath(name.replace("\\", "/"))
    if pure.is_absolute() or ".." in pure.parts:
        raise ArchiveLayoutError(f"Unsafe archive entry path: {name!r}")
    return tuple(part for part in pure.parts if part not in ("", "."))


def find_root_folder(infos: list[zipfile.ZipInfo]) -> str:
    """Return the single top-level folder shared by every member.

    Raises:
        ArchiveLayoutError: If the archive is empty, has several top-level
            entries, or its only top-level entry is a plain file.
    """
    top_level: dict[str, bool] = {}
    for info in infos:
        parts = _member_parts(info.filename)
        if not parts:
            continue
        is_folder = len(parts) > 1 or info.is_dir()
        top_level[parts[0]] = top_level.get(parts[0], False) or is_folder

    if not top_level:
        raise ArchiveLayoutError("Archive is empty.")
    if len(top_level) > 1:
        names = ", ".join(sorted(top_level))
        raise ArchiveLayoutError(
            f"Archive must contain exactly one top-level folder, found: {names}"
        )
    name, is_folder = next(iter(top_level.items()))
    if not is_folder:
        raise ArchiveLayoutError(f"Archive top-level entry {name!r} is a file, not a folder.")
    return name


def _to_entry(info: zipfile.ZipInfo) -> ArchiveEntry:
    is_dir = info.is_dir()
    mode = (info.external_attr >> 16) & 0o777
    if not mode:
        mode = _DEFAULT_DIR_MODE if is_dir else _DEFAULT_FILE_MODE
    return ArchiveEntry(name=info.filename, is_dir=is_dir, mode=mode, size=info.file_size)


def _extract_file(
    archive: zipfile.ZipFile,
    info: zipfile.ZipInfo,
    entry: ArchiveEntry,
    target: Path,
) -> None:
    try:
        source = archive.open(info)
    except _ENTRY_READ_ERRORS as exc:
        raise ArchiveEntryError(
            f"Cannot open archive entry {entry.name}: {exc}", kind="open-entry", entry=entry.name
        ) from exc

    with source:
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, entry.mode)
        except OSError as exc:
            raise ArchiveEntryError(
                f"Cannot create {target}: {exc}", kind="create-file", entry=entry.name
            ) from exc

        # Small members only reach the disk when the writer is closed.
        try:
            with os.fdopen(fd, "wb") as out:
                shutil.copyfileobj(source, out)
        except _ENTRY_READ_ERRORS as exc:
            raise ArchiveEntryError(
                f"Cannot write {entry.name} to {target}: {exc}",
                kind="copy-bytes",
                entry=entry.name,
            ) from exc
    logger.debug("Extracted %s (%d bytes, mode %o)", entry.name, entry.size, entry.mode)


def extract_archive(archive_path: Path | str, destination: Path | str) -> str:
    """Extract *archive_path* into *destination* and return its root folder name.

    Nothing is cleaned up on failure; a half-extracted tree is removed by
    the next run's pre-clean.

    Raises:
        ArchiveOpenError: The file is missing or not a zip archive.
        ArchiveLayoutError: The archive is not a single top-level folder.
        ArchiveEntryError: A member could not be opened, created or copied.
    """
    dest = Path(destination)
    try:
        archive = zipfile.ZipFile(archive_path)
    except (OSError, zipfile.BadZipFile) as exc:
        raise ArchiveOpenError(f"Cannot open archive {archive_path}: {exc}") from exc

    with archive:
        infos = archive.infolist()
        root_folder = find_root_folder(infos)
        logger.info("Extracting %s (%d entries, root folder %r)", archive_path, len(infos), root_folder)

        for info in infos:
            entry = _to_entry(info)
            parts = _member_parts(entry.name)
            if not parts:
                continue
            target = dest.joinpath(*parts)
            if entry.is_dir:
                try:
                    target.mkdir(mode=entry.mode, parents=True, exist_ok=True)
                except OSError as exc:
                    raise ArchiveEntryError(
                        f"Cannot create directory {target}: {exc}",
                        kind="create-file",
                        entry=entry.name,
                    ) from exc
            else:
                _extract_file(archive, info, entry, target)

    return root_folder
