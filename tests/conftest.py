"""Shared test fixtures."""

from __future__ import annotations

import io
import zipfile
from pathlib import Path

import pytest

POSIX_LAUNCHER = b'#!/bin/sh\necho "{version}"\n'
WINDOWS_LAUNCHER = b"@ECHO OFF\r\nnode npm-cli.js %*\r\n"


def build_release_zip(
    version: str = "3.8.5",
    *,
    root_folder: str | None = None,
    extra: dict[str, bytes] | None = None,
) -> bytes:
    """Build an in-memory npm release archive shaped like a GitHub zipball.

    The POSIX launcher is a shell script that prints *version*, so the real
    version probe works against a promoted install.
    """
    folder = root_folder or f"npm-{version}"
    files: dict[str, tuple[bytes, int]] = {
        "package.json": (f'{{"name": "npm", "version": "{version}"}}'.encode(), 0o644),
        "bin/npm": (POSIX_LAUNCHER.replace(b"{version}", version.encode()), 0o755),
        "bin/npm.cmd": (WINDOWS_LAUNCHER, 0o644),
        "bin/npm-cli.js": (b"require('../lib/npm.js')\n", 0o644),
        "lib/npm.js": (b"module.exports = {}\n", 0o644),
    }
    for name, data in (extra or {}).items():
        files[name] = (data, 0o644)

    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        for dirname in (f"{folder}/", f"{folder}/bin/", f"{folder}/lib/"):
            info = zipfile.ZipInfo(dirname)
            info.external_attr = (0o40755 << 16) | 0x10
            zf.writestr(info, b"")
        for name, (data, mode) in files.items():
            info = zipfile.ZipInfo(f"{folder}/{name}")
            info.external_attr = (0o100000 | mode) << 16
            info.compress_type = zipfile.ZIP_DEFLATED
            zf.writestr(info, data)
    return buf.getvalue()


@pytest.fixture
def release_zip(tmp_path: Path) -> Path:
    """A release archive for npm 3.8.5 written to disk."""
    path = tmp_path / "downloads" / "v3.8.5.zip"
    path.parent.mkdir()
    path.write_bytes(build_release_zip("3.8.5"))
    return path


@pytest.fixture
def make_release_zip():
    """Factory fixture around build_release_zip."""
    return build_release_zip
