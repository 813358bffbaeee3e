"""HTTP client for npm release metadata and release archives.

Latest version: the ``version`` field of npm's published package.json.
Archives: ``v<version>.zip`` under the selected mirror.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path

import httpx

from npm_dist.errors import (
    DownloadError,
    MalformedDescriptorError,
    RemoteUnavailableError,
)
from npm_dist.models import Mirror
from npm_dist.paths import archive_name

logger = logging.getLogger(__name__)

LATEST_DESCRIPTOR_URL = "https://raw.githubusercontent.com/npm/npm/master/package.json"

_MIRROR_BASES: dict[Mirror, str] = {
    Mirror.TAOBAO: "http://npm.taobao.org/mirrors/npm/",
    Mirror.DEFAULT: "https://github.com/npm/npm/releases/",
}

_CHUNK_SIZE = 64 * 1024


@dataclass
class NpmReleaseClient:
    """Async client for npm release discovery and download."""

    http: httpx.AsyncClient
    mirror: Mirror = Mirror.DEFAULT
    descriptor_url: str = LATEST_DESCRIPTOR_URL

    async def fetch_latest_version(self) -> str:
        """Return the latest published npm version label.

        Raises:
            RemoteUnavailableError: Transport failure or non-2xx response.
            MalformedDescriptorError: Body is not JSON or lacks ``version``.
        """
        try:
            response = await self.http.get(self.descriptor_url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise RemoteUnavailableError(
                f"Failed to fetch npm version descriptor from {self.descriptor_url}: {exc}"
            ) from exc

        try:
            data = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise MalformedDescriptorError(
                f"Version descriptor at {self.descriptor_url} is not valid JSON: {exc}"
            ) from exc

        version = data.get("version") if isinstance(data, dict) else None
        if not isinstance(version, str) or not version.strip():
            raise MalformedDescriptorError(
                f"Version descriptor at {self.descriptor_url} has no 'version' field."
            )
        return version.strip()

    def archive_url(self, version: str) -> str:
        return _MIRROR_BASES[self.mirror] + archive_name(version)

    async def download_archive(self, url: str, destination: Path | str) -> Path:
        """Stream *url* into *destination*, truncating any earlier file.

        A partially written file is left behind on failure; the next
        download overwrites it.
        """
        dest = Path(destination)
        logger.info("Downloading %s -> %s", url, dest)
        written = 0
        try:
            async with self.http.stream("GET", url) as response:
                response.raise_for_status()
                with open(dest, "wb") as fh:
                    async for chunk in response.aiter_bytes(_CHUNK_SIZE):
                        fh.write(chunk)
                        written += len(chunk)
        except httpx.HTTPError as exc:
            raise DownloadError(f"Failed to download {url}: {exc}") from exc
        except OSError as exc:
            raise DownloadError(f"Failed to write {dest} while downloading {url}: {exc}") from exc

        logger.debug("Downloaded %d bytes to %s", written, dest)
        return dest
