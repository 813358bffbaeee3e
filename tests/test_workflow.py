"""Tests for the install workflow, end to end against a temporary root."""

from __future__ import annotations

import fcntl
import io
import shutil
import sys
import zipfile
from pathlib import Path
from unittest.mock import MagicMock, patch

import httpx
import pytest

from npm_dist.errors import BinaryCopyError
from npm_dist.installer.lock import LOCK_FILENAME
from npm_dist.installer.promote import copy_launcher
from npm_dist.models import UNKNOWN, Comparison, Mirror, Stage
from npm_dist.registry.client import LATEST_DESCRIPTOR_URL, NpmReleaseClient
from npm_dist.workflow import InstallWorkflow

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="launcher is a shell script")


class FakeRemote:
    """Serves the version descriptor and release archives; records requests."""

    def __init__(self, make_release_zip, latest: str = "3.8.5") -> None:
        self.latest = latest
        self.make_release_zip = make_release_zip
        self.requests: list[str] = []
        self.archive_overrides: dict[str, bytes] = {}
        self.fail_downloads = False

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)
        if url == LATEST_DESCRIPTOR_URL:
            return httpx.Response(200, json={"name": "npm", "version": self.latest})
        if self.fail_downloads:
            return httpx.Response(500)
        name = url.rsplit("/", 1)[-1]
        if name in self.archive_overrides:
            return httpx.Response(200, content=self.archive_overrides[name])
        version = name.removeprefix("v").removesuffix(".zip")
        return httpx.Response(200, content=self.make_release_zip(version))

    @property
    def downloads(self) -> list[str]:
        return [u for u in self.requests if u.endswith(".zip")]

    def client(self, mirror: Mirror = Mirror.DEFAULT) -> NpmReleaseClient:
        http = httpx.AsyncClient(transport=httpx.MockTransport(self.handler))
        return NpmReleaseClient(http, mirror=mirror)


def _fixed_probe(version: str):
    async def probe(root: Path) -> str:
        return version

    return probe


def _fail_for(launcher: str):
    def copy(src_dir: Path, dst_dir: Path, name: str, **kwargs) -> Path:
        if name == launcher:
            raise BinaryCopyError("No space left on device", kind="copy", filename=name)
        return copy_launcher(src_dir, dst_dir, name, **kwargs)

    return copy


def _snapshot(root: Path) -> dict[str, tuple[int, int]]:
    return {
        str(p.relative_to(root)): (p.stat().st_mtime_ns, p.stat().st_size)
        for p in root.rglob("*")
    }


@pytest.fixture
def remote(make_release_zip) -> FakeRemote:
    return FakeRemote(make_release_zip)


@pytest.fixture
def root(tmp_path: Path) -> Path:
    return tmp_path / "x"


# ═══════════════════════════════════════════════════════════════════
# Successful installs
# ═══════════════════════════════════════════════════════════════════


class TestFreshInstall:
    @posix_only
    async def test_end_to_end(self, root: Path, remote: FakeRemote):
        result = await InstallWorkflow(root, remote.client()).run()

        assert result.success is True
        assert result.installed is True
        assert result.stage is Stage.DONE
        assert result.local_version == UNKNOWN
        assert result.target_version == "3.8.5"
        assert remote.downloads == ["https://github.com/npm/npm/releases/v3.8.5.zip"]

        package = root / "node_modules" / "npm"
        assert (package / "bin" / "npm").is_file()
        assert (package / "bin" / "npm.cmd").is_file()
        assert (package / "lib" / "npm.js").is_file()
        assert not (root / "node_modules" / "npm-3.8.5").exists()
        assert (root / "npm").is_file()
        assert (root / "npm.cmd").is_file()
        assert not (root / "v3.8.5.zip").exists()

    @posix_only
    async def test_second_run_is_noop(self, root: Path, remote: FakeRemote):
        await InstallWorkflow(root, remote.client()).run()
        before = _snapshot(root)
        downloads_before = len(remote.downloads)

        result = await InstallWorkflow(root, remote.client()).run()

        assert result.success is True
        assert result.installed is False
        assert result.stage is Stage.DONE
        assert result.local_version == "3.8.5"
        assert result.comparison is Comparison.EQUAL
        assert len(remote.downloads) == downloads_before
        assert _snapshot(root) == before

    @posix_only
    async def test_upgrade_replaces_previous_install(self, root: Path, remote: FakeRemote):
        remote.latest = "3.8.4"
        await InstallWorkflow(root, remote.client()).run()
        stale = root / "node_modules" / "npm" / "stale.txt"
        stale.write_text("from 3.8.4")
        sibling = root / "node_modules" / "left-pad"
        sibling.mkdir()

        remote.latest = "3.10.0"
        result = await InstallWorkflow(root, remote.client()).run()

        assert result.installed is True
        assert result.comparison is Comparison.GREATER
        assert not stale.exists()
        assert sibling.is_dir()
        assert b"3.10.0" in (root / "npm").read_bytes()

    async def test_taobao_mirror(self, root: Path, remote: FakeRemote):
        result = await InstallWorkflow(
            root, remote.client(Mirror.TAOBAO), probe=_fixed_probe(UNKNOWN)
        ).run()
        assert result.success is True
        assert remote.downloads == ["http://npm.taobao.org/mirrors/npm/v3.8.5.zip"]

    async def test_explicit_version_skips_descriptor(self, root: Path, remote: FakeRemote):
        result = await InstallWorkflow(
            root, remote.client(), probe=_fixed_probe(UNKNOWN)
        ).run("v2.15.1")

        assert result.installed is True
        assert result.target_version == "2.15.1"
        assert LATEST_DESCRIPTOR_URL not in remote.requests
        assert remote.downloads[-1].endswith("/v2.15.1.zip")

    async def test_explicit_downgrade_installs(self, root: Path, remote: FakeRemote):
        result = await InstallWorkflow(
            root, remote.client(), probe=_fixed_probe("6.0.0")
        ).run("3.8.5")
        assert result.installed is True
        assert result.comparison is Comparison.LESS


# ═══════════════════════════════════════════════════════════════════
# Skips and declines
# ═══════════════════════════════════════════════════════════════════


class TestNoMutation:
    async def test_remote_older_than_local(self, root: Path, remote: FakeRemote):
        result = await InstallWorkflow(root, remote.client(), probe=_fixed_probe("6.0.0")).run()

        assert result.success is True
        assert result.installed is False
        assert result.comparison is Comparison.LESS
        assert not root.exists()
        assert remote.downloads == []

    async def test_explicit_same_version(self, root: Path, remote: FakeRemote):
        result = await InstallWorkflow(
            root, remote.client(), probe=_fixed_probe("3.8.05")
        ).run("3.8.5")
        assert result.installed is False
        assert result.comparison is Comparison.EQUAL

    async def test_declined(self, root: Path, remote: FakeRemote):
        confirm = MagicMock(return_value=False)
        result = await InstallWorkflow(
            root, remote.client(), confirm=confirm, probe=_fixed_probe("3.8.0")
        ).run()

        confirm.assert_called_once()
        assert "3.8.0" in confirm.call_args[0][0]
        assert "3.8.5" in confirm.call_args[0][0]
        assert result.success is True
        assert result.installed is False
        assert "npm install -g npm" in result.message
        assert not root.exists()

    async def test_confirmed(self, root: Path, remote: FakeRemote):
        confirm = MagicMock(return_value=True)
        result = await InstallWorkflow(
            root, remote.client(), confirm=confirm, probe=_fixed_probe(UNKNOWN)
        ).run()
        assert result.installed is True

    async def test_prompt_failure_propagates(self, root: Path, remote: FakeRemote):
        confirm = MagicMock(side_effect=EOFError)
        workflow = InstallWorkflow(
            root, remote.client(), confirm=confirm, probe=_fixed_probe(UNKNOWN)
        )
        with pytest.raises(EOFError):
            await workflow.run()
        assert not root.exists()


# ═══════════════════════════════════════════════════════════════════
# Failures
# ═══════════════════════════════════════════════════════════════════


class TestFailures:
    async def test_remote_unavailable(self, root: Path):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502)

        client = NpmReleaseClient(httpx.AsyncClient(transport=httpx.MockTransport(handler)))
        result = await InstallWorkflow(root, client, probe=_fixed_probe(UNKNOWN)).run()

        assert result.success is False
        assert result.stage is Stage.FAILED
        assert result.failed_stage is Stage.RESOLVING_VERSION
        assert not root.exists()

    async def test_malformed_remote_version(self, root: Path, remote: FakeRemote):
        remote.latest = "next"
        result = await InstallWorkflow(root, remote.client(), probe=_fixed_probe(UNKNOWN)).run()
        assert result.failed_stage is Stage.RESOLVING_VERSION
        assert "not numeric" in result.message

    async def test_malformed_explicit_version(self, root: Path, remote: FakeRemote):
        result = await InstallWorkflow(
            root, remote.client(), probe=_fixed_probe(UNKNOWN)
        ).run("3.x")
        assert result.failed_stage is Stage.RESOLVING_VERSION
        assert remote.requests == []

    async def test_download_failure_keeps_existing_install(self, root: Path, remote: FakeRemote):
        (root / "node_modules" / "npm").mkdir(parents=True)
        (root / "npm").write_text("old launcher")
        remote.fail_downloads = True

        result = await InstallWorkflow(root, remote.client(), probe=_fixed_probe("1.0.0")).run()

        assert result.failed_stage is Stage.DOWNLOADING
        assert "v3.8.5.zip" in result.message
        assert (root / "npm").read_text() == "old launcher"
        assert (root / "node_modules" / "npm").is_dir()

    async def test_bad_archive_layout(self, root: Path, remote: FakeRemote):
        buf = io.BytesIO()
        with zipfile.ZipFile(buf, "w") as zf:
            zf.writestr("a/package.json", "{}")
            zf.writestr("b/package.json", "{}")
        remote.archive_overrides["v3.8.5.zip"] = buf.getvalue()

        result = await InstallWorkflow(root, remote.client(), probe=_fixed_probe(UNKNOWN)).run()

        assert result.failed_stage is Stage.EXTRACTING
        assert "exactly one top-level folder" in result.message
        # Post-clean never ran.
        assert (root / "v3.8.5.zip").exists()

    async def test_lock_held(self, root: Path, remote: FakeRemote):
        root.mkdir()
        with open(root / LOCK_FILENAME, "w") as other:
            fcntl.flock(other, fcntl.LOCK_EX | fcntl.LOCK_NB)
            try:
                result = await InstallWorkflow(
                    root, remote.client(), probe=_fixed_probe(UNKNOWN)
                ).run()
            finally:
                fcntl.flock(other, fcntl.LOCK_UN)

        assert result.failed_stage is Stage.DOWNLOADING
        assert remote.downloads == []
        assert not (root / "v3.8.5.zip").exists()

    @posix_only
    async def test_interrupted_extraction_recovers_on_next_run(
        self, root: Path, remote: FakeRemote
    ):
        real_copy = shutil.copyfileobj
        calls = {"n": 0}

        def flaky_copy(src, dst, *args, **kwargs):
            calls["n"] += 1
            if calls["n"] == 2:
                raise OSError("No space left on device")
            return real_copy(src, dst, *args, **kwargs)

        with patch("npm_dist.installer.extractor.shutil.copyfileobj", side_effect=flaky_copy):
            failed = await InstallWorkflow(root, remote.client()).run()

        assert failed.success is False
        assert failed.failed_stage is Stage.EXTRACTING
        assert "No space left" in failed.message
        assert not (root / "npm").exists()

        result = await InstallWorkflow(root, remote.client()).run()

        assert result.success is True
        assert result.installed is True
        assert (root / "npm").is_file()
        assert (root / "npm.cmd").is_file()
        assert (root / "node_modules" / "npm" / "lib" / "npm.js").is_file()
        assert not (root / "v3.8.5.zip").exists()

    @posix_only
    async def test_interrupted_promotion_recovers_on_next_run(
        self, root: Path, remote: FakeRemote
    ):
        with patch("npm_dist.installer.promote.os.fsync", side_effect=OSError("EIO")):
            failed = await InstallWorkflow(root, remote.client()).run()

        assert failed.failed_stage is Stage.PROMOTING
        # Half-promoted: package renamed, archive still present.
        assert (root / "node_modules" / "npm").is_dir()
        assert (root / "v3.8.5.zip").exists()

        result = await InstallWorkflow(root, remote.client()).run()

        assert result.installed is True
        # No launcher was swapped in, so the probe saw no install.
        assert result.local_version == UNKNOWN
        assert (root / "npm.cmd").is_file()
        assert not (root / "v3.8.5.zip").exists()

    @posix_only
    async def test_failed_second_launcher_recovers_on_next_run(
        self, root: Path, remote: FakeRemote
    ):
        with patch("npm_dist.installer.promote.copy_launcher", side_effect=_fail_for("npm.cmd")):
            failed = await InstallWorkflow(root, remote.client()).run()

        assert failed.failed_stage is Stage.PROMOTING
        # Neither launcher is swapped in until both copies exist.
        assert not (root / "npm").exists()
        assert not (root / "npm.cmd").exists()

        result = await InstallWorkflow(root, remote.client()).run()

        assert result.success is True
        assert result.installed is True
        assert (root / "npm").is_file()
        assert (root / "npm.cmd").is_file()
        assert not (root / "v3.8.5.zip").exists()
        assert list(root.glob("*.partial")) == []

    async def test_leftover_archive_forces_reinstall(self, root: Path, remote: FakeRemote):
        with patch("npm_dist.installer.promote.copy_launcher", side_effect=_fail_for("npm.cmd")):
            failed = await InstallWorkflow(
                root, remote.client(), probe=_fixed_probe(UNKNOWN)
            ).run()
        assert failed.success is False

        # The launcher left from the earlier run already answers with the target version.
        result = await InstallWorkflow(
            root, remote.client(), probe=_fixed_probe("3.8.5")
        ).run()

        assert result.installed is True
        assert result.comparison is Comparison.EQUAL
        assert (root / "npm.cmd").is_file()
        assert not (root / "v3.8.5.zip").exists()
