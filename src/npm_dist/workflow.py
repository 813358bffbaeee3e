"""Install workflow: resolve, download, pre-clean, extract, promote, post-clean.

The run is a straight line of stages. The only branch is the decision after
version resolution to skip an install that would not change anything. The
first NpmDistError ends the run in FAILED; nothing later runs and nothing is
retried. A half-populated tree is repaired by the next run's pre-clean.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from pathlib import Path

from npm_dist.errors import NpmDistError
from npm_dist.installer.cleaner import clean, clean_previous_install, unfinished_install
from npm_dist.installer.extractor import extract_archive
from npm_dist.installer.lock import install_lock
from npm_dist.installer.probe import installed_version
from npm_dist.installer.promote import promote
from npm_dist.models import UNKNOWN, Comparison, Stage, WorkflowResult
from npm_dist.paths import plan_paths
from npm_dist.registry.client import NpmReleaseClient
from npm_dist.version import (
    compare_versions,
    is_update_available,
    normalize_version,
    parse_version,
)

logger = logging.getLogger(__name__)

LATEST = "latest"

_UPDATE_HINT = "Run 'npm install -g npm' to update npm yourself."

_SYMBOLS = {Comparison.GREATER: ">", Comparison.LESS: "<", Comparison.EQUAL: "="}

ConfirmFn = Callable[[str], bool]
ProbeFn = Callable[[Path], Awaitable[str]]


class InstallWorkflow:
    """Install (or replace) the npm distribution living in one install root.

    A fresh InstallPaths value is planned per run and handed from stage to
    stage; the workflow object itself keeps no per-run state.
    """

    def __init__(
        self,
        root: Path | str,
        client: NpmReleaseClient,
        *,
        confirm: ConfirmFn | None = None,
        probe: ProbeFn = installed_version,
    ) -> None:
        self._root = Path(root)
        self._client = client
        self._confirm = confirm
        self._probe = probe

    async def resolve_target(self, target: str = LATEST) -> str:
        """Return the version label *target* stands for."""
        if target.strip().lower() == LATEST:
            label = await self._client.fetch_latest_version()
        else:
            label = target
        label = normalize_version(label)
        parse_version(label)
        return label

    async def run(self, target: str = LATEST) -> WorkflowResult:
        """Run one install attempt. Never raises NpmDistError; see the result."""
        stage = Stage.RESOLVING_VERSION
        local = UNKNOWN
        version = ""
        comparison: Comparison | None = None

        try:
            local = await self._probe(self._root)
            version = await self.resolve_target(target)
            if local != UNKNOWN:
                comparison = compare_versions(version, local)
            logger.info(
                "npm target version %s %s local version %s.",
                version,
                _SYMBOLS.get(comparison, "?"),
                local,
            )

            paths = plan_paths(self._root, version)
            leftovers = unfinished_install(paths)
            if leftovers:
                logger.warning(
                    "An earlier install of npm %s did not finish (%s); installing again.",
                    version,
                    ", ".join(map(str, leftovers)),
                )
            elif not self._should_install(target, version, local, comparison):
                logger.warning("npm %s is already current in %s; nothing to do.", local, self._root)
                return WorkflowResult(
                    success=True,
                    stage=Stage.DONE,
                    message=f"npm {local} is up to date (target {version}).",
                    local_version=local,
                    target_version=version,
                    comparison=comparison,
                )

            if self._confirm is not None and not self._confirm(
                f"Update local npm {local} to {version} [Y/n]? "
            ):
                return WorkflowResult(
                    success=True,
                    stage=Stage.DONE,
                    message=f"Update to npm {version} declined. {_UPDATE_HINT}",
                    local_version=local,
                    target_version=version,
                    comparison=comparison,
                )

            logger.debug("Planned install paths:\n%s", paths.describe())

            stage = Stage.DOWNLOADING
            with install_lock(paths.root):
                self._enter(stage)
                url = self._client.archive_url(version)
                await self._client.download_archive(url, paths.archive_path)

                stage = self._enter(Stage.PRE_CLEANING)
                removed = clean_previous_install(paths, stage=stage.value)
                if removed:
                    logger.info("Removed previous install: %s", ", ".join(map(str, removed)))

                stage = self._enter(Stage.EXTRACTING)
                root_folder = extract_archive(paths.archive_path, paths.modules_dir)
                paths = paths.with_extracted_root(root_folder)

                stage = self._enter(Stage.PROMOTING)
                promote(paths)

                stage = self._enter(Stage.POST_CLEANING)
                clean(paths.archive_path, stage=stage.value)
        except NpmDistError as exc:
            logger.error("npm install failed while %s: %s", stage.value.replace("_", " "), exc)
            return WorkflowResult(
                success=False,
                stage=Stage.FAILED,
                message=str(exc),
                local_version=local,
                target_version=version,
                comparison=comparison,
                failed_stage=stage,
            )

        return WorkflowResult(
            success=True,
            stage=Stage.DONE,
            message=f"npm {version} installed into {paths.root}.",
            local_version=local,
            target_version=version,
            comparison=comparison,
            installed=True,
        )

    @staticmethod
    def _enter(stage: Stage) -> Stage:
        logger.info("Stage: %s", stage.value)
        return stage

    @staticmethod
    def _should_install(
        target: str,
        version: str,
        local: str,
        comparison: Comparison | None,
    ) -> bool:
        if target.strip().lower() == LATEST:
            return is_update_available(version, local)
        # An explicit version is installed unless it is exactly what is there.
        return comparison is not Comparison.EQUAL
