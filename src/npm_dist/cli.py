"""Command line interface: ``npm-dist install|version|uninstall``."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import threading
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import asdict
from pathlib import Path

import httpx

from npm_dist.config.base import ConfigPort
from npm_dist.config.reader import ROOT, FileConfig
from npm_dist.errors import NpmDistError
from npm_dist.installer.cleaner import clean_previous_install
from npm_dist.installer.probe import installed_version
from npm_dist.models import UNKNOWN, Mirror
from npm_dist.paths import plan_paths
from npm_dist.registry.client import NpmReleaseClient
from npm_dist.version import compare_versions
from npm_dist.workflow import LATEST, InstallWorkflow

logger = logging.getLogger(__name__)


class PromptAborted(Exception):
    """The operator's terminal went away while being asked to confirm."""


@asynccontextmanager
async def release_client(mirror: Mirror) -> AsyncIterator[NpmReleaseClient]:
    """Build the shared HTTP client -- the composition root."""
    async with httpx.AsyncClient(
        timeout=httpx.Timeout(60.0, connect=10.0),
        follow_redirects=True,
        transport=httpx.AsyncHTTPTransport(retries=3),
    ) as http_client:
        yield NpmReleaseClient(http_client, mirror=mirror)


def prompt_yes_no(question: str) -> bool:
    """Ask on the terminal; an empty answer or ``y``/``yes`` means yes.

    asyncio.run swaps the SIGINT handler for one that only cancels the main
    task, which would leave Ctrl-C ignored until ``input()`` returns. The
    default handler is put back for the duration of the prompt.
    """
    previous = None
    if threading.current_thread() is threading.main_thread():
        previous = signal.signal(signal.SIGINT, signal.default_int_handler)
    try:
        answer = input(question)
    except (EOFError, KeyboardInterrupt) as exc:
        raise PromptAborted(f"Confirmation prompt aborted: {exc!r}") from exc
    finally:
        if previous is not None:
            signal.signal(signal.SIGINT, previous)
    return answer.strip().lower() in ("", "y", "yes")


def _resolve_root(args: argparse.Namespace, config: ConfigPort) -> Path:
    raw = args.root or config.get_config(ROOT)
    if not raw:
        raise NpmDistError(
            "No install root configured. Pass --root or set 'root' in the config file."
        )
    return Path(raw).expanduser()


async def _cmd_install(args: argparse.Namespace, root: Path, mirror: Mirror) -> int:
    async with release_client(mirror) as client:
        workflow = InstallWorkflow(
            root,
            client,
            confirm=None if args.yes else prompt_yes_no,
        )
        result = await workflow.run(args.version)

    if args.json:
        print(json.dumps(asdict(result), indent=2))
    else:
        print(result.message)
    # Failures are reported, not turned into an exit status.
    return 0


async def _cmd_version(args: argparse.Namespace, root: Path, mirror: Mirror) -> int:
    local = await installed_version(root)
    async with release_client(mirror) as client:
        remote = await client.fetch_latest_version()

    comparison = None if local == UNKNOWN else compare_versions(remote, local)
    report = {
        "local": local,
        "remote": remote,
        "comparison": comparison.value if comparison else None,
    }
    if args.json:
        print(json.dumps(report, indent=2))
    else:
        print(f"local  npm: {local}")
        print(f"remote npm: {remote}")
        if comparison is not None:
            print(f"remote vs local: {comparison.value}")
    return 0


def _cmd_uninstall(root: Path) -> int:
    paths = plan_paths(root, UNKNOWN)
    removed = clean_previous_install(paths)
    if removed:
        for path in removed:
            print(f"removed {path}")
    else:
        print(f"No npm installation found in {paths.root}.")
    return 0


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="npm-dist",
        description="Install, update and remove the npm distribution next to a Node.js runtime.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    parser.add_argument(
        "--root",
        default="",
        help="Install root. Defaults to 'root' from the config file or NPM_DIST_ROOT.",
    )
    parser.add_argument(
        "--registry",
        choices=[m.value for m in Mirror],
        default=None,
        help="Download mirror. Defaults to 'registry' from the config file.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Config file path. Defaults to NPM_DIST_CONFIG or ~/.npm-dist.json.",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print results as JSON instead of human-readable text.",
    )

    commands = parser.add_subparsers(dest="command", required=True)
    install = commands.add_parser("install", help="Install or update npm.")
    install.add_argument(
        "version",
        nargs="?",
        default=LATEST,
        help="Version label such as 3.8.5, or 'latest' (default).",
    )
    install.add_argument("-y", "--yes", action="store_true", help="Do not ask for confirmation.")
    commands.add_parser("version", help="Show local and latest remote npm versions.")
    commands.add_parser("uninstall", help="Remove npm and its launchers from the root.")
    return parser.parse_args(argv)


def run_cli(argv: list[str] | None = None) -> int:
    """CLI runner. Returns the process exit status."""
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    config = FileConfig(args.config)
    try:
        root = _resolve_root(args, config)
        mirror = Mirror(args.registry) if args.registry else config.mirror()
        if args.command == "install":
            return asyncio.run(_cmd_install(args, root, mirror))
        if args.command == "version":
            return asyncio.run(_cmd_version(args, root, mirror))
        return _cmd_uninstall(root)
    except PromptAborted as exc:
        logger.error("%s", exc)
        return 1
    except KeyboardInterrupt:
        logger.error("npm-dist %s interrupted.", args.command)
        return 1
    except NpmDistError as exc:
        logger.error("npm-dist %s failed: %s", args.command, exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(run_cli())
