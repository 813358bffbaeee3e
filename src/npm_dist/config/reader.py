"""Read npm-dist settings from a JSON file with environment overrides.

The file is a flat object: { "root": "/opt/node", "registry": "taobao" }.
Unknown keys are ignored.
"""

from __future__ import annotations

import json
import os
from pathlib import Path

from npm_dist.errors import ConfigReadError
from npm_dist.models import Mirror

ROOT = "root"
REGISTRY = "registry"

_CONFIG_FILENAME = ".npm-dist.json"
_CONFIG_PATH_ENV = "NPM_DIST_CONFIG"

# Environment variables win over file values.
_ENV_OVERRIDES: dict[str, str] = {
    ROOT: "NPM_DIST_ROOT",
    REGISTRY: "NPM_DIST_REGISTRY",
}


def default_config_path() -> Path:
    override = os.environ.get(_CONFIG_PATH_ENV, "")
    if override:
        return Path(override).expanduser()
    return Path.home() / _CONFIG_FILENAME


def read_config(config_path: Path | str | None = None) -> dict[str, object]:
    """Read the config file. A missing or empty file reads as ``{}``."""
    path = Path(config_path) if config_path is not None else default_config_path()
    if not path.exists():
        return {}

    try:
        text = path.read_text(encoding="utf-8")
        if not text.strip():
            return {}
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigReadError(
            f"Invalid JSON in {path}: {exc}. Fix the JSON syntax or delete the file to start fresh."
        ) from exc
    except OSError as exc:
        raise ConfigReadError(f"Cannot read {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigReadError(f"Config file {path} must contain a JSON object.")
    return data


class FileConfig:
    """Key/value lookup over one config file plus environment overrides."""

    def __init__(self, config_path: Path | str | None = None) -> None:
        self._path = config_path
        self._data: dict[str, object] | None = None

    def get_config(self, key: str) -> str:
        """Return the value for *key*, or ``""`` when it is not set anywhere."""
        env_name = _ENV_OVERRIDES.get(key)
        if env_name:
            env_value = os.environ.get(env_name, "")
            if env_value:
                return env_value

        if self._data is None:
            self._data = read_config(self._path)
        value = self._data.get(key, "")
        return "" if value is None else str(value)

    def mirror(self) -> Mirror:
        """Return the configured download mirror (``default`` when unset)."""
        raw = self.get_config(REGISTRY).strip().lower() or Mirror.DEFAULT.value
        try:
            return Mirror(raw)
        except ValueError:
            allowed = ", ".join(m.value for m in Mirror)
            raise ConfigReadError(
                f"Unknown registry '{raw}'. Expected one of: {allowed}."
            ) from None
