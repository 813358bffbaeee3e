"""Configuration lookup protocol."""

from __future__ import annotations

from typing import Protocol


class ConfigPort(Protocol):
    """Port for reading npm-dist settings by key."""

    def get_config(self, key: str) -> str:
        """Return the value for *key*, or ``""`` if unset."""
        ...
