"""Parse and order dotted numeric version labels."""

from __future__ import annotations

from itertools import zip_longest

from npm_dist.errors import MalformedVersionError
from npm_dist.models import UNKNOWN, Comparison


def normalize_version(label: str) -> str:
    """Strip whitespace and a single leading ``v`` (``v3.8.5`` -> ``3.8.5``)."""
    text = label.strip()
    if text[:1] in ("v", "V"):
        text = text[1:]
    return text


def parse_version(label: str) -> tuple[int, ...]:
    """Turn ``"3.8.05"`` into ``(3, 8, 5)``.

    Raises:
        MalformedVersionError: If any component is empty or not a decimal number.
    """
    text = normalize_version(label)
    if not text:
        raise MalformedVersionError(f"Empty version label: {label!r}")

    parts: list[int] = []
    for component in text.split("."):
        if not (component.isascii() and component.isdigit()):
            raise MalformedVersionError(
                f"Invalid version label {label!r}: component {component!r} is not numeric."
            )
        parts.append(int(component))
    return tuple(parts)


def compare_versions(a: str, b: str) -> Comparison:
    """Compare two labels numerically; missing trailing components count as 0."""
    for left, right in zip_longest(parse_version(a), parse_version(b), fillvalue=0):
        if left > right:
            return Comparison.GREATER
        if left < right:
            return Comparison.LESS
    return Comparison.EQUAL


def is_update_available(remote: str, local: str) -> bool:
    """True when *remote* is strictly newer than *local*.

    A local label of ``UNKNOWN`` (nothing installed) is always older.
    """
    if local == UNKNOWN:
        parse_version(remote)
        return True
    return compare_versions(remote, local) is Comparison.GREATER
