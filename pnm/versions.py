"""Dotted version parsing and comparison."""

import re
from collections.abc import Iterable

from pnm.models import Node

EMPTY_VERSION = "0.0.0"

_DIGITS = re.compile(r"[0-9]+")


def parse_version(version: str) -> list[int]:
    """Split a version string into numeric components.

    A single leading ``v``/``V`` is dropped.  A component counts only if it
    is a run of decimal digits once surrounding whitespace is stripped;
    anything else (``"x"``, ``""``, ``"1_0"``, ``"0x10"``, ``"1e3"``)
    becomes ``0``.

    >>> parse_version("v1.2.x")
    [1, 2, 0]
    """
    text = version[1:] if version[:1] in ("v", "V") else version
    return [_component(part) for part in text.split(".")]


def _component(part: str) -> int:
    stripped = part.strip()
    if not _DIGITS.fullmatch(stripped):
        return 0
    return int(stripped)


def compare_versions(a: str, b: str) -> int:
    """Compare two version strings component-wise.

    The shorter sequence is padded with zeros, so ``"1.0"`` equals
    ``"1.0.0"``.

    Returns:
        ``1`` if *a* is newer, ``-1`` if *b* is newer, ``0`` if equal.
    """
    av = parse_version(a)
    bv = parse_version(b)
    width = max(len(av), len(bv))
    av += [0] * (width - len(av))
    bv += [0] * (width - len(bv))

    for ai, bi in zip(av, bv):
        if ai != bi:
            return 1 if ai > bi else -1
    return 0


def get_latest_version(nodes: Iterable[Node]) -> str:
    """Return the newest version string present in *nodes*.

    When several strings compare equal (``"1.0"`` and ``"1.0.0"``) the one
    seen first is kept.  An empty collection yields ``"0.0.0"``.
    """
    latest: str | None = None
    for node in nodes:
        if latest is None or compare_versions(node.version, latest) > 0:
            latest = node.version
    return latest if latest is not None else EMPTY_VERSION
