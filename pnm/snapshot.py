"""Snapshot loading and a small time-based cache."""

import json
import logging
import time
from collections.abc import Callable
from pathlib import Path
from typing import Generic, TypeVar

from pnm.models import Node

logger = logging.getLogger(__name__)

K = TypeVar("K")
V = TypeVar("V")


class SnapshotError(Exception):
    """Raised when a snapshot file is missing, unreadable or malformed."""


class TTLCache(Generic[K, V]):
    """Keyed cache whose entries expire *ttl_seconds* after they are stored.

    Args:
        ttl_seconds: Lifetime of an entry.
        clock: Monotonic time source in seconds (injectable for tests).
    """

    def __init__(
        self,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[K, tuple[float, V]] = {}

    def get(self, key: K) -> V | None:
        """Return the cached value, or ``None`` if absent or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    def set(self, key: K, value: V) -> None:
        self._entries[key] = (self._clock() + self.ttl_seconds, value)

    def get_or_load(self, key: K, loader: Callable[[], V]) -> V:
        """Return the cached value, calling *loader* on a miss.

        Exceptions from *loader* propagate and nothing is cached.
        """
        value = self.get(key)
        if value is None:
            value = loader()
            self.set(key, value)
        return value

    def invalidate(self, key: K | None = None) -> None:
        """Drop one entry, or every entry when *key* is ``None``."""
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)


def load_snapshot(path: Path | str) -> list[Node]:
    """Read raw nodes from a JSON snapshot file.

    The file holds either a bare array of camelCase node objects or an
    object with a ``nodes`` array.

    Raises:
        SnapshotError: If the file is missing, isn't valid JSON, or a record
            lacks ``pubkey``/``status``.
    """
    p = Path(path).expanduser()
    logger.debug("Loading snapshot from %s", p)

    try:
        text = p.read_text(encoding="utf-8")
    except OSError as exc:
        raise SnapshotError(f"Cannot read snapshot {p}: {exc}") from exc

    try:
        raw = json.loads(text)
    except json.JSONDecodeError as exc:
        raise SnapshotError(f"Invalid JSON in snapshot {p}: {exc}") from exc

    if isinstance(raw, dict) and isinstance(raw.get("nodes"), list):
        raw = raw["nodes"]
    if not isinstance(raw, list):
        raise SnapshotError(
            f"Expected a JSON array of nodes in {p}, got {type(raw).__name__}"
        )

    nodes: list[Node] = []
    for idx, item in enumerate(raw, start=1):
        if not isinstance(item, dict):
            raise SnapshotError(f"Snapshot record {idx} in {p} is not an object")
        try:
            nodes.append(Node.from_dict(item))
        except KeyError as exc:
            raise SnapshotError(
                f"Snapshot record {idx} in {p} is missing field {exc.args[0]!r}"
            ) from exc

    logger.debug("Loaded %d nodes from %s", len(nodes), p)
    return nodes


class SnapshotSource:
    """Read-through cached access to one snapshot file.

    Args:
        path: Snapshot file path.
        cache: Cache shared with other sources, or ``None`` for a private
            15-second cache.
    """

    def __init__(
        self,
        path: Path | str,
        cache: TTLCache[str, list[Node]] | None = None,
    ) -> None:
        self.path = Path(path).expanduser()
        self._cache: TTLCache[str, list[Node]] = (
            cache if cache is not None else TTLCache(15.0)
        )

    def load(self) -> list[Node]:
        """Return the snapshot's nodes, re-reading the file once the TTL lapses."""
        return self._cache.get_or_load(str(self.path), lambda: load_snapshot(self.path))

    def refresh(self) -> list[Node]:
        """Force a re-read on the next access and return the fresh nodes."""
        self._cache.invalidate(str(self.path))
        return self.load()
