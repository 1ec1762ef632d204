"""Settings for the pnm tool, read from a YAML file.

Every setting is optional.  A file may override any subset of the
``PnmConfig`` fields; a value of the wrong kind raises ``ConfigError``
naming the key.
"""

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from pnm.health import DEFAULT_LATEST_VERSION

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".pnm" / "config.yaml"


class ConfigError(Exception):
    """Raised when a configuration file is malformed or holds a bad value."""


@dataclass
class PnmConfig:
    """Runtime settings.

    The defaults let the tool run against ``./pnodes.json`` with no
    configuration file at all.

    Attributes:
        snapshot_path: JSON snapshot of raw node telemetry.
        cache_ttl_seconds: How long a loaded snapshot is reused.
        latest_version_fallback: Version treated as current when a node is
            scored without a snapshot-derived latest version.
        maxmind_city_db: GeoLite2-City.mmdb location; ``None`` disables the map.
        geo_cache_ttl_seconds: How long a resolved IP location is reused.
        geo_timeout_seconds: Time allowed for each batch of geo lookups.
        map_max_nodes: Most nodes placed on the map.
        map_batch_size: Concurrent geo lookups per batch.
        preview_limit: Rows shown in an import preview.
        max_preview_errors: Validation errors shown in an import preview.
    """

    snapshot_path: str = "pnodes.json"
    cache_ttl_seconds: float = 15.0
    latest_version_fallback: str = DEFAULT_LATEST_VERSION
    maxmind_city_db: str | None = None
    geo_cache_ttl_seconds: float = 24 * 60 * 60
    geo_timeout_seconds: float = 2.0
    map_max_nodes: int = 200
    map_batch_size: int = 20
    preview_limit: int = 10
    max_preview_errors: int = 50


def _is_text(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _is_count(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


# Setting -> (acceptance test, what the setting must be).
_RULES: dict[str, tuple[Callable[[Any], bool], str]] = {
    "snapshot_path": (_is_text, "a non-empty path"),
    "cache_ttl_seconds": (
        lambda v: _is_number(v) and v >= 0,
        "a number of seconds, 0 or more",
    ),
    "latest_version_fallback": (_is_text, 'a quoted version string such as "0.8.0"'),
    "maxmind_city_db": (lambda v: v is None or _is_text(v), "a path or null"),
    "geo_cache_ttl_seconds": (
        lambda v: _is_number(v) and v >= 0,
        "a number of seconds, 0 or more",
    ),
    "geo_timeout_seconds": (
        lambda v: _is_number(v) and v > 0,
        "a number of seconds greater than 0",
    ),
    "map_max_nodes": (lambda v: _is_count(v) and v > 0, "a whole number greater than 0"),
    "map_batch_size": (lambda v: _is_count(v) and v > 0, "a whole number greater than 0"),
    "preview_limit": (lambda v: _is_count(v) and v > 0, "a whole number greater than 0"),
    "max_preview_errors": (lambda v: _is_count(v) and v >= 0, "a whole number, 0 or more"),
}


def load_config(path: Path | str | None = None) -> PnmConfig:
    """Load settings from a YAML file.

    Args:
        path: Config file to read.  When ``None``, ``~/.pnm/config.yaml``
            is used if it exists, and the defaults otherwise.

    Raises:
        FileNotFoundError: If an explicit *path* does not exist.
        ConfigError: On invalid YAML, a top level that is not a mapping,
            or a setting with a value of the wrong kind.
    """
    if path is None:
        source = DEFAULT_CONFIG_PATH.expanduser()
        if not source.is_file():
            logger.debug("No config file at %s; using defaults", source)
            return PnmConfig()
    else:
        source = Path(path).expanduser()
        if not source.is_file():
            raise FileNotFoundError(f"Config file not found: {source}")

    logger.debug("Loading config from %s", source)
    settings = _read_settings(source)
    return PnmConfig(**_checked(settings, source))


def _read_settings(source: Path) -> dict[str, Any]:
    try:
        document = yaml.safe_load(source.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {source}: {exc}") from exc

    if document is None:
        return {}
    if not isinstance(document, dict):
        raise ConfigError(
            f"Expected a YAML mapping at the top level in {source}, "
            f"got {type(document).__name__}"
        )
    return document


def _checked(settings: dict[str, Any], source: Path) -> dict[str, Any]:
    """Keep the known settings, rejecting any whose value is the wrong kind."""
    unknown = sorted(str(key) for key in settings if key not in _RULES)
    if unknown:
        logger.warning("Ignoring unknown config keys in %s: %s", source, ", ".join(unknown))

    accepted: dict[str, Any] = {}
    for key, (accepts, expected) in _RULES.items():
        if key not in settings:
            continue
        value = settings[key]
        if not accepts(value):
            raise ConfigError(f"{key} in {source} must be {expected}, got {value!r}")
        accepted[key] = value
    return accepted
