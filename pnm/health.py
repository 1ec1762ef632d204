"""Health scoring and the status/colour derivations built on it."""

import dataclasses
import logging
import math
from dataclasses import dataclass
from typing import Literal

from pnm.models import Node
from pnm.versions import get_latest_version

logger = logging.getLogger(__name__)

HealthStatus = Literal["excellent", "good", "fair", "poor"]

# Used when the caller has no snapshot-derived latest version.
DEFAULT_LATEST_VERSION = "0.8.0"

# -- Score weights --
UPTIME_WEIGHT = 40
UPTIME_SATURATION_DAYS = 30
STORAGE_WEIGHT = 25
VERSION_CURRENT_POINTS = 20
VERSION_STALE_POINTS = 10
PUBLIC_POINTS = 15
PRIVATE_POINTS = 5
MAX_SCORE = 100

# ---------------------------------------------------------------------------
# Colours (hex for map markers / charts)
# ---------------------------------------------------------------------------

HEALTH_COLORS: dict[str, str] = {
    "excellent": "#10b981",
    "good": "#f59e0b",
    "fair": "#f97316",
    "poor": "#ef4444",
}

STATUS_COLORS: dict[str, str] = {
    "online": "#10b981",
    "offline": "#ef4444",
}

_HEALTH_LABELS: dict[str, str] = {
    "excellent": "Excellent",
    "good": "Good",
    "fair": "Fair",
    "poor": "Poor",
}

_HEALTH_EMOJI: dict[str, str] = {
    "excellent": "🟢",
    "good": "🟡",
    "fair": "🟠",
    "poor": "🔴",
}

_BADGE_VARIANTS: dict[str, str] = {
    "excellent": "default",
    "good": "secondary",
    "fair": "outline",
    "poor": "destructive",
}

MAP_LEGEND_ITEMS: list[dict[str, str]] = [
    {"status": "excellent", "label": "Excellent (80-100)", "color": HEALTH_COLORS["excellent"]},
    {"status": "good", "label": "Good (60-79)", "color": HEALTH_COLORS["good"]},
    {"status": "fair", "label": "Fair (40-59)", "color": HEALTH_COLORS["fair"]},
    {"status": "poor", "label": "Poor (0-39)", "color": HEALTH_COLORS["poor"]},
]


@dataclass(frozen=True)
class HealthInfo:
    """Display attributes for a health score."""

    status: HealthStatus
    label: str
    emoji: str
    hex: str


def calculate_health_score(
    node: Node, latest_version: str = DEFAULT_LATEST_VERSION
) -> int:
    """Compute a node's 0-100 health score.

    Four weighted components, each capped before summation:

    * **Uptime** (40) — linear up to 30 days.
    * **Storage efficiency** (25) — committed / total storage; a node
      reporting no total storage scores 0 here.
    * **Version currency** (20) — 20 on exactly *latest_version*, else 10.
    * **Public access** (15) — 15 if public, else 5.

    Args:
        node: Node to score.
        latest_version: Version string that counts as current.  Compared by
            exact string equality.

    Returns:
        Integer score in ``[0, 100]``, rounded half up.
    """
    uptime = _finite(node.uptime)
    storage_total = _finite(node.storage_total)
    storage_committed = _finite(node.storage_committed)

    uptime_points = min(max(uptime, 0.0) / UPTIME_SATURATION_DAYS * UPTIME_WEIGHT, UPTIME_WEIGHT)

    if storage_total > 0:
        efficiency = storage_committed / storage_total
        storage_points = min(max(efficiency, 0.0), 1.0) * STORAGE_WEIGHT
    else:
        storage_points = 0.0

    version_points = (
        VERSION_CURRENT_POINTS if node.version == latest_version else VERSION_STALE_POINTS
    )
    public_points = PUBLIC_POINTS if node.is_public else PRIVATE_POINTS

    total = uptime_points + storage_points + version_points + public_points
    return int(math.floor(min(total, MAX_SCORE) + 0.5))


def _finite(value: object) -> float:
    """Return *value* as a float, or ``0.0`` if it is not a finite number."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    number = float(value)
    return number if math.isfinite(number) else 0.0


def compute_nodes(nodes: list[Node], latest_version: str | None = None) -> list[Node]:
    """Return copies of *nodes* with ``health_score`` filled in.

    Unless *latest_version* is given, the newest version present in *nodes*
    counts as current.  The input list and its nodes are left untouched.
    """
    latest = latest_version or get_latest_version(nodes)
    logger.debug("Scoring %d nodes against latest version %s", len(nodes), latest)
    return [
        dataclasses.replace(node, health_score=calculate_health_score(node, latest))
        for node in nodes
    ]


def health_status(score: float) -> HealthStatus:
    """Classify a score into one of the four health buckets."""
    if score >= 80:
        return "excellent"
    if score >= 60:
        return "good"
    if score >= 40:
        return "fair"
    return "poor"


def health_info(score: float) -> HealthInfo:
    status = health_status(score)
    return HealthInfo(
        status=status,
        label=_HEALTH_LABELS[status],
        emoji=_HEALTH_EMOJI[status],
        hex=HEALTH_COLORS[status],
    )


def health_color(score: float) -> str:
    """Hex colour for a score, used for map markers."""
    return HEALTH_COLORS[health_status(score)]


def health_badge_variant(score: float) -> str:
    return _BADGE_VARIANTS[health_status(score)]


def status_color(status: str) -> str:
    return STATUS_COLORS[status]
