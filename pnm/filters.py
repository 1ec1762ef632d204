"""Map/table filters: status and health-range predicates."""

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol, TypeVar

from pnm.models import NODE_STATUSES

FULL_HEALTH_RANGE: tuple[int, int] = (0, 100)


class _Filterable(Protocol):
    status: str
    health_score: int | None


T = TypeVar("T", bound=_Filterable)


@dataclass
class MapFilters:
    """Filter state for the node map and table.

    Attributes:
        statuses: Statuses to keep.  Empty or all statuses means no status
            filtering.
        health_range: Inclusive ``(min, max)`` health score bounds.
    """

    statuses: list[str] = field(default_factory=lambda: list(NODE_STATUSES))
    health_range: tuple[int, int] = FULL_HEALTH_RANGE


DEFAULT_MAP_FILTERS = MapFilters()


def filter_nodes_by_status(nodes: Sequence[T], statuses: Sequence[str]) -> list[T]:
    """Keep nodes whose status is in *statuses*; an empty selection keeps all."""
    if not statuses:
        return list(nodes)
    wanted = set(statuses)
    return [n for n in nodes if n.status in wanted]


def filter_nodes_by_health_range(
    nodes: Sequence[T], min_score: float, max_score: float
) -> list[T]:
    """Keep nodes with ``min_score <= health_score <= max_score``.

    Unscored nodes count as 0.
    """
    return [n for n in nodes if min_score <= (n.health_score or 0) <= max_score]


def _status_filter_active(filters: MapFilters) -> bool:
    selected = set(filters.statuses)
    return bool(selected) and selected != set(NODE_STATUSES)


def _health_filter_active(filters: MapFilters) -> bool:
    low, high = filters.health_range
    return low > FULL_HEALTH_RANGE[0] or high < FULL_HEALTH_RANGE[1]


def apply_map_filters(nodes: Sequence[T], filters: MapFilters) -> list[T]:
    """Apply status and health filters (AND).  Always returns a new list."""
    filtered = list(nodes)

    if _status_filter_active(filters):
        filtered = filter_nodes_by_status(filtered, filters.statuses)

    if _health_filter_active(filters):
        low, high = filters.health_range
        filtered = filter_nodes_by_health_range(filtered, low, high)

    return filtered


def filter_summary(filters: MapFilters, total_nodes: int, filtered_count: int) -> str:
    """Describe the active filters, e.g. ``"12 of 40 nodes (online only)"``."""
    parts: list[str] = []

    if _status_filter_active(filters):
        parts.append(f"{', '.join(filters.statuses)} only")

    if _health_filter_active(filters):
        low, high = filters.health_range
        parts.append(f"health {low}-{high}")

    if not parts:
        return f"{filtered_count} nodes"
    return f"{filtered_count} of {total_nodes} nodes ({', '.join(parts)})"


def is_default_filters(filters: MapFilters) -> bool:
    """True when every status is selected and the range is exactly 0-100."""
    return (
        len(filters.statuses) == len(NODE_STATUSES)
        and set(filters.statuses) == set(NODE_STATUSES)
        and tuple(filters.health_range) == FULL_HEALTH_RANGE
    )


def reset_filters() -> MapFilters:
    return MapFilters()
