"""Tests for pnm.filters — map/table status and health filters."""

from pnm.filters import (
    DEFAULT_MAP_FILTERS,
    MapFilters,
    apply_map_filters,
    filter_nodes_by_health_range,
    filter_nodes_by_status,
    filter_summary,
    is_default_filters,
    reset_filters,
)
from pnm.models import MapNode, Node


def _make_node(pubkey: str, status: str = "online", score: int | None = 50) -> Node:
    return Node(pubkey=pubkey, status=status, health_score=score)  # type: ignore[arg-type]


NODES = [
    _make_node("a", "online", 90),
    _make_node("b", "offline", 30),
    _make_node("c", "online", 60),
    _make_node("d", "offline", None),
]


class TestFilterByStatus:
    def test_keeps_matching(self) -> None:
        assert [n.pubkey for n in filter_nodes_by_status(NODES, ["online"])] == ["a", "c"]

    def test_empty_selection_keeps_all(self) -> None:
        assert filter_nodes_by_status(NODES, []) == NODES

    def test_returns_new_list(self) -> None:
        assert filter_nodes_by_status(NODES, []) is not NODES


class TestFilterByHealthRange:
    def test_inclusive_bounds(self) -> None:
        kept = filter_nodes_by_health_range(NODES, 30, 60)
        assert [n.pubkey for n in kept] == ["b", "c"]

    def test_unscored_counts_as_zero(self) -> None:
        assert [n.pubkey for n in filter_nodes_by_health_range(NODES, 0, 0)] == ["d"]


class TestApplyMapFilters:
    def test_defaults_keep_everything(self) -> None:
        result = apply_map_filters(NODES, MapFilters())
        assert result == NODES
        assert result is not NODES

    def test_status_and_health_combined(self) -> None:
        filters = MapFilters(statuses=["online"], health_range=(70, 100))
        assert [n.pubkey for n in apply_map_filters(NODES, filters)] == ["a"]

    def test_empty_statuses_means_no_status_filter(self) -> None:
        filters = MapFilters(statuses=[], health_range=(50, 100))
        assert [n.pubkey for n in apply_map_filters(NODES, filters)] == ["a", "c"]

    def test_works_on_map_nodes(self) -> None:
        map_nodes = [
            MapNode(pubkey="x", lat=1.0, lng=2.0, country="PT", region="Lisbon",
                    status="online", health_score=20, version="0.8.0"),
            MapNode(pubkey="y", lat=1.0, lng=2.0, country="PT", region="Lisbon",
                    status="offline", health_score=80, version="0.8.0"),
        ]
        filters = MapFilters(statuses=["offline"])
        assert [n.pubkey for n in apply_map_filters(map_nodes, filters)] == ["y"]

    def test_filtering_is_monotone(self) -> None:
        wide = apply_map_filters(NODES, MapFilters(health_range=(20, 100)))
        narrow = apply_map_filters(NODES, MapFilters(health_range=(50, 80)))
        assert {n.pubkey for n in narrow} <= {n.pubkey for n in wide}


class TestFilterSummary:
    def test_no_filters(self) -> None:
        assert filter_summary(MapFilters(), 4, 4) == "4 nodes"

    def test_status_only(self) -> None:
        filters = MapFilters(statuses=["online"])
        assert filter_summary(filters, 4, 2) == "2 of 4 nodes (online only)"

    def test_status_and_health(self) -> None:
        filters = MapFilters(statuses=["offline"], health_range=(40, 80))
        assert filter_summary(filters, 10, 1) == "1 of 10 nodes (offline only, health 40-80)"


class TestDefaults:
    def test_default_filters(self) -> None:
        assert is_default_filters(DEFAULT_MAP_FILTERS)
        assert is_default_filters(reset_filters())

    def test_order_does_not_matter(self) -> None:
        assert is_default_filters(MapFilters(statuses=["offline", "online"]))

    def test_non_default(self) -> None:
        assert not is_default_filters(MapFilters(statuses=["online"]))
        assert not is_default_filters(MapFilters(health_range=(0, 99)))
        assert not is_default_filters(MapFilters(statuses=[]))

    def test_reset_returns_fresh_instance(self) -> None:
        first = reset_filters()
        first.statuses.remove("online")
        assert reset_filters().statuses == ["online", "offline"]
