"""Tests for the output renderer."""

import json
from datetime import UTC, datetime

import pytest

from pnm.dashboard import build_dashboard
from pnm.importer import generate_import_preview
from pnm.models import MapNode, Node
from pnm.output import (
    _fmt,
    _format_bytes,
    render_dashboard,
    render_import_preview,
    render_map,
    render_to_string,
)

NOW = datetime(2026, 1, 15, 12, 0, 0, tzinfo=UTC)
LONG_PUBKEY = "8Xq7mVrP3nTz2aWb5cYd9eUf4gRh6iSj1kLm"

# -- Fixtures ----------------------------------------------------------------


def _make_node(**overrides: object) -> Node:
    """Create a ``Node`` with sensible defaults, overridable."""
    defaults: dict = {
        "pubkey": "node-a",
        "status": "online",
        "version": "0.8.0",
        "uptime": 30,
        "storage_used": 512 * 1024**3,
        "storage_committed": 1024**4,
        "storage_total": 1024**4,
        "is_public": True,
    }
    defaults.update(overrides)
    return Node(**defaults)


def _dashboard():
    return build_dashboard(
        [
            _make_node(pubkey="node-a"),
            _make_node(pubkey="node-b", version="0.7.2", is_public=False),
            _make_node(pubkey=LONG_PUBKEY, status="offline", uptime=2),
        ],
        now=NOW,
    )


def _map_nodes() -> list[MapNode]:
    return [
        MapNode(
            pubkey="node-a",
            lat=50.11,
            lng=8.68,
            country="Germany",
            region="Hesse",
            city="Frankfurt",
            status="online",
            health_score=100,
            version="0.8.0",
        ),
        MapNode(
            pubkey="node-b",
            lat=38.72,
            lng=-9.14,
            country="Portugal",
            region="Lisbon",
            city=None,
            status="offline",
            health_score=35,
            version="0.7.2",
        ),
    ]


# -- Format dispatch ---------------------------------------------------------


class TestFormatDispatch:
    """Every renderer rejects unknown formats."""

    def test_dashboard_unknown_format_raises(self) -> None:
        with pytest.raises(ValueError, match="Unknown output format"):
            render_to_string(render_dashboard, _dashboard(), "xml")

    def test_map_unknown_format_raises(self) -> None:
        with pytest.raises(ValueError, match="Unknown output format"):
            render_to_string(render_map, [], "xml")

    def test_preview_unknown_format_raises(self) -> None:
        with pytest.raises(ValueError, match="Unknown output format"):
            render_to_string(render_import_preview, generate_import_preview([]), "xml")


# -- Dashboard ---------------------------------------------------------------


class TestDashboardTable:
    """Table output for the summary command."""

    def test_contains_overview(self) -> None:
        output = render_to_string(render_dashboard, _dashboard(), "table")
        assert "Network overview" in output
        assert "Total nodes" in output
        assert "Latest version" in output

    def test_storage_is_human_readable(self) -> None:
        output = render_to_string(render_dashboard, _dashboard(), "table")
        # Two online nodes: 1 TB used of 2 TB.
        assert "1.0 TB" in output
        assert "2.0 TB" in output
        assert "50.0%" in output

    def test_contains_version_distribution(self) -> None:
        output = render_to_string(render_dashboard, _dashboard(), "table")
        assert "Version distribution" in output
        assert "0.7.2" in output
        assert "66.7%" in output

    def test_leaderboard_rows(self) -> None:
        output = render_to_string(render_dashboard, _dashboard(), "table")
        assert "Leaderboard" in output
        assert "top 3 of 3 nodes" in output
        assert "node-a" in output
        assert "Top 10%" in output

    def test_long_pubkeys_are_shortened(self) -> None:
        output = render_to_string(render_dashboard, _dashboard(), "table")
        assert f"{LONG_PUBKEY[:12]}…" in output
        assert LONG_PUBKEY not in output

    def test_top_limits_leaderboard(self) -> None:
        output = render_to_string(render_dashboard, _dashboard(), "table", top=1)
        assert "top 1 of 3 nodes" in output
        assert "node-b" not in output

    def test_empty_snapshot(self) -> None:
        output = render_to_string(render_dashboard, build_dashboard([], now=NOW), "table")
        assert "No version data available" in output
        assert "top 0 of 0 nodes" in output


class TestDashboardJson:
    """JSON output for the summary command."""

    def test_valid_json_with_expected_keys(self) -> None:
        data = json.loads(render_to_string(render_dashboard, _dashboard(), "json"))
        assert data["networkStats"]["totalNodes"] == 3
        assert len(data["rankedNodes"]) == 3
        assert data["rankedNodes"][0]["rank"] == 1
        assert data["updatedAt"] == NOW.isoformat()

    def test_json_ignores_top(self) -> None:
        data = json.loads(render_to_string(render_dashboard, _dashboard(), "json", top=1))
        assert len(data["rankedNodes"]) == 3


# -- Map ---------------------------------------------------------------------


class TestMap:
    def test_table_rows(self) -> None:
        output = render_to_string(render_map, _map_nodes(), "table", summary="2 nodes")
        assert "2 nodes" in output
        assert "Frankfurt" in output
        assert "Portugal" in output

    def test_missing_city_shows_dash(self) -> None:
        output = render_to_string(render_map, _map_nodes()[1:], "table")
        assert "—" in output

    def test_empty_map_message(self) -> None:
        output = render_to_string(render_map, [], "table")
        assert "No nodes could be placed on the map" in output

    def test_json(self) -> None:
        data = json.loads(render_to_string(render_map, _map_nodes(), "json"))
        assert [n["pubkey"] for n in data] == ["node-a", "node-b"]
        assert data[0]["healthScore"] == 100
        assert data[1]["city"] is None


# -- Import preview ----------------------------------------------------------


class TestImportPreview:
    def _preview(self):
        rows = [
            {"pubkey": LONG_PUBKEY, "status": "online"},
            {"pubkey": "short", "status": "sideways"},
        ]
        return generate_import_preview(rows)

    def test_table(self) -> None:
        output = render_to_string(
            render_import_preview, self._preview(), "table", extra={"importable": 1}
        )
        assert "Preview" in output
        assert "2 rows, 1 valid, 1 invalid" in output
        assert "importable: 1" in output
        assert "Validation errors" in output
        assert "sideways" in output

    def test_json_merges_extra(self) -> None:
        output = render_to_string(
            render_import_preview, self._preview(), "json", extra={"importable": 1}
        )
        data = json.loads(output)
        assert data["totalRows"] == 2
        assert data["validRows"] == 1
        assert data["invalidRows"] == 1
        assert data["importable"] == 1
        assert {e["field"] for e in data["errors"]} == {"pubkey", "status"}

    def test_empty_preview(self) -> None:
        output = render_to_string(render_import_preview, generate_import_preview([]), "table")
        assert "0 rows, 0 valid, 0 invalid" in output
        assert "Validation errors" not in output


# -- Helpers -----------------------------------------------------------------


class TestHelpers:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [(None, "—"), ("", "—"), (12.5, "12.5"), (30.0, "30"), (1.234, "1.23"), (7, "7")],
    )
    def test_fmt(self, value: object, expected: str) -> None:
        assert _fmt(value) == expected

    @pytest.mark.parametrize(
        ("num", "expected"),
        [(0, "0 B"), (1023, "1023 B"), (1536, "1.5 KB"), (5 * 1024**3, "5.0 GB"),
         (3 * 1024**4, "3.0 TB")],
    )
    def test_format_bytes(self, num: float, expected: str) -> None:
        assert _format_bytes(num) == expected
