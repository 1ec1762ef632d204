"""Output renderer: rich table formatter, JSON formatter, format dispatch."""

import json
import logging
import sys
from collections.abc import Callable
from io import StringIO
from typing import Any

from rich.console import Console
from rich.table import Table

from pnm.dashboard import DashboardData
from pnm.health import health_info
from pnm.models import ImportPreview, MapNode, Node

logger = logging.getLogger(__name__)

FORMATS = ("table", "json")

# Leaderboard columns: (header, Node attribute).
_LEADERBOARD_COLUMNS = [
    ("#", "rank"),
    ("Pubkey", "pubkey"),
    ("Status", "status"),
    ("Health", "health_score"),
    ("Percentile", "percentile"),
    ("Version", "version"),
    ("Uptime (d)", "uptime"),
]

_MAP_COLUMNS = [
    ("Pubkey", "pubkey"),
    ("Country", "country"),
    ("Region", "region"),
    ("City", "city"),
    ("Status", "status"),
    ("Health", "health_score"),
]

_PUBKEY_WIDTH = 12


def _check_format(fmt: str) -> None:
    if fmt not in FORMATS:
        raise ValueError(f"Unknown output format: {fmt!r}")


def _console(file: object | None, width: int | None) -> Console:
    return Console(file=file or sys.stdout, highlight=False, width=width)


def _write_json(payload: Any, file: object | None) -> None:
    out = file or sys.stdout
    json.dump(payload, out, indent=2, default=str, ensure_ascii=False)
    out.write("\n")  # type: ignore[union-attr]


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------


def render_dashboard(
    data: DashboardData,
    fmt: str,
    *,
    top: int = 10,
    file: object | None = None,
    width: int | None = None,
) -> None:
    """Render the dashboard summary.

    Table output shows network statistics, version distribution and the
    *top* ranked nodes.  JSON output is ``DashboardData.to_dict()``.

    Raises:
        ValueError: If *fmt* is not ``"table"`` or ``"json"``.
    """
    _check_format(fmt)
    if fmt == "json":
        _write_json(data.to_dict(), file)
        return

    console = _console(file, width)
    _render_stats(console, data)
    _render_versions(console, data)
    _render_leaderboard(console, data.ranked_nodes[:top], len(data.ranked_nodes))


def _render_stats(console: Console, data: DashboardData) -> None:
    stats = data.network_stats
    table = Table(title=f"Network overview — {data.updated_at:%Y-%m-%d %H:%M:%S} UTC")
    table.add_column("Metric")
    table.add_column("Value", justify="right")

    table.add_row("Total nodes", str(stats.total_nodes))
    table.add_row("Online", str(stats.online_nodes))
    table.add_row("Offline", str(stats.offline_nodes))
    table.add_row("Public / private", f"{stats.public_nodes} / {stats.private_nodes}")
    table.add_row("Storage used", _format_bytes(stats.used_storage))
    table.add_row("Storage total", _format_bytes(stats.total_storage))
    table.add_row("Utilization", f"{stats.storage_utilization:.1f}%")
    table.add_row("Avg uptime", f"{stats.avg_uptime:.1f} days")
    info = health_info(stats.avg_health_score)
    table.add_row("Avg health", f"{stats.avg_health_score:.1f} ({info.label})")
    table.add_row("Latest version", stats.latest_version)
    console.print(table)


def _render_versions(console: Console, data: DashboardData) -> None:
    if not data.version_distribution:
        console.print("  No version data available.")
        return

    table = Table(title="Version distribution")
    table.add_column("Version")
    table.add_column("Nodes", justify="right")
    table.add_column("Share", justify="right")
    for share in data.version_distribution:
        table.add_row(share.version, str(share.count), f"{share.percentage:.1f}%")
    console.print(table)


def _render_leaderboard(console: Console, nodes: list[Node], total: int) -> None:
    table = Table(title=f"Leaderboard — top {len(nodes)} of {total} nodes")
    for header, _ in _LEADERBOARD_COLUMNS:
        table.add_column(header)

    for node in nodes:
        cells = [_fmt(getattr(node, attr)) for _, attr in _LEADERBOARD_COLUMNS]
        cells[1] = _short_pubkey(node.pubkey)
        if node.health_score is not None:
            cells[3] = f"{health_info(node.health_score).emoji} {node.health_score}"
        table.add_row(*cells)

    console.print(table)


# ---------------------------------------------------------------------------
# Map
# ---------------------------------------------------------------------------


def render_map(
    map_nodes: list[MapNode],
    fmt: str,
    *,
    summary: str | None = None,
    file: object | None = None,
    width: int | None = None,
) -> None:
    """Render geo-projected nodes as a table or a JSON array."""
    _check_format(fmt)
    if fmt == "json":
        _write_json([n.to_dict() for n in map_nodes], file)
        return

    console = _console(file, width)
    table = Table(title=summary or f"{len(map_nodes)} nodes")
    for header, _ in _MAP_COLUMNS:
        table.add_column(header)
    for node in map_nodes:
        cells = [_fmt(getattr(node, attr)) for _, attr in _MAP_COLUMNS]
        cells[0] = _short_pubkey(node.pubkey)
        table.add_row(*cells)
    console.print(table)

    if not map_nodes:
        console.print("  No nodes could be placed on the map.")


# ---------------------------------------------------------------------------
# Import preview
# ---------------------------------------------------------------------------


def render_import_preview(
    preview: ImportPreview,
    fmt: str,
    *,
    extra: dict[str, Any] | None = None,
    file: object | None = None,
    width: int | None = None,
) -> None:
    """Render an import preview: leading rows, counts and errors.

    Args:
        preview: Preview from ``importer.generate_import_preview``.
        fmt: ``"table"`` or ``"json"``.
        extra: Additional summary values (merged into the JSON payload and
            listed under the table output).
        file: Writable file object (default: ``sys.stdout``).
        width: Explicit console width (default: auto-detect).
    """
    _check_format(fmt)
    extra = extra or {}
    if fmt == "json":
        _write_json({**preview.to_dict(), **extra}, file)
        return

    console = _console(file, width)

    if preview.headers:
        table = Table(title=f"Preview — first {len(preview.rows)} of {preview.total_rows} rows")
        for header in preview.headers:
            table.add_column(header)
        for row in preview.rows:
            table.add_row(*[_fmt(row.get(h)) for h in preview.headers])
        console.print(table)

    console.print(
        f"  {preview.total_rows} rows, {preview.valid_rows} valid, "
        f"{preview.invalid_rows} invalid"
    )
    for key, value in extra.items():
        console.print(f"  {key}: {value}")

    if preview.errors:
        errors = Table(title="Validation errors")
        errors.add_column("Row", justify="right")
        errors.add_column("Field")
        errors.add_column("Message")
        errors.add_column("Value")
        for err in preview.errors:
            errors.add_row(str(err.row), err.field, err.message, _fmt(err.value))
        console.print(errors)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _fmt(value: object) -> str:
    """Format a field value for table display.

    ``None`` and ``""`` become ``"—"``, everything else is stringified.
    """
    if value is None or value == "":
        return "—"
    if isinstance(value, float):
        return f"{value:.2f}".rstrip("0").rstrip(".")
    return str(value)


def _short_pubkey(pubkey: str) -> str:
    if len(pubkey) <= _PUBKEY_WIDTH:
        return pubkey
    return f"{pubkey[:_PUBKEY_WIDTH]}…"


def _format_bytes(num: float) -> str:
    """Human-readable byte count (``1.5 GB``)."""
    value = float(num)
    if abs(value) < 1024:
        return f"{int(value)} B"
    for unit in ("KB", "MB", "GB"):
        value /= 1024
        if abs(value) < 1024:
            return f"{value:.1f} {unit}"
    return f"{value / 1024:.1f} TB"


def render_to_string(
    render_fn: Callable[..., None], *args: Any, width: int = 200, **kwargs: Any
) -> str:
    """Run a ``render_*`` function into a string — useful for testing.

    Args:
        render_fn: One of the ``render_*`` functions in this module.
        *args: Positional arguments for *render_fn*.
        width: Console width for table rendering (default: 200).
        **kwargs: Keyword arguments for *render_fn*.

    Returns:
        The rendered output as a string.
    """
    buf = StringIO()
    render_fn(*args, file=buf, width=width, **kwargs)
    return buf.getvalue()
