"""CLI entry point for the pnm tool."""

import logging
import sys
from pathlib import Path

import click

from pnm.config import ConfigError, PnmConfig, load_config
from pnm.dashboard import DashboardData, build_dashboard
from pnm.export import (
    EXPORT_COLUMNS,
    ExportOptions,
    all_export_columns,
    check_export_request,
    default_export_columns,
    export_nodes,
)
from pnm.filters import MapFilters, apply_map_filters, filter_summary
from pnm.geoip import GeoIPReader, GeoResolver, project_map_nodes
from pnm.health import compute_nodes
from pnm.importer import (
    ImportParseError,
    generate_import_preview,
    get_valid_nodes_from_import,
    parse_file_content,
)
from pnm.models import NODE_STATUSES
from pnm.output import FORMATS, render_dashboard, render_import_preview, render_map
from pnm.snapshot import SnapshotError, SnapshotSource, TTLCache

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("csv", "json")

_snapshot_option = click.option(
    "--snapshot",
    "-s",
    "snapshot_path",
    default=None,
    type=click.Path(dir_okay=False),
    help="Snapshot JSON file (default: snapshot_path from config).",
)

_format_option = click.option(
    "--format",
    "-f",
    "output_format",
    default="table",
    type=click.Choice(FORMATS, case_sensitive=False),
    show_default=True,
    help="Output format.",
)


def _filter_options(func):
    """Attach the shared --status / --min-health / --max-health options."""
    func = click.option(
        "--max-health",
        default=100,
        type=click.IntRange(0, 100),
        show_default=True,
        help="Highest health score to include.",
    )(func)
    func = click.option(
        "--min-health",
        default=0,
        type=click.IntRange(0, 100),
        show_default=True,
        help="Lowest health score to include.",
    )(func)
    func = click.option(
        "--status",
        "statuses",
        multiple=True,
        type=click.Choice(NODE_STATUSES, case_sensitive=False),
        help="Only include nodes with this status (repeatable).",
    )(func)
    return func


@click.group()
@click.option(
    "--config",
    "-c",
    "config_path",
    default=None,
    type=click.Path(exists=False),
    help="Path to YAML config file (default: ~/.pnm/config.yaml).",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """Score, rank and export pNode telemetry snapshots."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )

    try:
        cfg = load_config(config_path)
    except (ConfigError, FileNotFoundError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    logger.debug("Config loaded: %s", cfg)
    ctx.obj = cfg


@main.command()
@_snapshot_option
@_format_option
@click.option(
    "--top",
    "-t",
    default=10,
    type=click.IntRange(min=0),
    show_default=True,
    help="Number of leaderboard rows.",
)
@click.pass_obj
def summary(
    cfg: PnmConfig, snapshot_path: str | None, output_format: str, top: int
) -> None:
    """Show network statistics, version distribution and the leaderboard."""
    data = _load_dashboard(cfg, snapshot_path)
    render_dashboard(data, output_format, top=top)


@main.command()
@_snapshot_option
@click.option(
    "--format",
    "-f",
    "export_format",
    default="csv",
    type=click.Choice(EXPORT_FORMATS, case_sensitive=False),
    show_default=True,
    help="Export file format.",
)
@click.option(
    "--column",
    "-C",
    "columns",
    multiple=True,
    type=click.Choice(list(EXPORT_COLUMNS)),
    help="Column to export (repeatable, in order). Defaults to a standard set.",
)
@click.option("--all-columns", is_flag=True, help="Export every available column.")
@click.option("--no-header", is_flag=True, help="Omit the CSV header row.")
@click.option(
    "--include-stats", is_flag=True, help="Embed network statistics (JSON only)."
)
@_filter_options
@click.option(
    "--output",
    "-o",
    "output_path",
    default=None,
    type=click.Path(dir_okay=False),
    help="Output file; '-' for stdout (default: timestamped filename).",
)
@click.pass_obj
def export(
    cfg: PnmConfig,
    snapshot_path: str | None,
    export_format: str,
    columns: tuple[str, ...],
    all_columns: bool,
    no_header: bool,
    include_stats: bool,
    statuses: tuple[str, ...],
    min_health: int,
    max_health: int,
    output_path: str | None,
) -> None:
    """Export ranked nodes to CSV or JSON."""
    data = _load_dashboard(cfg, snapshot_path)
    filters = _build_filters(statuses, min_health, max_health)
    nodes = apply_map_filters(data.ranked_nodes, filters)

    if all_columns:
        selected = all_export_columns()
    elif columns:
        selected = list(columns)
    else:
        selected = default_export_columns()

    warning = check_export_request(nodes, selected)
    if warning:
        click.echo(f"Warning: {warning}", err=True)
        return

    options = ExportOptions(
        format=export_format.lower(),  # type: ignore[arg-type]
        columns=selected,
        filename=None if output_path in (None, "-") else output_path,
        include_header=not no_header,
    )
    exported = export_nodes(
        nodes, options, data.network_stats if include_stats else None
    )

    if output_path == "-":
        click.echo(exported.content)
        return

    Path(exported.filename).write_text(exported.content + "\n", encoding="utf-8")
    click.echo(f"Exported {len(nodes)} nodes to {exported.filename}")


@main.command()
@click.argument("file_path", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--type",
    "file_type",
    default=None,
    type=click.Choice(("csv", "json"), case_sensitive=False),
    help="Force the file format instead of detecting it.",
)
@_format_option
@click.pass_obj
def check(
    cfg: PnmConfig, file_path: str, file_type: str | None, output_format: str
) -> None:
    """Validate an import file and preview its contents."""
    content = Path(file_path).read_text(encoding="utf-8")

    try:
        rows = parse_file_content(content, file_type.lower() if file_type else None)  # type: ignore[arg-type]
    except ImportParseError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    preview = generate_import_preview(
        rows, limit=cfg.preview_limit, max_errors=cfg.max_preview_errors
    )

    # Imported nodes have no snapshot to take a latest version from.
    scored = compute_nodes(
        get_valid_nodes_from_import(rows), latest_version=cfg.latest_version_fallback
    )
    avg_health = sum(n.health_score or 0 for n in scored) / max(len(scored), 1)

    render_import_preview(
        preview,
        output_format,
        extra={
            "importable": len(scored),
            "avgHealthScore": round(avg_health, 1),
        },
    )


@main.command(name="map")
@_snapshot_option
@_format_option
@_filter_options
@click.pass_obj
def map_command(
    cfg: PnmConfig,
    snapshot_path: str | None,
    output_format: str,
    statuses: tuple[str, ...],
    min_health: int,
    max_health: int,
) -> None:
    """Place nodes on the map using the GeoLite2-City database."""
    if not cfg.maxmind_city_db:
        click.echo("Error: maxmind_city_db is not configured", err=True)
        sys.exit(1)

    data = _load_dashboard(cfg, snapshot_path)
    filters = _build_filters(statuses, min_health, max_health)

    reader = GeoIPReader(city_db_path=cfg.maxmind_city_db)
    try:
        if not reader.available:
            click.echo(f"Error: cannot open {cfg.maxmind_city_db}", err=True)
            sys.exit(1)
        resolver = GeoResolver(reader, TTLCache(cfg.geo_cache_ttl_seconds))
        projected = project_map_nodes(
            data.nodes,
            resolver,
            max_nodes=cfg.map_max_nodes,
            batch_size=cfg.map_batch_size,
            timeout=cfg.geo_timeout_seconds,
        )
    finally:
        reader.close()

    shown = apply_map_filters(projected, filters)
    render_map(
        shown,
        output_format,
        summary=filter_summary(filters, len(projected), len(shown)),
    )


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _load_dashboard(cfg: PnmConfig, snapshot_path: str | None) -> DashboardData:
    """Load the snapshot and run the pipeline, exiting on snapshot errors."""
    source = SnapshotSource(
        snapshot_path or cfg.snapshot_path, TTLCache(cfg.cache_ttl_seconds)
    )
    try:
        raw = source.load()
    except SnapshotError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)
    return build_dashboard(raw)


def _build_filters(
    statuses: tuple[str, ...], min_health: int, max_health: int
) -> MapFilters:
    selected = [s.lower() for s in statuses] or list(NODE_STATUSES)
    return MapFilters(statuses=selected, health_range=(min_health, max_health))
