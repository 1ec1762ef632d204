"""Export formatter: CSV and JSON renderings of a node collection."""

import json
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

from pnm.csvtext import escape_csv_value, parse_csv_records
from pnm.models import NetworkStats, Node

logger = logging.getLogger(__name__)

ExportFormat = Literal["csv", "json"]

# Column key -> (header label, Node attribute), in display order.
EXPORT_COLUMNS: dict[str, tuple[str, str]] = {
    "rank": ("Rank", "rank"),
    "pubkey": ("Pubkey", "pubkey"),
    "status": ("Status", "status"),
    "healthScore": ("Health Score", "health_score"),
    "uptime": ("Uptime (days)", "uptime"),
    "storageUsed": ("Storage Used", "storage_used"),
    "storageTotal": ("Storage Total", "storage_total"),
    "storageUsagePercent": ("Storage Usage %", "storage_usage_percent"),
    "version": ("Version", "version"),
    "ip": ("IP Address", "ip"),
    "isPublic": ("Public Access", "is_public"),
    "rpcPort": ("RPC Port", "rpc_port"),
    "lastSeen": ("Last Seen", "last_seen"),
    "percentile": ("Percentile", "percentile"),
}

_DEFAULT_COLUMNS = [
    "rank",
    "pubkey",
    "status",
    "healthScore",
    "uptime",
    "storageUsed",
    "storageTotal",
    "version",
]

_MIME_TYPES: dict[str, str] = {
    "csv": "text/csv;charset=utf-8",
    "json": "application/json;charset=utf-8",
}


@dataclass
class ExportOptions:
    """What to export and how.

    Attributes:
        format: ``"csv"`` or ``"json"``.
        columns: Column keys from ``EXPORT_COLUMNS``, in output order.
        filename: Target filename; generated from a timestamp when ``None``.
        include_header: Whether CSV output starts with a header row.
    """

    format: ExportFormat = "csv"
    columns: list[str] = field(default_factory=lambda: list(_DEFAULT_COLUMNS))
    filename: str | None = None
    include_header: bool = True


@dataclass
class ExportFile:
    """Rendered export ready to be written or downloaded."""

    content: str
    filename: str
    mime_type: str


def default_export_columns() -> list[str]:
    return list(_DEFAULT_COLUMNS)


def all_export_columns() -> list[str]:
    return list(EXPORT_COLUMNS)


def generate_filename(
    fmt: str, prefix: str = "xandeum-nodes", now: datetime | None = None
) -> str:
    """Build a timestamped filename, e.g. ``xandeum-nodes-2026-01-15T12-00-00.csv``."""
    moment = now or datetime.now(UTC)
    stamp = moment.strftime("%Y-%m-%dT%H-%M-%S")
    return f"{prefix}-{stamp}.{fmt}"


def check_export_request(nodes: list[Node], columns: list[str]) -> str | None:
    """Return a user-facing warning if the export would be empty, else ``None``."""
    if not columns:
        return "Select at least one column to export."
    if not nodes:
        return "There are no nodes to export."
    return None


def _check_columns(columns: list[str]) -> None:
    unknown = [c for c in columns if c not in EXPORT_COLUMNS]
    if unknown:
        known = ", ".join(EXPORT_COLUMNS)
        raise ValueError(f"Unknown export column(s): {', '.join(unknown)}. Known columns: {known}")


def format_node_value(node: Node, column: str) -> str | int | float:
    """Format one node field for export.

    Uptime and storage usage % are rounded to 2 decimals, booleans become
    ``"Yes"``/``"No"`` and an unranked node shows ``"-"`` as its rank.
    """
    value = getattr(node, EXPORT_COLUMNS[column][1])

    if column in ("storageUsed", "storageTotal", "healthScore"):
        return value if isinstance(value, (int, float)) else 0
    if column in ("uptime", "storageUsagePercent"):
        return round(value, 2) if isinstance(value, (int, float)) else 0
    if column == "isPublic":
        return "Yes" if value else "No"
    if column == "rank":
        return value if isinstance(value, int) else "-"
    return str(value) if value is not None else ""


def export_to_csv(nodes: list[Node], options: ExportOptions) -> str:
    """Render *nodes* as CSV text with the selected columns.

    Raises:
        ValueError: If a column key is unknown.
    """
    _check_columns(options.columns)
    lines: list[str] = []

    if options.include_header:
        lines.append(",".join(escape_csv_value(EXPORT_COLUMNS[c][0]) for c in options.columns))

    for node in nodes:
        lines.append(
            ",".join(escape_csv_value(format_node_value(node, c)) for c in options.columns)
        )

    return "\n".join(lines)


def parse_csv_to_objects(csv_text: str) -> list[dict[str, str]]:
    """Parse exported CSV back into dicts keyed by header label.

    Values are not trimmed, so exported strings come back unchanged.  Only
    empty lines are skipped; a row of empty values is still a row.  Text
    without at least a header and one data row yields ``[]``.
    """
    records = [r for r in parse_csv_records(csv_text) if r != [""]]
    if len(records) < 2:
        return []

    headers = records[0]
    return [
        {header: record[idx] if idx < len(record) else "" for idx, header in enumerate(headers)}
        for record in records[1:]
    ]


def export_to_json(
    nodes: list[Node],
    options: ExportOptions,
    network_stats: NetworkStats | None = None,
    exported_at: datetime | None = None,
) -> str:
    """Render *nodes* as a JSON document with export metadata.

    The document has ``exportedAt``, ``totalNodes``, ``networkStats`` (only
    when given) and ``nodes`` (each projected onto the selected columns).

    Raises:
        ValueError: If a column key is unknown.
    """
    _check_columns(options.columns)
    moment = exported_at or datetime.now(UTC)

    payload: dict[str, Any] = {
        "exportedAt": moment.isoformat(),
        "totalNodes": len(nodes),
    }
    if network_stats is not None:
        payload["networkStats"] = network_stats.to_dict()
    payload["nodes"] = [
        {c: format_node_value(node, c) for c in options.columns} for node in nodes
    ]

    return json.dumps(payload, indent=2, ensure_ascii=False)


def parse_json_export(text: str) -> dict[str, Any]:
    """Parse a JSON export back into ``{"nodes": [...], "networkStats": ...}``."""
    data = json.loads(text)
    return {
        "nodes": data.get("nodes") or [],
        "networkStats": data.get("networkStats"),
    }


def export_nodes(
    nodes: list[Node],
    options: ExportOptions,
    network_stats: NetworkStats | None = None,
) -> ExportFile:
    """Render an export in the requested format.

    Callers are expected to have checked ``check_export_request`` first.

    Raises:
        ValueError: If the format or a column key is unknown.
    """
    if options.format == "csv":
        content = export_to_csv(nodes, options)
    elif options.format == "json":
        content = export_to_json(nodes, options, network_stats)
    else:
        raise ValueError(f"Unknown export format: {options.format!r}")

    filename = options.filename or generate_filename(options.format)
    logger.debug("Exported %d nodes as %s (%s)", len(nodes), options.format, filename)
    return ExportFile(content=content, filename=filename, mime_type=_MIME_TYPES[options.format])
