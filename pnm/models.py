"""Data models: Node, NetworkStats, VersionShare, map and import records."""

import logging
import math
from dataclasses import MISSING, dataclass, field, fields
from typing import Any, Literal

logger = logging.getLogger(__name__)

NodeStatus = Literal["online", "offline"]

NODE_STATUSES: tuple[str, ...] = ("online", "offline")

DEFAULT_RPC_PORT = 8899

# Wire (camelCase) key -> Node attribute.  Snapshot files, imports and
# exports all use the wire names.
_WIRE_TO_ATTR: dict[str, str] = {
    "pubkey": "pubkey",
    "status": "status",
    "version": "version",
    "storageUsed": "storage_used",
    "storageTotal": "storage_total",
    "storageCommitted": "storage_committed",
    "storageUsagePercent": "storage_usage_percent",
    "uptime": "uptime",
    "ip": "ip",
    "address": "address",
    "isPublic": "is_public",
    "rpcPort": "rpc_port",
    "lastSeen": "last_seen",
    "lastSeenTimestamp": "last_seen_timestamp",
    "healthScore": "health_score",
    "rank": "rank",
    "percentile": "percentile",
    "percentileRank": "percentile_rank",
}

# Derived fields, omitted from ``to_dict`` until they are computed.
_ENRICHMENT_ATTRS = ("health_score", "rank", "percentile", "percentile_rank")

_FLOAT_ATTRS = (
    "storage_used",
    "storage_total",
    "storage_committed",
    "storage_usage_percent",
    "uptime",
    "percentile_rank",
)
_INT_ATTRS = ("rpc_port", "last_seen_timestamp", "health_score", "rank")
TRUTHY_VALUES = ("true", "yes", "1")


def to_number(value: Any) -> float | None:
    """Convert *value* to a finite float, or ``None`` if it isn't numeric."""
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _coerce_attr(attr: str, value: Any, default: Any) -> Any:
    """Coerce one wire value to the type of Node attribute *attr*."""
    if value is None:
        return default
    if attr in _FLOAT_ATTRS:
        number = to_number(value)
        if number is None:
            return default
        return value if type(value) is int else number
    if attr in _INT_ATTRS:
        number = to_number(value)
        return int(number) if number is not None else default
    if attr == "is_public":
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in TRUTHY_VALUES
    return str(value)


@dataclass
class Node:
    """A pNode as read from a telemetry snapshot.

    The raw fields come straight from the snapshot.  The enrichment fields
    are filled in by the pipeline: ``health_score`` by
    ``health.compute_nodes`` and the ranking fields by
    ``ranking.rank_nodes``.

    Attributes:
        pubkey: Node public key; unique within a snapshot.
        status: ``"online"`` or ``"offline"``.
        version: Dotted software version string.
        storage_used: Bytes in use.
        storage_total: Bytes available to the node.
        storage_committed: Bytes committed to the network.
        storage_usage_percent: Usage percentage as reported by the node.
        uptime: Uptime in days.
        ip: IPv4 address.
        address: ``ip:port`` gossip address.
        is_public: Whether the RPC endpoint is publicly reachable.
        rpc_port: RPC port.
        last_seen: ISO-8601 timestamp of the last heartbeat.
        last_seen_timestamp: Same instant as epoch milliseconds.
        health_score: Composite 0-100 score, once computed.
        rank: 1-based position after ranking.
        percentile: Percentile bucket label (e.g. ``"Top 10%"``).
        percentile_rank: Percentile value in (0, 100].
    """

    # -- Raw telemetry --
    pubkey: str
    status: NodeStatus
    version: str = "0.0.0"
    storage_used: float = 0
    storage_total: float = 0
    storage_committed: float = 0
    storage_usage_percent: float = 0
    uptime: float = 0
    ip: str = ""
    address: str = ""
    is_public: bool = False
    rpc_port: int = DEFAULT_RPC_PORT
    last_seen: str = ""
    last_seen_timestamp: int = 0

    # -- Enrichment (set by the pipeline) --
    health_score: int | None = None
    rank: int | None = None
    percentile: str | None = None
    percentile_rank: float | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Node":
        """Build a ``Node`` from a camelCase mapping.

        Values are coerced to the field types.  A ``null`` or unparseable
        value falls back to the field default, so numeric strings such as
        ``"30"`` are read as numbers and ``"storageTotal": null`` as ``0``.
        Unknown keys are ignored.

        Raises:
            KeyError: If ``pubkey`` or ``status`` is missing or ``null``.
        """
        defaults = {f.name: f.default for f in fields(cls) if f.default is not MISSING}
        kwargs: dict[str, Any] = {}
        for wire_key, attr in _WIRE_TO_ATTR.items():
            if wire_key in data:
                kwargs[attr] = _coerce_attr(attr, data[wire_key], defaults.get(attr))

        for required in ("pubkey", "status"):
            if kwargs.get(required) is None:
                raise KeyError(required)

        unknown = set(data) - set(_WIRE_TO_ATTR)
        if unknown:
            logger.debug("Ignoring unknown node keys: %s", ", ".join(sorted(unknown)))

        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        """Return the node as a camelCase dict.

        Enrichment fields that have not been computed are left out.
        """
        out: dict[str, Any] = {}
        for wire_key, attr in _WIRE_TO_ATTR.items():
            value = getattr(self, attr)
            if value is None and attr in _ENRICHMENT_ATTRS:
                continue
            out[wire_key] = value
        return out


@dataclass
class NetworkStats:
    """Network-wide aggregates for one snapshot.

    Storage, uptime, health and public/private figures cover online nodes
    only; ``total_nodes`` and ``offline_nodes`` cover the whole snapshot.
    """

    total_nodes: int = 0
    online_nodes: int = 0
    offline_nodes: int = 0
    total_storage: float = 0
    used_storage: float = 0
    storage_utilization: float = 0.0
    avg_uptime: float = 0.0
    avg_health_score: float = 0.0
    public_nodes: int = 0
    private_nodes: int = 0
    latest_version: str = "0.0.0"

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalNodes": self.total_nodes,
            "onlineNodes": self.online_nodes,
            "offlineNodes": self.offline_nodes,
            "totalStorage": self.total_storage,
            "usedStorage": self.used_storage,
            "storageUtilization": self.storage_utilization,
            "avgUptime": self.avg_uptime,
            "avgHealthScore": self.avg_health_score,
            "publicNodes": self.public_nodes,
            "privateNodes": self.private_nodes,
            "latestVersion": self.latest_version,
        }


@dataclass
class VersionShare:
    """How many nodes run one exact version string."""

    version: str
    count: int
    percentage: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "count": self.count,
            "percentage": self.percentage,
        }


@dataclass
class GeoLocation:
    """Coarse location of an IP address."""

    lat: float
    lng: float
    country: str
    region: str
    city: str | None = None


@dataclass
class MapNode:
    """A node projected onto the map."""

    pubkey: str
    lat: float
    lng: float
    country: str
    region: str
    status: NodeStatus
    health_score: int
    version: str
    city: str | None = None
    last_seen: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "pubkey": self.pubkey,
            "lat": self.lat,
            "lng": self.lng,
            "country": self.country,
            "region": self.region,
            "city": self.city,
            "status": self.status,
            "healthScore": self.health_score,
            "version": self.version,
            "lastSeen": self.last_seen,
        }


# ---------------------------------------------------------------------------
# Import records
# ---------------------------------------------------------------------------


@dataclass
class RowError:
    """A single validation failure in an import file.

    Attributes:
        row: 1-based data row number (the header is not counted).
        field: Field name that failed.
        message: Human-readable explanation.
        value: The offending raw value.
    """

    row: int
    field: str
    message: str
    value: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "row": self.row,
            "field": self.field,
            "message": self.message,
            "value": self.value,
        }


@dataclass
class ImportValidationResult:
    is_valid: bool
    errors: list[RowError] = field(default_factory=list)
    valid_rows: int = 0
    invalid_rows: int = 0


@dataclass
class ImportPreview:
    """First rows of an import file plus its validation summary."""

    headers: list[str]
    rows: list[dict[str, Any]]
    total_rows: int
    valid_rows: int
    invalid_rows: int
    errors: list[RowError] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "headers": self.headers,
            "rows": self.rows,
            "totalRows": self.total_rows,
            "validRows": self.valid_rows,
            "invalidRows": self.invalid_rows,
            "errors": [e.to_dict() for e in self.errors],
        }


@dataclass
class ImportResult:
    """Outcome of merging validated import rows into an existing node set."""

    success: bool
    imported: int = 0
    updated: int = 0
    skipped: int = 0
    errors: list[RowError] = field(default_factory=list)
