"""Aggregator: network totals, averages and version distribution."""

import logging

from pnm.models import NetworkStats, Node, VersionShare
from pnm.versions import get_latest_version

logger = logging.getLogger(__name__)


def get_network_stats(nodes: list[Node]) -> NetworkStats:
    """Compute network-wide statistics for a snapshot.

    Node counts cover the whole snapshot.  Storage, uptime, health and
    public/private figures cover online nodes only.  Ratios whose
    denominator is zero come out as ``0`` rather than raising.

    Args:
        nodes: Scored nodes (``health_score`` may be ``None``; it counts as 0).

    Returns:
        A populated ``NetworkStats``.
    """
    online = [n for n in nodes if n.status == "online"]
    online_count = len(online)
    divisor = max(online_count, 1)

    total_storage = sum(n.storage_total for n in online)
    used_storage = sum(n.storage_used for n in online)
    public = sum(1 for n in online if n.is_public)

    utilization = used_storage / total_storage * 100 if total_storage > 0 else 0.0

    return NetworkStats(
        total_nodes=len(nodes),
        online_nodes=online_count,
        offline_nodes=len(nodes) - online_count,
        total_storage=total_storage,
        used_storage=used_storage,
        storage_utilization=utilization,
        avg_uptime=sum(n.uptime for n in online) / divisor,
        avg_health_score=sum(n.health_score or 0 for n in online) / divisor,
        public_nodes=public,
        private_nodes=online_count - public,
        latest_version=get_latest_version(nodes),
    )


def get_nodes_by_version(nodes: list[Node]) -> list[VersionShare]:
    """Count nodes per exact version string.

    Percentages are over *all* nodes, offline ones included.

    Returns:
        One ``VersionShare`` per distinct version, sorted by count
        descending (ties keep first-seen order).
    """
    counts: dict[str, int] = {}
    for node in nodes:
        counts[node.version] = counts.get(node.version, 0) + 1

    total = len(nodes)
    shares = [
        VersionShare(
            version=version,
            count=count,
            percentage=count / total * 100 if total else 0.0,
        )
        for version, count in counts.items()
    ]
    return sorted(shares, key=lambda share: share.count, reverse=True)


def aggregate_to_meta(nodes: list[Node]) -> dict:
    """Compute stats and version distribution as plain dicts.

    Convenience wrapper for JSON output.

    Returns:
        A dict with keys ``networkStats`` and ``versionDistribution``.
    """
    return {
        "networkStats": get_network_stats(nodes).to_dict(),
        "versionDistribution": [s.to_dict() for s in get_nodes_by_version(nodes)],
    }
