"""Dashboard assembly: raw snapshot -> scored, ranked nodes plus aggregates."""

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime

from pnm.aggregator import get_network_stats, get_nodes_by_version
from pnm.health import compute_nodes
from pnm.models import NetworkStats, Node, VersionShare
from pnm.ranking import rank_nodes

logger = logging.getLogger(__name__)


@dataclass
class DashboardData:
    """Everything the dashboard renders for one snapshot.

    Attributes:
        nodes: Scored nodes in snapshot order.
        ranked_nodes: The same nodes sorted by health with rank fields set.
        network_stats: Network-wide aggregates.
        version_distribution: Node count per version.
        updated_at: When this data was computed (UTC).
    """

    nodes: list[Node]
    ranked_nodes: list[Node]
    network_stats: NetworkStats
    version_distribution: list[VersionShare]
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict:
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "rankedNodes": [n.to_dict() for n in self.ranked_nodes],
            "networkStats": self.network_stats.to_dict(),
            "versionDistribution": [v.to_dict() for v in self.version_distribution],
            "updatedAt": self.updated_at.isoformat(),
        }


def build_dashboard(raw_nodes: list[Node], now: datetime | None = None) -> DashboardData:
    """Run the full pipeline over a raw snapshot.

    Pipeline: score → rank → aggregate.  Everything is recomputed from
    *raw_nodes*; nothing is carried over between calls.
    """
    computed = compute_nodes(raw_nodes)
    ranked = rank_nodes(computed)
    logger.debug("Built dashboard for %d nodes", len(computed))

    return DashboardData(
        nodes=computed,
        ranked_nodes=ranked,
        network_stats=get_network_stats(computed),
        version_distribution=get_nodes_by_version(computed),
        updated_at=now or datetime.now(UTC),
    )
