"""Ranking: order nodes by health score and assign percentile buckets."""

import dataclasses

from pnm.models import Node

# (threshold, label) pairs checked top-down.
PERCENTILE_BUCKETS: list[tuple[float, str]] = [
    (90, "Top 10%"),
    (75, "Top 25%"),
    (50, "Top 50%"),
]
BOTTOM_BUCKET = "Bottom 50%"


def percentile_bucket(percentile_rank: float) -> str:
    """Map a percentile value to its bucket label."""
    for threshold, label in PERCENTILE_BUCKETS:
        if percentile_rank >= threshold:
            return label
    return BOTTOM_BUCKET


def rank_nodes(nodes: list[Node]) -> list[Node]:
    """Rank nodes by health score, best first.

    The sort is stable: nodes with equal scores keep their input order.
    Nodes without a score are treated as scoring 0.  Returns new ``Node``
    objects; the input is not modified.

    Args:
        nodes: Scored nodes (see ``health.compute_nodes``).

    Returns:
        Nodes sorted descending with ``rank`` (1..N), ``percentile_rank``
        and ``percentile`` set.
    """
    ordered = sorted(nodes, key=lambda n: n.health_score or 0, reverse=True)
    total = max(len(ordered), 1)

    ranked: list[Node] = []
    for index, node in enumerate(ordered):
        pct = (total - index) / total * 100
        ranked.append(
            dataclasses.replace(
                node,
                rank=index + 1,
                percentile_rank=pct,
                percentile=percentile_bucket(pct),
            )
        )
    return ranked


def get_top_performers(nodes: list[Node], count: int = 5) -> list[Node]:
    """Return the *count* best-ranked nodes."""
    return rank_nodes(nodes)[:count]
