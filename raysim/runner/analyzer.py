"""
Result Analyzer

Flattens a snapshot into one row per branch, comparing the configured
(expected) probability with the observed hit ratio, plus a Wilson score
interval for the observed ratio.

Observed = branch hits / node hits, so rows are only meaningful for nodes
that were reached at least once.
"""

import math
from dataclasses import dataclass, asdict
from typing import Any, Optional

from scipy import stats

from .types import RunStats, SimGraph


@dataclass
class OutputDatum:
    """Expected vs observed for one branch of one node."""
    key: str                  # "<node id>:<branch id>"
    node_id: str
    node_label: str
    output_id: str
    output_label: str
    expected: float           # normalized branch weight
    observed: float           # hits / node_hits, 0 if the node was never reached
    hits: int
    node_hits: int
    ci_low: float = 0.0
    ci_high: float = 0.0


def wilson_interval(successes: int, trials: int, confidence: float = 0.95) -> tuple[float, float]:
    """
    Wilson score interval for a binomial proportion.

    Returns:
        (low, high); (0.0, 0.0) when trials is 0
    """
    if trials <= 0:
        return 0.0, 0.0
    z = float(stats.norm.ppf(0.5 + confidence / 2.0))
    phat = successes / trials
    denom = 1.0 + z * z / trials
    centre = (phat + z * z / (2 * trials)) / denom
    half = z * math.sqrt(phat * (1 - phat) / trials + z * z / (4 * trials * trials)) / denom
    return max(0.0, centre - half), min(1.0, centre + half)


def flatten_results(graph: SimGraph, confidence: float = 0.95) -> list[OutputDatum]:
    """
    One OutputDatum per branch of every node reachable from the root,
    in breadth-first order and declared branch order.
    """
    rows = []
    for node in graph.reachable():
        for branch in node.probabilities:
            observed = branch.hits / node.hits if node.hits > 0 else 0.0
            low, high = wilson_interval(branch.hits, node.hits, confidence)
            rows.append(OutputDatum(
                key=f"{node.id}:{branch.id}",
                node_id=node.id,
                node_label=node.label or node.id,
                output_id=branch.id,
                output_label=branch.label or "(unnamed)",
                expected=branch.p,
                observed=observed,
                hits=branch.hits,
                node_hits=node.hits,
                ci_low=low,
                ci_high=high,
            ))
    return rows


def summarize_run(graph: SimGraph, run_stats: Optional[RunStats] = None) -> dict[str, Any]:
    """
    API-ready summary of a snapshot.

    Returns:
        {
            "stats": {"raysTraced", "totalNodesSeen", "stopped"?},
            "nodes": [{"id", "label", "hits", "reach"}],
            "outputs": [OutputDatum as dict]
        }
    """
    run_stats = run_stats or RunStats()
    rays = run_stats.rays_traced
    nodes = [
        {
            "id": node.id,
            "label": node.label,
            "hits": node.hits,
            # Mean times reached per ray
            "reach": node.hits / rays if rays > 0 else 0.0,
        }
        for node in graph.reachable()
    ]
    return {
        "stats": run_stats.to_wire(),
        "nodes": nodes,
        "outputs": [asdict(row) for row in flatten_results(graph)],
    }
