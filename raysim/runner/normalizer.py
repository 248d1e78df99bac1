"""
Normalizer

Rescales every reachable node's branch weights plus its error term into a
proper probability distribution and clears hit counters. Must run once per
batch, before the first trial.
"""

from .types import SimGraph, SimNode


def normalize_node(node: SimNode) -> None:
    """
    Normalize one node in place.

    total = sum(p) + error_term. When total <= 0 every branch gets an equal
    share and the error term is dropped; otherwise everything is divided by
    total. Already-normalized nodes are left unchanged.
    """
    total = node.weight_sum()
    if total <= 0:
        if node.probabilities:
            equal_p = 1.0 / len(node.probabilities)
            for branch in node.probabilities:
                branch.p = equal_p
        node.error_term = 0.0
        return

    for branch in node.probabilities:
        branch.p /= total
    node.error_term /= total


def prepare(graph: SimGraph) -> SimGraph:
    """
    Normalize weights and reset hits for every node reachable from the root.

    Breadth-first with a visited set keyed by node id, so shared nodes and
    cycles are processed exactly once.

    Returns:
        The same graph, mutated in place
    """
    for node in graph.reachable():
        normalize_node(node)
        node.hits = 0
        for branch in node.probabilities:
            branch.hits = 0
    return graph


def reset_hits(graph: SimGraph) -> SimGraph:
    """Zero node and branch counters across the whole arena; weights untouched."""
    for node in graph.nodes.values():
        node.hits = 0
        for branch in node.probabilities:
            branch.hits = 0
    return graph

