"""
Ray Tracer

Runs a single trial ("ray") through the graph.

A ray is a breadth-first sweep from the root where every processed node
takes exactly one sampled branch, and every successor of that branch joins
the queue. The frontier cap bounds the number of nodes processed, which is
what keeps rays finite on cyclic graphs.

Hit semantics:
- The root is hit once when the ray starts.
- Every other node is hit when it is enqueued, i.e. each time it is reached.
  A node reached along two branches in the same sweep is hit twice.
- The taken branch is hit once per processing of its node.
Counters accumulate across rays; only the normalizer or reset_hits clears them.
"""

from collections import deque

from .random_source import Rng, uniform_random
from .sampler import sample_branch_index
from .types import SimGraph


def trace_ray(graph: SimGraph, frontier_size: int = 0, rng: Rng = uniform_random) -> int:
    """
    Trace one ray and accumulate hits in place.

    Args:
        graph: Prepared graph (see normalizer.prepare)
        frontier_size: Max nodes processed in this ray; 0 or less is unbounded
        rng: Uniform [0, 1) source

    Returns:
        Number of nodes processed
    """
    root = graph.root_node
    root.hits += 1

    limit = frontier_size if frontier_size and frontier_size > 0 else None
    queue = deque([root])
    frontier = 0

    while queue:
        if limit is not None and frontier >= limit:
            break

        node = queue.popleft()
        frontier += 1

        branches = node.probabilities
        if not branches:
            continue

        branch = branches[sample_branch_index(branches, rng(), rng)]
        branch.hits += 1
        for succ in branch.next:
            queue.append(succ)
            succ.hits += 1

    return frontier
