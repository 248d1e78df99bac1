"""
Sampler

Inverse-CDF selection of one outgoing branch per node visit.
"""

import math
from typing import Sequence

from .random_source import Rng, uniform_random
from .types import SimBranch


def sample_branch_index(
    branches: Sequence[SimBranch],
    u: float,
    rng: Rng = uniform_random,
) -> int:
    """
    Pick a branch index for the uniform draw `u`.

    Walks the cumulative sum of branch weights in declared order and returns
    the first index with `u < cumulative`. If the walk runs out, `u` fell in
    the mass held by the node's error term (or in float rounding slack), and
    the pick degrades to a uniform choice among all branches using a fresh
    draw from `rng`.

    Args:
        branches: Ordered branches of a node (weights already normalized)
        u: Uniform draw in [0, 1)
        rng: Source for the fallback draw

    Returns:
        Index into `branches`

    Raises:
        ValueError: `branches` is empty
    """
    if not branches:
        raise ValueError("Cannot sample from a node without branches")

    cumulative = 0.0
    for i, branch in enumerate(branches):
        cumulative += branch.p
        if u < cumulative:
            return i

    # Error term: unweighted coin-flip among the modelled branches
    return min(int(math.floor(rng() * len(branches))), len(branches) - 1)
