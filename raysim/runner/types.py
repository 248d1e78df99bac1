"""
Simulation Graph Types

Canonical in-memory graph used by the Monte Carlo runner.

A SimGraph is an arena of SimNodes addressed by stable string ids. Branches
hold live references to their successor nodes, so a node reached along
several paths (diamonds, cycles) is a single shared instance. Only the flat
wire form (ids instead of references) crosses the worker process boundary;
`SimGraph.from_wire` relinks it on the receiving side.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Any, Iterator, Optional


# ============================================================================
# Errors
# ============================================================================

class GraphBuildError(ValueError):
    """Editor graph could not be converted into a SimGraph."""

    def __init__(self, message: str, problems: Optional[list[str]] = None):
        super().__init__(message)
        self.problems = list(problems or [])


class SimulationError(RuntimeError):
    """The worker reported a fault while running a simulation."""


class SimulationBusyError(SimulationError):
    """A run was requested while another run on the same engine is outstanding."""


# ============================================================================
# Graph Structure
# ============================================================================

@dataclass(eq=False)
class SimBranch:
    """One outcome of a node: a weight plus the nodes it leads to."""
    id: str
    label: str = ""
    p: float = 0.0
    hits: int = 0
    next: list["SimNode"] = field(default_factory=list)


@dataclass(eq=False)
class SimNode:
    """
    Probabilistic branch point.

    `probabilities` is ordered; the order defines the cumulative
    distribution boundaries used by the sampler.
    """
    id: str
    label: str = ""
    probabilities: list[SimBranch] = field(default_factory=list)
    error_term: float = 0.0
    hits: int = 0

    def weight_sum(self) -> float:
        return sum(b.p for b in self.probabilities) + self.error_term


@dataclass(eq=False)
class SimGraph:
    """Arena of nodes plus the id of the node every trial starts from."""
    root: str
    nodes: dict[str, SimNode] = field(default_factory=dict)

    @property
    def root_node(self) -> SimNode:
        return self.nodes[self.root]

    def get(self, node_id: str) -> Optional[SimNode]:
        return self.nodes.get(node_id)

    def reachable(self) -> Iterator[SimNode]:
        """Yield every node reachable from the root once, breadth-first."""
        if self.root not in self.nodes:
            return
        seen: set[str] = set()
        queue = deque([self.nodes[self.root]])
        while queue:
            node = queue.popleft()
            if node.id in seen:
                continue
            seen.add(node.id)
            yield node
            for branch in node.probabilities:
                queue.extend(branch.next)

    def total_hits(self) -> int:
        return sum(n.hits for n in self.nodes.values())

    # ------------------------------------------------------------------
    # Wire form
    # ------------------------------------------------------------------

    def to_wire(self) -> dict[str, Any]:
        """
        Flatten into plain dicts with successor ids instead of references.

        Returns:
            {"root": id, "nodes": {id: {...node, "probabilities": [{..., "next": [ids]}]}}}
        """
        return {
            "root": self.root,
            "nodes": {
                node_id: {
                    "id": node.id,
                    "label": node.label,
                    "error_term": node.error_term,
                    "hits": node.hits,
                    "probabilities": [
                        {
                            "id": b.id,
                            "label": b.label,
                            "p": b.p,
                            "hits": b.hits,
                            "next": [succ.id for succ in b.next],
                        }
                        for b in node.probabilities
                    ],
                }
                for node_id, node in self.nodes.items()
            },
        }

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> "SimGraph":
        """
        Rebuild a graph from its wire form, relinking shared successors.

        Raises:
            GraphBuildError: root or a successor id is not in the arena
        """
        raw_nodes = data.get("nodes") or {}
        root = data.get("root")
        nodes: dict[str, SimNode] = {}
        for node_id, raw in raw_nodes.items():
            nodes[node_id] = SimNode(
                id=raw.get("id", node_id),
                label=raw.get("label") or "",
                error_term=float(raw.get("error_term") or 0.0),
                hits=int(raw.get("hits") or 0),
            )

        problems = []
        for node_id, raw in raw_nodes.items():
            node = nodes[node_id]
            for raw_branch in raw.get("probabilities") or []:
                branch = SimBranch(
                    id=raw_branch.get("id", ""),
                    label=raw_branch.get("label") or "",
                    p=float(raw_branch.get("p") or 0.0),
                    hits=int(raw_branch.get("hits") or 0),
                )
                for succ_id in raw_branch.get("next") or []:
                    succ = nodes.get(succ_id)
                    if succ is None:
                        problems.append(f"branch {node_id}:{branch.id} points at unknown node {succ_id!r}")
                        continue
                    branch.next.append(succ)
                node.probabilities.append(branch)

        if root not in nodes:
            problems.append(f"root {root!r} is not in the graph")
        if problems:
            raise GraphBuildError("Invalid wire graph", problems)

        return cls(root=root, nodes=nodes)

    def copy(self) -> "SimGraph":
        return SimGraph.from_wire(self.to_wire())


# ============================================================================
# Run Metadata
# ============================================================================

@dataclass
class RunStats:
    """Progress metadata attached to every snapshot."""
    rays_traced: int = 0
    total_nodes_seen: int = 0
    stopped: bool = False

    def to_wire(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "raysTraced": self.rays_traced,
            "totalNodesSeen": self.total_nodes_seen,
        }
        if self.stopped:
            data["stopped"] = True
        return data

    @classmethod
    def from_wire(cls, data: Optional[dict[str, Any]]) -> "RunStats":
        data = data or {}
        return cls(
            rays_traced=int(data.get("raysTraced") or 0),
            total_nodes_seen=int(data.get("totalNodesSeen") or 0),
            stopped=bool(data.get("stopped", False)),
        )
