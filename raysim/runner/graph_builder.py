"""
Graph Builder

Converts the editor's graph (nodes with ordered outputs + edges keyed by
source output) into the canonical SimGraph the runner simulates.

Topology questions (roots, reachability, cycles) are answered on a NetworkX
DiGraph built from the wired edges.
"""

import logging
from typing import Any, Optional

import networkx as nx
from pydantic import ValidationError

from ..graph_types import EditorEdge, EditorGraph, parse_editor_graph
from .types import GraphBuildError, SimBranch, SimGraph, SimNode
from .weights import evaluate_weight

logger = logging.getLogger(__name__)


def build_sim_graph(
    nodes: Any,
    edges: Any = None,
    variables: Optional[dict[str, Any]] = None,
    strict: bool = False,
) -> SimGraph:
    """
    Build a SimGraph from editor nodes and edges.

    Args:
        nodes: Editor nodes (list, {id: metadata} mapping, or an EditorGraph)
        edges: Editor edges {id, source, target, sourceOutputId}
        variables: Names visible to equation/function weights
        strict: Raise on dangling edges instead of dropping them

    Returns:
        SimGraph rooted at the chosen root (see select_root)

    Raises:
        GraphBuildError: invalid input, no root, or (strict) dangling edges
    """
    try:
        editor_graph = parse_editor_graph(nodes, edges)
    except ValidationError as e:
        raise GraphBuildError("Invalid editor graph", [str(err) for err in e.errors()]) from e

    if not editor_graph.nodes:
        raise GraphBuildError("Graph has no nodes")

    sim_nodes = _build_nodes(editor_graph, variables)
    problems = _wire_edges(editor_graph, sim_nodes)

    if problems:
        if strict:
            raise GraphBuildError("Graph has dangling edges", problems)
        for problem in problems:
            logger.warning("Dropping edge: %s", problem)

    G = build_networkx_graph(sim_nodes)
    root = select_root(G)

    unreachable = set(G.nodes) - {root} - nx.descendants(G, root)
    if unreachable:
        logger.info("%d node(s) unreachable from root %r: %s", len(unreachable), root, sorted(unreachable))

    return SimGraph(root=root, nodes=sim_nodes)


def _build_nodes(editor_graph: EditorGraph, variables: Optional[dict[str, Any]]) -> dict[str, SimNode]:
    sim_nodes: dict[str, SimNode] = {}
    for node in editor_graph.nodes:
        if node.id in sim_nodes:
            raise GraphBuildError(f"Duplicate node id: {node.id!r}", [f"duplicate node {node.id!r}"])

        branches = [
            SimBranch(
                id=output.id,
                label=output.label,
                p=evaluate_weight(
                    output.kind,
                    probability=output.probability,
                    equation=output.equation,
                    function_body=output.function_body,
                    variables=variables,
                    label=f"{node.id}:{output.id}",
                ),
            )
            for output in node.outputs
        ]

        error_term = evaluate_weight("numeric", probability=node.error_term or 0.0, label=f"{node.id}:errorTerm")
        sim_nodes[node.id] = SimNode(
            id=node.id,
            label=node.label,
            probabilities=branches,
            error_term=error_term,
        )
    return sim_nodes


def _wire_edges(editor_graph: EditorGraph, sim_nodes: dict[str, SimNode]) -> list[str]:
    """Append edge targets to their branch's successor list. Returns the dropped edges."""
    problems = []
    for edge in editor_graph.edges:
        if edge.source not in sim_nodes:
            problems.append(f"{_edge_label(edge)}: unknown source node {edge.source!r}")

    for node in editor_graph.nodes:
        source = sim_nodes[node.id]
        for edge in editor_graph.get_outgoing_edges(node.id):
            target = sim_nodes.get(edge.target)
            if target is None:
                problems.append(f"{_edge_label(edge)}: unknown target node {edge.target!r}")
                continue
            output = node.get_output(edge.source_output_id)
            if output is None:
                problems.append(f"{_edge_label(edge)}: node {node.id!r} has no output {edge.source_output_id!r}")
                continue
            # Branches mirror outputs one to one, in order
            source.probabilities[node.outputs.index(output)].next.append(target)
    return problems


def _edge_label(edge: EditorEdge) -> str:
    return edge.id or f"{edge.source}->{edge.target}"


def build_networkx_graph(sim_nodes: dict[str, SimNode]) -> nx.DiGraph:
    """
    Topology of the wired graph.

    Node order follows the arena; one edge per (node, successor) pair with
    the branch ids that wire it in the 'branches' attribute.
    """
    G = nx.DiGraph()
    for node_id, node in sim_nodes.items():
        G.add_node(node_id, label=node.label)
    for node_id, node in sim_nodes.items():
        for branch in node.probabilities:
            for succ in branch.next:
                if G.has_edge(node_id, succ.id):
                    G.edges[node_id, succ.id]["branches"].append(branch.id)
                else:
                    G.add_edge(node_id, succ.id, branches=[branch.id])
    return G


def find_root_nodes(G: nx.DiGraph) -> list[str]:
    """Nodes with no incoming wired edge, sorted by id."""
    return sorted(n for n in G.nodes if G.in_degree(n) == 0)


def select_root(G: nx.DiGraph) -> str:
    """
    Pick the node every ray starts from.

    Policy: the lexicographically smallest id among nodes without incoming
    edges. Other roots are logged and left unreachable.

    Raises:
        GraphBuildError: every node has an incoming edge
    """
    roots = find_root_nodes(G)
    if not roots:
        raise GraphBuildError("No starting node found: every node has an incoming edge")
    if len(roots) > 1:
        logger.warning("Multiple root nodes %s; using %r", roots, roots[0])
    return roots[0]


def get_graph_stats(graph: SimGraph) -> dict[str, Any]:
    """Summary of a SimGraph's shape."""
    G = build_networkx_graph(graph.nodes)
    reachable = {graph.root} | nx.descendants(G, graph.root)
    return {
        "node_count": G.number_of_nodes(),
        "edge_count": G.number_of_edges(),
        "branch_count": sum(len(n.probabilities) for n in graph.nodes.values()),
        "root": graph.root,
        "roots": find_root_nodes(G),
        "reachable_count": len(reachable),
        "leaf_nodes": sorted(n for n in reachable if G.out_degree(n) == 0),
        "is_dag": nx.is_directed_acyclic_graph(G),
    }
