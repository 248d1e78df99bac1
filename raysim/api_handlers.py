"""
Shared API handlers for the simulation endpoints.

Used by dev-server.py (FastAPI). Handlers take the parsed JSON body and
return a JSON-ready dict; bad input raises ValueError (GraphBuildError is
one), which the server maps to 400.
"""
from typing import Dict, Any, Optional

from .runner.analyzer import summarize_run
from .runner.engine import SimulationEngine
from .runner.graph_builder import build_sim_graph, get_graph_stats
from .runner.settings import SimulationSettings, load_default_settings, settings_from_dict


def _build_from_request(data: Dict[str, Any]):
    nodes = data.get('nodes')
    if not nodes:
        raise ValueError("Missing 'nodes' field")
    return build_sim_graph(
        nodes,
        data.get('edges') or [],
        variables=data.get('variables'),
        strict=bool(data.get('strict', False)),
    )


def handle_build_graph(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Handle simulate/build endpoint.

    Args:
        data: Request body containing:
            - nodes: Editor nodes, list or {id: metadata} (required)
            - edges: Editor edges (optional)
            - variables: Names visible to equation/function weights (optional)
            - strict: Reject dangling edges instead of dropping them (optional)

    Returns:
        {"graph": <arena>, "root": id, "stats": {...}}
    """
    graph = _build_from_request(data)
    return {
        "graph": graph.to_wire(),
        "root": graph.root,
        "stats": get_graph_stats(graph),
    }


async def handle_simulate(
    data: Dict[str, Any],
    settings: Optional[SimulationSettings] = None,
) -> Dict[str, Any]:
    """
    Handle simulate/run endpoint: build the graph and run it to completion.

    Args:
        data: Build fields (see handle_build_graph) plus optional run
            settings in wire names: rays, frontierSize, workers
        settings: Base settings (defaults file when omitted)

    Returns:
        {"results": <final arena>, "stats": {...}, "outputs": [...], "nodes": [...]}
    """
    graph = _build_from_request(data)
    run_settings = settings_from_dict(
        {k: data[k] for k in ('rays', 'frontierSize', 'workers') if k in data},
        base=settings or load_default_settings(),
    )

    async with SimulationEngine(run_settings) as engine:
        stats = await engine.run(graph)
        snapshot = engine.latest_snapshot() or graph

    summary = summarize_run(snapshot, stats)
    return {
        "results": snapshot.to_wire(),
        **summary,
    }
