"""
Simulation Runner Package

Graph model, run loop and worker process for raysim.
"""

from .types import (
    SimBranch,
    SimNode,
    SimGraph,
    RunStats,
    GraphBuildError,
    SimulationError,
    SimulationBusyError,
)

from .graph_builder import build_sim_graph, get_graph_stats
from .normalizer import prepare, reset_hits
from .ray_tracer import trace_ray
from .orchestrator import CancellationToken, Orchestrator
from .settings import SimulationSettings, load_default_settings, settings_from_dict
from .engine import SimulationEngine
from .analyzer import OutputDatum, flatten_results, summarize_run

__all__ = [
    # Types
    'SimBranch',
    'SimNode',
    'SimGraph',
    'RunStats',
    'GraphBuildError',
    'SimulationError',
    'SimulationBusyError',
    'OutputDatum',
    # Settings
    'SimulationSettings',
    'load_default_settings',
    'settings_from_dict',
    # Functions
    'build_sim_graph',
    'get_graph_stats',
    'prepare',
    'reset_hits',
    'trace_ray',
    'flatten_results',
    'summarize_run',
    # Run control
    'CancellationToken',
    'Orchestrator',
    'SimulationEngine',
]
