"""
Tests for single-ray tracing and hit accounting.
"""

import pytest

from raysim.runner.graph_builder import build_sim_graph
from raysim.runner.normalizer import prepare
from raysim.runner.random_source import RandomSource
from raysim.runner.ray_tracer import trace_ray
from tests.fixtures.graphs import (
    cycle_graph,
    diamond_graph,
    single_node_graph,
    two_leaf_graph,
)


def prepared(data):
    return prepare(build_sim_graph(data['nodes'], data['edges']))


class TestHitAccounting:
    """Test counters after one or more rays."""

    def test_single_node_thousand_rays(self):
        graph = prepared(single_node_graph())

        processed = [trace_ray(graph, 200, RandomSource()) for _ in range(1000)]

        assert graph.root_node.hits == 1000
        assert set(processed) == {1}

    def test_taken_branch_and_successor_hit(self, fixed_rng):
        graph = prepared(two_leaf_graph(0.7, 0.3))

        trace_ray(graph, 0, fixed_rng(0.8))

        root = graph.root_node
        assert root.hits == 1
        assert [b.hits for b in root.probabilities] == [0, 1]
        assert graph.get('leaf_a').hits == 0
        assert graph.get('leaf_b').hits == 1

    def test_diamond_join_counted_per_arrival(self, fixed_rng):
        graph = prepared(diamond_graph())

        processed = trace_ray(graph, 0, fixed_rng(0.5))

        assert graph.get('left').hits == 1
        assert graph.get('right').hits == 1
        assert graph.get('join').hits == 2
        assert processed == 5

    def test_counters_accumulate_across_rays(self, fixed_rng):
        graph = prepared(two_leaf_graph(0.5, 0.5))
        rng = fixed_rng(0.1, 0.9)

        for _ in range(4):
            trace_ray(graph, 0, rng)

        assert graph.root_node.hits == 4
        assert graph.get('leaf_a').hits == 2
        assert graph.get('leaf_b').hits == 2


class TestFrontier:
    """Test the per-ray node cap."""

    def test_frontier_one_processes_only_root(self, fixed_rng):
        graph = prepared(diamond_graph())

        processed = trace_ray(graph, 1, fixed_rng(0.5))

        assert processed == 1
        # Successors were enqueued (and hit) but never processed
        assert graph.get('left').hits == 1
        assert graph.get('left').probabilities[0].hits == 0
        assert graph.get('join').hits == 0

    def test_cycle_bounded_by_frontier(self, fixed_rng):
        graph = prepared(cycle_graph())

        processed = trace_ray(graph, 50, fixed_rng(0.5))

        assert processed == 50
        assert graph.get('a').hits + graph.get('b').hits == 50

    def test_unbounded_on_acyclic_graph(self, fixed_rng):
        graph = prepared(two_leaf_graph())

        assert trace_ray(graph, 0, fixed_rng(0.2)) == 2


class TestFrequencies:
    """Observed hit counts converge to branch weights."""

    def test_seventy_thirty(self):
        graph = prepared(two_leaf_graph(0.7, 0.3))
        rng = RandomSource()

        for _ in range(10_000):
            trace_ray(graph, 200, rng)

        assert graph.root_node.hits == 10_000
        assert graph.get('leaf_a').hits == pytest.approx(7000, abs=200)
        assert graph.get('leaf_b').hits == pytest.approx(3000, abs=200)
        assert graph.get('leaf_a').hits + graph.get('leaf_b').hits == 10_000

    def test_error_term_spreads_uniformly(self):
        data = two_leaf_graph(0.0, 0.0)
        data['nodes'][0]['errorTerm'] = 1.0
        graph = prepared(data)
        rng = RandomSource()

        for _ in range(10_000):
            trace_ray(graph, 0, rng)

        assert graph.get('leaf_a').hits == pytest.approx(5000, abs=250)
