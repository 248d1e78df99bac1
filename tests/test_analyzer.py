"""
Tests for the result analyzer.
"""

import pytest

from raysim.runner.analyzer import flatten_results, summarize_run, wilson_interval
from raysim.runner.normalizer import prepare
from raysim.runner.types import RunStats
from tests.fixtures.graphs import chain_sim_graph


def simulated_chain():
    """chain_sim_graph after 100 rays with fixed outcomes."""
    graph = prepare(chain_sim_graph())
    root, mid, end = graph.get('root'), graph.get('mid'), graph.get('end')
    root.hits = 100
    root.probabilities[0].hits = 100
    mid.hits = 100
    mid.probabilities[0].hits = 80
    mid.probabilities[1].hits = 20
    end.hits = 100
    return graph


class TestWilsonInterval:
    """Test the binomial confidence interval."""

    def test_contains_point_estimate(self):
        low, high = wilson_interval(30, 100)

        assert low < 0.3 < high

    def test_known_value(self):
        low, high = wilson_interval(50, 100)

        assert low == pytest.approx(0.4038, abs=1e-3)
        assert high == pytest.approx(0.5962, abs=1e-3)

    def test_bounds_at_extremes(self):
        low, high = wilson_interval(0, 10)
        assert low == pytest.approx(0.0, abs=1e-12)
        assert high < 0.35

        low, high = wilson_interval(10, 10)
        assert high == pytest.approx(1.0, abs=1e-12)

    def test_no_trials(self):
        assert wilson_interval(0, 0) == (0.0, 0.0)

    def test_narrows_with_trials(self):
        small = wilson_interval(5, 10)
        large = wilson_interval(500, 1000)

        assert (large[1] - large[0]) < (small[1] - small[0])


class TestFlattenResults:
    """Test expected-vs-observed rows."""

    def test_one_row_per_reachable_branch(self):
        rows = flatten_results(simulated_chain())

        assert [r.key for r in rows] == ['root:o0', 'mid:o0', 'mid:o1']

    def test_expected_and_observed(self):
        rows = {r.key: r for r in flatten_results(simulated_chain())}

        assert rows['mid:o0'].expected == pytest.approx(0.75)
        assert rows['mid:o0'].observed == pytest.approx(0.8)
        assert rows['mid:o1'].observed == pytest.approx(0.2)
        assert rows['mid:o1'].node_hits == 100
        assert rows['mid:o1'].ci_low < 0.2 < rows['mid:o1'].ci_high

    def test_unreached_node_observed_zero(self):
        graph = prepare(chain_sim_graph())

        rows = flatten_results(graph)

        assert all(r.observed == 0.0 for r in rows)


class TestSummarizeRun:
    """Test the API summary."""

    def test_shape(self):
        summary = summarize_run(simulated_chain(), RunStats(rays_traced=100, total_nodes_seen=300))

        assert summary['stats'] == {'raysTraced': 100, 'totalNodesSeen': 300}
        assert [n['id'] for n in summary['nodes']] == ['root', 'mid', 'end']
        assert summary['nodes'][2]['reach'] == pytest.approx(1.0)
        assert len(summary['outputs']) == 3

    def test_without_stats(self):
        summary = summarize_run(simulated_chain())

        assert summary['stats'] == {'raysTraced': 0, 'totalNodesSeen': 0}
        assert summary['nodes'][0]['reach'] == 0.0
