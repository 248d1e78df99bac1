"""
Tests for the run loop: checkpoints, cancellation, results requests.
"""

import pytest

from raysim.runner.graph_builder import build_sim_graph
from raysim.runner.orchestrator import CancellationToken, Orchestrator
from raysim.runner.settings import SimulationSettings
from tests.fixtures.graphs import cycle_graph, two_leaf_graph


class Recorder:
    """Collects (rays_traced, stopped, root hits) at each snapshot."""

    def __init__(self, on_emit=None):
        self.snapshots = []
        self.on_emit = on_emit

    def __call__(self, graph, stats):
        self.snapshots.append((stats.rays_traced, stats.stopped, graph.root_node.hits))
        if self.on_emit is not None:
            self.on_emit(stats)

    @property
    def counts(self):
        return [s[0] for s in self.snapshots]


def make_run(rays, recorder, frontier_size=200, token=None, **settings):
    data = two_leaf_graph()
    graph = build_sim_graph(data['nodes'], data['edges'])
    return Orchestrator(
        graph,
        rays=rays,
        frontier_size=frontier_size,
        emit=recorder,
        token=token,
        settings=SimulationSettings(**settings),
    )


class TestCheckpoints:
    """Test the doubling snapshot schedule."""

    def test_doubling_then_final(self):
        recorder = Recorder()

        stats = make_run(20, recorder).run()

        assert recorder.counts == [1, 2, 4, 8, 16, 20]
        assert stats.rays_traced == 20
        assert stats.stopped is False

    def test_final_not_repeated_on_checkpoint(self):
        recorder = Recorder()

        make_run(16, recorder).run()

        assert recorder.counts == [1, 2, 4, 8, 16]

    def test_interval_capped(self):
        recorder = Recorder()

        make_run(30, recorder, max_checkpoint_interval=4).run()

        assert recorder.counts == [1, 2, 4, 8, 12, 16, 20, 24, 28, 30]

    @pytest.mark.parametrize('current, expected', [
        (1, 2),
        (8192, 16384),
        (16384, 32768),
        (32768, 49152),
        (49152, 65536),
    ])
    def test_default_schedule(self, current, expected):
        orchestrator = make_run(0, Recorder())

        assert orchestrator.next_checkpoint(current) == expected

    def test_snapshot_counts_match_graph(self):
        recorder = Recorder()

        make_run(10, recorder).run()

        assert all(count == root_hits for count, _, root_hits in recorder.snapshots)

    def test_zero_rays_emits_one_snapshot(self):
        recorder = Recorder()

        stats = make_run(0, recorder).run()

        assert recorder.counts == [0]
        assert stats.rays_traced == 0

    def test_total_nodes_seen(self):
        recorder = Recorder()

        stats = make_run(10, recorder).run()

        # root + one leaf per ray
        assert stats.total_nodes_seen == 20

    def test_graph_prepared_before_first_ray(self):
        data = two_leaf_graph(2.0, 8.0)
        graph = build_sim_graph(data['nodes'], data['edges'])
        graph.root_node.hits = 99

        Orchestrator(graph, rays=1, frontier_size=0, emit=Recorder()).run()

        assert [b.p for b in graph.root_node.probabilities] == pytest.approx([0.2, 0.8])
        assert graph.root_node.hits == 1


class TestCancellation:
    """Test stop requests."""

    def test_stop_between_rays(self):
        token = CancellationToken()

        def stop_at_four(stats):
            if stats.rays_traced == 4:
                token.cancel()

        recorder = Recorder(on_emit=stop_at_four)
        stats = make_run(1000, recorder, token=token).run()

        assert stats.stopped is True
        assert stats.rays_traced == 4
        assert recorder.snapshots[-1] == (4, True, 4)
        # Progress snapshots increase strictly; the stopped one repeats the last count
        progress = [count for count, stopped, _ in recorder.snapshots if not stopped]
        assert progress == sorted(set(progress)) == [1, 2, 4]
        assert recorder.counts == [1, 2, 4, 4]

    def test_stopped_snapshot_is_last(self):
        token = CancellationToken()
        token.cancel()
        recorder = Recorder()

        stats = make_run(1000, recorder, token=token).run()

        assert recorder.snapshots == [(0, True, 0)]
        assert stats.stopped is True

    def test_cycle_with_frontier_stops(self):
        data = cycle_graph()
        graph = build_sim_graph(data['nodes'], data['edges'])
        recorder = Recorder()

        stats = Orchestrator(graph, rays=100, frontier_size=10, emit=recorder).run()

        assert stats.total_nodes_seen == 1000


class TestResultsRequest:
    """Test out-of-schedule snapshots."""

    def test_request_before_first_ray(self):
        token = CancellationToken()
        token.request_results()
        recorder = Recorder()

        make_run(4, recorder, token=token).run()

        assert recorder.counts == [0, 1, 2, 4]

    def test_request_mid_run(self):
        token = CancellationToken()
        draws = {'n': 0}

        def rng():
            # One draw per ray on this graph; request during ray 3
            draws['n'] += 1
            if draws['n'] == 3:
                token.request_results()
            return 0.5

        recorder = Recorder()
        orchestrator = make_run(6, recorder, token=token)
        orchestrator.rng = rng
        orchestrator.run()

        assert recorder.counts == [1, 2, 3, 4, 6]

    def test_request_on_emitted_count_not_duplicated(self):
        token = CancellationToken()

        def request_at_one(stats):
            if stats.rays_traced == 1:
                token.request_results()

        recorder = Recorder(on_emit=request_at_one)
        make_run(2, recorder, token=token).run()

        assert recorder.counts == [1, 2]

    def test_take_results_request_once(self):
        token = CancellationToken()
        token.request_results()

        assert token.take_results_request() is True
        assert token.take_results_request() is False
