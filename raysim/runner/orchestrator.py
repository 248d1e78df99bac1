"""
Run Loop

Drives a batch of rays over one graph:
1. Normalize the graph once (prepare)
2. Trace rays sequentially, accumulating hits
3. Emit snapshots on a doubling schedule (1, 2, 4, ... capped gap) and once at the end
4. Check the cancellation token between rays; a stop ends the batch with a stopped snapshot

The loop knows nothing about processes or queues. Snapshots leave through the
`emit` callback and stop requests arrive through the CancellationToken, so the
same loop runs inside the worker process and in tests.
"""

import logging
import threading
import time
from typing import Callable, Optional

from .normalizer import prepare
from .random_source import Rng, RandomSource
from .ray_tracer import trace_ray
from .settings import SimulationSettings
from .types import RunStats, SimGraph

logger = logging.getLogger(__name__)

EmitFn = Callable[[SimGraph, RunStats], None]


class CancellationToken:
    """
    Per-run signals set from outside the run loop.

    Owned by one run. The worker's listener thread sets it; the run loop
    only reads it between rays.
    """

    def __init__(self):
        self._stop = threading.Event()
        self._results = threading.Event()

    def cancel(self) -> None:
        self._stop.set()

    @property
    def cancelled(self) -> bool:
        return self._stop.is_set()

    def request_results(self) -> None:
        self._results.set()

    def take_results_request(self) -> bool:
        """Return True once per results request."""
        if self._results.is_set():
            self._results.clear()
            return True
        return False


class Orchestrator:
    """
    One batch of rays over a graph.

    Args:
        graph: Graph to simulate; owned by the run and mutated in place
        rays: Number of trials
        frontier_size: Per-trial node cap, 0 = unbounded
        emit: Called with (graph, stats) for every snapshot
        token: Cancellation/results-request signals for this run
        settings: Checkpoint tuning
        rng: Uniform source; defaults to a block-buffered RandomSource
    """

    def __init__(
        self,
        graph: SimGraph,
        rays: int,
        frontier_size: int,
        emit: EmitFn,
        token: Optional[CancellationToken] = None,
        settings: Optional[SimulationSettings] = None,
        rng: Optional[Rng] = None,
    ):
        self.graph = graph
        self.rays = max(0, int(rays))
        self.frontier_size = max(0, int(frontier_size or 0))
        self.emit = emit
        self.token = token or CancellationToken()
        self.settings = settings or SimulationSettings()
        self.rng = rng or RandomSource()
        self.stats = RunStats()
        self._last_emitted: Optional[int] = None

    def _snapshot(self) -> None:
        self._last_emitted = self.stats.rays_traced
        self.emit(self.graph, self.stats)

    def next_checkpoint(self, current: int) -> int:
        """Next trial count that gets a snapshot after `current`."""
        return min(current * 2, current + self.settings.max_checkpoint_interval)

    def run(self) -> RunStats:
        prepare(self.graph)

        stats = self.stats
        next_update = 1
        logger.debug("Run start: rays=%d frontier_size=%d", self.rays, self.frontier_size)

        while stats.rays_traced < self.rays:
            if self.token.cancelled:
                stats.stopped = True
                logger.info("Run stopped after %d rays", stats.rays_traced)
                self._snapshot()
                return stats

            if self.token.take_results_request() and stats.rays_traced != self._last_emitted:
                self._snapshot()

            stats.total_nodes_seen += trace_ray(self.graph, self.frontier_size, self.rng)
            stats.rays_traced += 1

            if stats.rays_traced == next_update:
                logger.debug("Checkpoint %d (%d nodes seen)", stats.rays_traced, stats.total_nodes_seen)
                self._snapshot()
                next_update = self.next_checkpoint(next_update)
                # Give the listener thread a turn
                time.sleep(0)

        if self._last_emitted != stats.rays_traced:
            self._snapshot()

        logger.debug("Run complete: %d rays, %d nodes seen", stats.rays_traced, stats.total_nodes_seen)
        return stats
