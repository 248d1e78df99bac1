"""
Simulation Engine

Caller-side facade over the worker process. Turns the message protocol into
a single awaitable per run:

    engine = SimulationEngine()
    graph = engine.build_graph(nodes, edges)
    stats = await engine.run(graph, rays=10000, frontier_size=200)
    snapshot = engine.latest_snapshot()

The graph passed to `run` is serialized and handed to the worker; from then
on the caller's copy is stale. `latest_snapshot()` is refreshed only from
snapshots the worker sends back.

One run at a time: a second `run` while one is outstanding raises
SimulationBusyError.
"""

import asyncio
import itertools
import logging
from typing import Any, Callable, Optional

from pydantic import ValidationError

from ..protocol import (
    DoneMessage,
    ErrorMessage,
    ResultsMessage,
    ResultsRequest,
    RunMessage,
    StopMessage,
    parse_reply,
    to_wire,
)
from .graph_builder import build_sim_graph
from .settings import SimulationSettings, load_default_settings
from .types import RunStats, SimGraph, SimulationBusyError, SimulationError
from .worker import WorkerProcess

logger = logging.getLogger(__name__)

ProgressFn = Callable[[SimGraph, RunStats], None]


class SimulationEngine:
    """
    Owns one worker process and the latest results it reported.

    Args:
        settings: Defaults for rays/frontier size and worker tuning
            (raysim/defaults/simulation.yaml when omitted)
    """

    def __init__(self, settings: Optional[SimulationSettings] = None):
        self.settings = settings or load_default_settings()
        self._worker: Optional[WorkerProcess] = None
        self._snapshot: Optional[SimGraph] = None
        self._stats: Optional[RunStats] = None
        self._running = False
        self._run_ids = itertools.count(1)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _ensure_worker(self) -> WorkerProcess:
        if self._worker is not None and not self._worker.is_alive():
            logger.warning("Worker process died; starting a new one")
            self._worker.close()
            self._worker = None
        if self._worker is None:
            self._worker = WorkerProcess(self.settings)
            self._worker.start()
        return self._worker

    def close(self) -> None:
        if self._worker is not None:
            self._worker.close()
            self._worker = None

    async def __aenter__(self) -> "SimulationEngine":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        # close() joins the worker process
        await asyncio.get_running_loop().run_in_executor(None, self.close)

    @property
    def is_running(self) -> bool:
        return self._running

    def reset(self) -> None:
        """Clear the latest snapshot and stats."""
        if self._running:
            raise SimulationBusyError("Cannot reset while a run is in progress")
        self._snapshot = None
        self._stats = None

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def build_graph(
        self,
        nodes: Any,
        edges: Any = None,
        variables: Optional[dict[str, Any]] = None,
        strict: bool = False,
    ) -> SimGraph:
        """Build a SimGraph from editor nodes/edges. Raises GraphBuildError."""
        return build_sim_graph(nodes, edges, variables=variables, strict=strict)

    def latest_snapshot(self) -> Optional[SimGraph]:
        return self._snapshot

    def latest_stats(self) -> Optional[RunStats]:
        return self._stats

    def stop(self) -> None:
        """Ask the outstanding run to stop at the next trial boundary."""
        if self._running and self._worker is not None:
            self._worker.post(to_wire(StopMessage()))

    def request_results(self) -> None:
        """Ask the outstanding run for a snapshot at the next trial boundary."""
        if self._running and self._worker is not None:
            self._worker.post(to_wire(ResultsRequest()))

    async def run(
        self,
        graph: SimGraph,
        rays: Optional[int] = None,
        frontier_size: Optional[int] = None,
        workers: Optional[int] = None,
        on_progress: Optional[ProgressFn] = None,
    ) -> RunStats:
        """
        Run a batch of rays in the worker and wait for it to finish.

        Args:
            graph: Graph to simulate (stale for the caller once sent)
            rays: Number of trials (settings.rays when omitted)
            frontier_size: Max nodes per trial, 0 = unbounded (settings default when omitted)
            workers: Reserved; values above 1 are logged and ignored
            on_progress: Called with (snapshot, stats) for every snapshot

        Returns:
            RunStats of the last snapshot; `stopped` is set if the run was stopped

        Raises:
            SimulationBusyError: another run is outstanding
            SimulationError: the worker reported an error or died
        """
        if self._running:
            raise SimulationBusyError("A simulation is already running on this engine")

        rays = self.settings.rays if rays is None else rays
        frontier_size = self.settings.frontier_size if frontier_size is None else frontier_size
        workers = self.settings.workers if workers is None else workers
        if workers > 1:
            logger.warning("workers=%d requested; only a single worker is supported", workers)

        self._running = True
        try:
            worker = self._ensure_worker()
            run_id = next(self._run_ids)
            message = RunMessage(
                id=run_id,
                rays=max(0, rays),
                frontier_size=max(0, frontier_size),
                graph=graph.to_wire(),
                workers=max(1, workers),
                variable=self.settings.variable,
            )
            worker.post(to_wire(message))
            try:
                return await self._await_terminal(worker, run_id, on_progress)
            except BaseException:
                # No terminal message was seen, so the batch may still be running
                if worker.is_alive():
                    worker.post(to_wire(StopMessage()))
                raise
        finally:
            self._running = False

    async def _await_terminal(
        self,
        worker: WorkerProcess,
        run_id: int,
        on_progress: Optional[ProgressFn],
    ) -> RunStats:
        loop = asyncio.get_running_loop()
        last_stats = RunStats()

        while True:
            raw = await loop.run_in_executor(None, worker.get, self.settings.poll_interval)
            if raw is None:
                if not worker.is_alive():
                    raise SimulationError("Simulation worker exited unexpectedly")
                continue

            try:
                reply = parse_reply(raw)
            except ValidationError:
                logger.warning("Ignoring malformed worker message: %r", raw)
                continue

            if reply.id is not None and reply.id != run_id:
                logger.debug("Ignoring message for finished run %s", reply.id)
                continue

            if isinstance(reply, ResultsMessage):
                snapshot = SimGraph.from_wire(reply.results)
                last_stats = RunStats(
                    rays_traced=reply.data.rays_traced,
                    total_nodes_seen=reply.data.total_nodes_seen,
                    stopped=bool(reply.data.stopped),
                )
                self._snapshot = snapshot
                self._stats = last_stats
                if on_progress is not None:
                    on_progress(snapshot, last_stats)
                if last_stats.stopped:
                    return last_stats
            elif isinstance(reply, DoneMessage):
                return last_stats
            elif isinstance(reply, ErrorMessage):
                raise SimulationError(reply.error)
