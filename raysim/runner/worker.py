"""
Simulation Worker

Hosts the run loop in a separate process that talks to the caller only
through two multiprocessing queues (see raysim.protocol for the messages).

Inside the process:
- a daemon listener thread reads the inbox; `run` requests are handed to the
  main thread together with a fresh CancellationToken, `stop` and `results`
  set that token
- the main thread runs one batch at a time and posts snapshots to the outbox
- any exception inside a run is reported as an `error` message and the
  process keeps serving

A `None` on the inbox shuts the process down.
"""

import logging
import multiprocessing as mp
import queue
import threading
from typing import Any, Dict, Optional

from pydantic import ValidationError

from ..protocol import (
    DoneMessage,
    ErrorMessage,
    ProgressData,
    ResultsMessage,
    ResultsRequest,
    RunMessage,
    StopMessage,
    parse_request,
    to_wire,
)
from .orchestrator import CancellationToken, Orchestrator
from .settings import SimulationSettings, settings_from_dict
from .types import RunStats, SimGraph

logger = logging.getLogger(__name__)


class _Listener:
    """Reads the inbox and routes requests. Runs on a daemon thread."""

    def __init__(self, inbox, outbox, runs: "queue.Queue"):
        self.inbox = inbox
        self.outbox = outbox
        self.runs = runs
        self.token: Optional[CancellationToken] = None

    def __call__(self) -> None:
        while True:
            raw = self.inbox.get()
            if raw is None:
                self.runs.put(None)
                return

            try:
                request = parse_request(raw)
            except ValidationError as e:
                if isinstance(raw, dict) and raw.get("type") == "run":
                    self.outbox.put(to_wire(ErrorMessage(id=raw.get("id"), error=f"Invalid run message: {e}")))
                else:
                    logger.warning("Ignoring malformed message: %r", raw)
                continue

            if isinstance(request, StopMessage):
                if self.token is not None:
                    self.token.cancel()
            elif isinstance(request, ResultsRequest):
                if self.token is not None:
                    self.token.request_results()
            elif isinstance(request, RunMessage):
                self.token = CancellationToken()
                self.runs.put((request, self.token))


def run_request(
    request: RunMessage,
    token: CancellationToken,
    outbox,
    settings: Optional[SimulationSettings] = None,
) -> Optional[RunStats]:
    """
    Execute one run request, posting snapshots and the terminal message.

    Never raises: faults become an `error` message.

    Returns:
        Final RunStats, or None if the run failed
    """
    run_id = request.id

    def emit(graph: SimGraph, stats: RunStats) -> None:
        message = ResultsMessage(
            id=run_id,
            results=graph.to_wire(),
            data=ProgressData.model_validate(stats.to_wire()),
        )
        outbox.put(to_wire(message))

    try:
        graph = SimGraph.from_wire(request.graph)
        if request.workers > 1:
            logger.warning("workers=%d requested; parallel batches are not supported, using 1", request.workers)
        if request.variable:
            logger.info("Variable sweep over %r is not supported; running a single batch", request.variable)

        stats = Orchestrator(
            graph,
            rays=request.rays,
            frontier_size=request.frontier_size,
            emit=emit,
            token=token,
            settings=settings,
        ).run()
    except Exception as e:
        logger.exception("Simulation run %s failed", run_id)
        outbox.put(to_wire(ErrorMessage(id=run_id, error=f"{type(e).__name__}: {e}")))
        return None

    # A stopped snapshot is terminal on its own
    if not stats.stopped:
        outbox.put(to_wire(DoneMessage(id=run_id)))
    return stats


def worker_main(inbox, outbox, settings: Optional[Dict[str, Any]] = None) -> None:
    """Process entry point."""
    resolved = settings_from_dict(settings)
    runs: "queue.Queue" = queue.Queue()
    listener = _Listener(inbox, outbox, runs)
    threading.Thread(target=listener, name="raysim-listener", daemon=True).start()

    logger.info("Simulation worker started")
    while True:
        item = runs.get()
        if item is None:
            break
        request, token = item
        run_request(request, token, outbox, resolved)
    logger.info("Simulation worker stopped")


class WorkerProcess:
    """
    Caller-side handle on one worker process.

    Messages are plain dicts; nothing else is shared with the process.
    """

    def __init__(self, settings: Optional[SimulationSettings] = None):
        self.settings = settings or SimulationSettings()
        ctx = mp.get_context(self.settings.start_method)
        self.inbox = ctx.Queue()
        self.outbox = ctx.Queue()
        self.process = ctx.Process(
            target=worker_main,
            args=(self.inbox, self.outbox, self.settings.to_dict()),
            name="raysim-worker",
            daemon=True,
        )

    def start(self) -> None:
        self.process.start()

    def is_alive(self) -> bool:
        return self.process.is_alive()

    def post(self, message: Dict[str, Any]) -> None:
        self.inbox.put(message)

    def get(self, timeout: Optional[float] = None) -> Optional[Dict[str, Any]]:
        """Next reply, or None if nothing arrived within `timeout` seconds."""
        try:
            return self.outbox.get(timeout=timeout)
        except queue.Empty:
            return None

    def close(self, timeout: float = 2.0) -> None:
        if self.process.is_alive():
            self.inbox.put(to_wire(StopMessage()))
            self.inbox.put(None)
            self.process.join(timeout)
        if self.process.is_alive():
            logger.warning("Worker did not exit in %.1fs; terminating", timeout)
            self.process.terminate()
            self.process.join(timeout)
        for q in (self.inbox, self.outbox):
            q.close()
            q.cancel_join_thread()
