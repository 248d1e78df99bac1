"""
Worker message protocol

Messages crossing the worker process boundary, as Pydantic models. On the
queues they travel as plain dicts (`model_dump(exclude_none=True)`), with
the field names the editor's worker client already speaks:

Caller -> worker:
    {"type": "run", "rays", "frontierSize", "graph", ...}
    {"type": "stop"}
    {"type": "results"}

Worker -> caller:
    {"type": "results", "results": <graph arena>, "data": {"raysTraced", "totalNodesSeen", "stopped"?}}
    {"type": "done"}
    {"type": "error", "error": "<description>"}

Every reply carries the `id` of the run it belongs to when the run message
had one. `done` and `error` are terminal and mutually exclusive. A `results`
message with data.stopped is also terminal.
"""

from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


# ============================================================================
# Caller -> worker
# ============================================================================

class RunMessage(BaseModel):
    """Start a batch of rays over `graph` (wire arena, see SimGraph.to_wire)."""
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["run"] = "run"
    id: Optional[int] = Field(None, description="Run id, echoed on every reply for this run")
    rays: int = Field(..., ge=0, description="Number of trials")
    frontier_size: int = Field(0, ge=0, alias="frontierSize", description="Max nodes per trial, 0 = unbounded")
    graph: Dict[str, Any] = Field(..., description="Graph arena")
    workers: int = Field(1, ge=1, description="Reserved; one worker is used")
    variable: Optional[str] = None
    v_start: Optional[float] = Field(None, alias="vStart")
    v_end: Optional[float] = Field(None, alias="vEnd")
    v_step_count: Optional[int] = Field(None, alias="vStepCount")


class StopMessage(BaseModel):
    type: Literal["stop"] = "stop"


class ResultsRequest(BaseModel):
    """Ask for a snapshot at the next trial boundary."""
    type: Literal["results"] = "results"


WorkerRequest = Annotated[
    Union[RunMessage, StopMessage, ResultsRequest],
    Field(discriminator="type"),
]


# ============================================================================
# Worker -> caller
# ============================================================================

class ProgressData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    rays_traced: int = Field(0, alias="raysTraced")
    total_nodes_seen: int = Field(0, alias="totalNodesSeen")
    stopped: Optional[bool] = None


class ResultsMessage(BaseModel):
    """Progress snapshot: the graph with live hit counts."""
    type: Literal["results"] = "results"
    id: Optional[int] = None
    results: Dict[str, Any]
    data: ProgressData


class DoneMessage(BaseModel):
    type: Literal["done"] = "done"
    id: Optional[int] = None


class ErrorMessage(BaseModel):
    type: Literal["error"] = "error"
    id: Optional[int] = None
    error: str


WorkerReply = Annotated[
    Union[ResultsMessage, DoneMessage, ErrorMessage],
    Field(discriminator="type"),
]

_request_adapter = TypeAdapter(WorkerRequest)
_reply_adapter = TypeAdapter(WorkerReply)


def parse_request(data: Dict[str, Any]):
    """Validate a caller -> worker message. Raises pydantic.ValidationError."""
    return _request_adapter.validate_python(data)


def parse_reply(data: Dict[str, Any]):
    """Validate a worker -> caller message. Raises pydantic.ValidationError."""
    return _reply_adapter.validate_python(data)


def to_wire(message: BaseModel) -> Dict[str, Any]:
    """Plain dict with wire field names, ready for a queue."""
    return message.model_dump(by_alias=True, exclude_none=True)
