"""
Editor graph type definitions using Pydantic

These models describe the graph as the visual editor hands it over: nodes
with ordered outputs (each carrying a numeric, equation or function
probability) and edges keyed by the source output they leave from.

They validate the input boundary only. The simulation itself runs on
runner.types.SimGraph.
"""

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator


ProbabilityKind = Literal["numeric", "equation", "function"]


# ============================================================================
# Node Structure
# ============================================================================

class NodeOutput(BaseModel):
    """
    One outgoing option of a node.

    Becomes exactly one branch in the simulation graph, in declared order.
    """
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., min_length=1)
    label: str = Field("", max_length=256)
    kind: ProbabilityKind = Field("numeric", description="How the weight is defined")
    probability: Optional[Union[float, str]] = Field(None, description="Weight for kind='numeric'")
    equation: Optional[str] = Field(None, description="Expression for kind='equation'")
    function_body: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("functionBody", "fnBody", "function_body"),
        serialization_alias="functionBody",
        description="Function body for kind='function'",
    )

    @model_validator(mode="before")
    @classmethod
    def default_kind(cls, data: Any) -> Any:
        """Editor drafts may omit kind; a null kind means numeric."""
        if isinstance(data, dict) and data.get("kind") is None:
            data = {**data, "kind": "numeric"}
        return data


class EditorNode(BaseModel):
    """
    Node as held by the editor.

    Accepts both the flat shape {id, label, outputs, errorTerm} and the
    editor's wrapped shape {id, data: {label, outputs, errorTerm}}.
    """
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., min_length=1)
    label: str = Field("", max_length=256)
    outputs: List[NodeOutput] = Field(default_factory=list)
    error_term: Optional[float] = Field(
        0.0,
        validation_alias=AliasChoices("errorTerm", "error_term"),
        serialization_alias="errorTerm",
        description="Residual uncertainty weight",
    )

    @model_validator(mode="before")
    @classmethod
    def unwrap_data(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("data"), dict):
            merged = {k: v for k, v in data.items() if k != "data"}
            for key, value in data["data"].items():
                merged.setdefault(key, value)
            return merged
        return data

    def get_output(self, output_id: str) -> Optional[NodeOutput]:
        for output in self.outputs:
            if output.id == output_id:
                return output
        return None


# ============================================================================
# Edge Structure
# ============================================================================

class EditorEdge(BaseModel):
    """Directed edge from one node output to a target node."""
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    source: str = Field(..., min_length=1, description="Source node id")
    target: str = Field(..., min_length=1, description="Target node id")
    source_output_id: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("sourceOutputId", "sourceHandle", "source_output_id"),
        serialization_alias="sourceOutputId",
        description="Output of the source node this edge leaves from",
    )


# ============================================================================
# Graph Structure
# ============================================================================

class EditorGraph(BaseModel):
    """Full editor state handed to the builder."""
    nodes: List[EditorNode]
    edges: List[EditorEdge] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def accept_node_mapping(cls, data: Any) -> Any:
        """Nodes may arrive as {node_id: metadata}; ids come from the keys."""
        if isinstance(data, dict) and isinstance(data.get("nodes"), dict):
            nodes = []
            for node_id, meta in data["nodes"].items():
                if isinstance(meta, BaseModel):
                    meta = meta.model_dump(by_alias=True)
                nodes.append({**(meta or {}), "id": node_id})
            return {**data, "nodes": nodes}
        return data

    def get_outgoing_edges(self, node_id: str) -> List[EditorEdge]:
        return [e for e in self.edges if e.source == node_id]


def parse_editor_graph(nodes: Any, edges: Any = None) -> EditorGraph:
    """Validate raw editor nodes/edges (lists, mappings or models)."""
    if isinstance(nodes, EditorGraph):
        return nodes
    payload: Dict[str, Any] = {
        "nodes": nodes if isinstance(nodes, dict) else list(nodes or []),
        "edges": list(edges or []),
    }
    return EditorGraph.model_validate(payload)
