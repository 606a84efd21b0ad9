"""Models for pipeline graph nodes and edges."""

from typing import Any

from pydantic import BaseModel, Field

from .enums import ProcessingState, StageKind
from .outputs import StageOutput


class Node(BaseModel):
    """A stage on the pipeline graph and its last committed result."""

    node_id: str = Field(..., description="Unique node identifier")
    kind: StageKind = Field(..., description="Stage kind")
    config: dict[str, Any] = Field(default_factory=dict, description="Stage configuration")
    output: StageOutput | None = Field(None, description="Last committed output")
    state: ProcessingState = Field(default=ProcessingState.IDLE)
    error: str | None = Field(None, description="Error message of the last failed run")
    waiting: bool = Field(default=False, description="Stage is idle waiting for input")


class Edge(BaseModel):
    """Directed connection between two nodes."""

    edge_id: str = Field(..., description="Unique edge identifier")
    source: str = Field(..., description="Source node id")
    target: str = Field(..., description="Target node id")
    source_port: str | None = Field(None, description="Optional source port label")
    target_port: str | None = Field(None, description="Optional target port label")
