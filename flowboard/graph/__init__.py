"""Pipeline graph: store, trigger bus, stages and runtime."""

from .bus import TriggerBus, TriggerMessage
from .discovery import coerce_output, discover_input
from .runtime import Pipeline, summarize_output
from .stage import Stage
from .stages import (
    STAGE_TYPES,
    ChunkStage,
    FilterStage,
    ParseStage,
    RepositoryStage,
    TextStage,
)
from .store import GraphStore

__all__ = [
    "GraphStore",
    "TriggerBus",
    "TriggerMessage",
    "discover_input",
    "coerce_output",
    "Stage",
    "STAGE_TYPES",
    "TextStage",
    "RepositoryStage",
    "FilterStage",
    "ParseStage",
    "ChunkStage",
    "Pipeline",
    "summarize_output",
]
