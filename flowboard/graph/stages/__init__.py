"""Concrete pipeline stages."""

from flowboard.models import StageKind

from ..stage import Stage
from .chunk import ChunkStage
from .filter import FilterStage
from .parse import ParseOptions, ParseStage, parse_content
from .repository import RepositoryStage
from .text import TextStage

STAGE_TYPES: dict[StageKind, type[Stage]] = {
    StageKind.TEXT: TextStage,
    StageKind.REPOSITORY: RepositoryStage,
    StageKind.FILTER: FilterStage,
    StageKind.PARSE: ParseStage,
    StageKind.CHUNK: ChunkStage,
}

__all__ = [
    "STAGE_TYPES",
    "ChunkStage",
    "FilterStage",
    "ParseOptions",
    "ParseStage",
    "RepositoryStage",
    "TextStage",
    "parse_content",
]
