"""Shared span helpers for segmentation strategies."""

from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import Any

from flowboard.chunking.config import ChunkingConfig
from flowboard.models import Document


@dataclass
class Piece:
    """A span of the document text proposed as one chunk."""

    start: int
    end: int
    metadata: dict[str, Any] = field(default_factory=dict)


StrategyFn = Callable[[Document, ChunkingConfig, list[str]], list[Piece]]


def trim_span(text: str, start: int, end: int) -> tuple[int, int]:
    """Shrink a span so it neither starts nor ends with whitespace."""
    while start < end and text[start].isspace():
        start += 1
    while end > start and text[end - 1].isspace():
        end -= 1
    return start, end


def line_end(text: str, pos: int) -> int:
    """Offset of the newline ending the line containing ``pos`` (or len(text))."""
    idx = text.find("\n", pos)
    return len(text) if idx == -1 else idx


def iter_lines(text: str, start: int = 0, end: int | None = None) -> Iterator[tuple[int, int]]:
    """Yield (start, end) of each line in the region, newline excluded."""
    end = len(text) if end is None else end
    pos = start
    while pos < end:
        stop = min(line_end(text, pos), end)
        yield pos, stop
        pos = stop + 1
