"""Recursive-hierarchical splitting over a coarse-to-fine separator list.

Separators stay attached to the start of the piece that follows them, so
the produced spans tile the source text exactly.
"""

import structlog

from flowboard.chunking.config import ChunkingConfig
from flowboard.models import Document

from .base import Piece

logger = structlog.get_logger(__name__)

Span = tuple[int, int]


def split_keep_leading(text: str, start: int, end: int, separator: str) -> list[Span]:
    """Split ``text[start:end]`` before each occurrence of ``separator``.

    Leading whitespace of the region belongs to its first piece.
    """
    lead = start
    while lead < end and text[lead].isspace():
        lead += 1
    cuts = [start]
    pos = text.find(separator, max(start + 1, lead), end)
    while pos != -1:
        cuts.append(pos)
        pos = text.find(separator, pos + len(separator), end)
    cuts.append(end)
    return [(a, b) for a, b in zip(cuts, cuts[1:]) if b > a]


def atomize(text: str, start: int, end: int, separators: list[str], budget: int) -> list[Span]:
    """Break a region into pieces no larger than ``budget`` where possible.

    The first separator that occurs in the region is used; pieces that are
    still too large recurse with the finer separators after it. With no
    separator left the piece is returned as is, even when oversized.
    """
    if end - start <= budget:
        return [(start, end)]

    for i, separator in enumerate(separators):
        if not separator:
            continue
        parts = split_keep_leading(text, start, end, separator)
        if len(parts) < 2:
            continue

        atoms: list[Span] = []
        finer = separators[i + 1:]
        for a, b in parts:
            if b - a <= budget:
                atoms.append((a, b))
            else:
                atoms.extend(atomize(text, a, b, finer, budget))
        return atoms

    return [(start, end)]


def merge_spans(atoms: list[Span], budget: int) -> list[Span]:
    """Greedily join consecutive atoms while the joined span fits ``budget``."""
    merged: list[Span] = []
    current: Span | None = None

    for a, b in atoms:
        if current is None:
            current = (a, b)
        elif b - current[0] <= budget:
            current = (current[0], b)
        else:
            merged.append(current)
            current = (a, b)

    if current is not None:
        merged.append(current)
    return merged


def recursive_spans(
    text: str, start: int, end: int, separators: list[str], budget: int
) -> list[Span]:
    """Atomize then merge a region; the result tiles ``[start, end)``."""
    return merge_spans(atomize(text, start, end, separators, budget), budget)


def apply_overlap(spans: list[Span], overlap: int, floor: int = 0) -> list[Piece]:
    """Extend every span after the first backwards by up to ``overlap`` chars."""
    pieces: list[Piece] = []
    for i, (a, b) in enumerate(spans):
        start = a if i == 0 else max(floor, a - overlap)
        pieces.append(Piece(start, b))
    return pieces


def split_recursive(
    document: Document, config: ChunkingConfig, separators: list[str]
) -> list[Piece]:
    """Recursive-hierarchical strategy."""
    text = document.text
    spans = recursive_spans(text, 0, len(text), separators, config.budget)
    logger.debug("recursive_split", spans=len(spans), separators=len(separators))
    return apply_overlap(spans, config.overlap)
