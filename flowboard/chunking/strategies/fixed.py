"""Fixed-size windows with overlap."""

from flowboard.chunking.config import ChunkingConfig
from flowboard.models import Document

from .base import Piece


def _snap_to_whitespace(text: str, start: int, end: int, size: int, overlap: int) -> int:
    """Move a window end back to just after the last whitespace in its final fifth.

    Returns the original end when no whitespace is found or when snapping
    would stop the window from advancing.
    """
    floor = start + (size * 4) // 5
    for pos in range(end - 1, floor - 1, -1):
        if text[pos].isspace():
            snapped = pos + 1
            if snapped - overlap > start:
                return snapped
            break
    return end


def split_fixed(document: Document, config: ChunkingConfig, separators: list[str]) -> list[Piece]:
    """Slide a window of ``chunk_size`` by ``chunk_size - overlap``.

    Whitespace-only windows are dropped. The last window may be shorter than
    ``chunk_size``. Stops once the window start reaches the text length.
    """
    text = document.text
    size, overlap = config.chunk_size, config.overlap
    step = size - overlap
    length = len(text)

    pieces: list[Piece] = []
    start = 0
    while start < length:
        end = min(start + size, length)
        snapped = False
        if config.smart_boundaries and end < length:
            new_end = _snap_to_whitespace(text, start, end, size, overlap)
            snapped = new_end != end
            end = new_end

        if text[start:end].strip():
            pieces.append(Piece(start, end))

        start = end - overlap if snapped else start + step

    return pieces
