"""Heading- and paragraph-aware grouping."""

import re

from flowboard.chunking.config import ChunkingConfig
from flowboard.models import ContentType, Document

from .base import Piece, iter_lines, trim_span
from .recursive import recursive_spans

_MD_HEADING = re.compile(r"^(#{1,6})[ \t]+(.+?)[ \t#]*$")
_HTML_HEADING = re.compile(r"^\s*<h([1-6])\b[^>]*>(.*?)(?:</h\1>|$)", re.IGNORECASE)
_FENCE = re.compile(r"^\s*(```|~~~)")
_PARAGRAPH_BREAK = re.compile(r"\n[ \t]*\n")
_TAG = re.compile(r"<[^>]+>")


def _heading_title(line: str) -> str | None:
    match = _MD_HEADING.match(line)
    if match:
        return match.group(2).strip()
    match = _HTML_HEADING.match(line)
    if match:
        return _TAG.sub("", match.group(2)).strip() or None
    return None


def markup_sections(text: str) -> list[tuple[int, int, str | None]]:
    """Split markup at heading lines.

    Returns (start, end, title) per section; text before the first heading
    forms an untitled section. Headings inside fenced code are ignored.
    """
    sections: list[tuple[int, int, str | None]] = []
    current_start, current_title = 0, None
    in_fence = False

    for start, end in iter_lines(text):
        line = text[start:end]
        if _FENCE.match(line):
            in_fence = not in_fence
            continue
        if in_fence:
            continue

        title = _heading_title(line)
        if title is None:
            continue
        if start > current_start:
            sections.append((current_start, start, current_title))
        current_start, current_title = start, title

    sections.append((current_start, len(text), current_title))
    return sections


def paragraph_spans(text: str, start: int, end: int) -> list[tuple[int, int]]:
    """Blank-line delimited paragraphs of a region, trimmed."""
    spans: list[tuple[int, int]] = []
    pos = start
    for match in _PARAGRAPH_BREAK.finditer(text, start, end):
        a, b = trim_span(text, pos, match.start())
        if a < b:
            spans.append((a, b))
        pos = match.end()
    a, b = trim_span(text, pos, end)
    if a < b:
        spans.append((a, b))
    return spans


def group_paragraphs(
    text: str, start: int, end: int, size: int, separators: list[str]
) -> list[tuple[int, int]]:
    """Group consecutive paragraphs up to ``size`` characters.

    A paragraph that alone exceeds ``size`` is split recursively.
    """
    groups: list[tuple[int, int]] = []
    current: tuple[int, int] | None = None

    for a, b in paragraph_spans(text, start, end):
        if b - a > size:
            if current is not None:
                groups.append(current)
                current = None
            for sa, sb in recursive_spans(text, a, b, separators, size):
                sa, sb = trim_span(text, sa, sb)
                if sa < sb:
                    groups.append((sa, sb))
            continue

        if current is None:
            current = (a, b)
        elif b - current[0] <= size:
            current = (current[0], b)
        else:
            groups.append(current)
            current = (a, b)

    if current is not None:
        groups.append(current)
    return groups


def split_semantic(
    document: Document, config: ChunkingConfig, separators: list[str]
) -> list[Piece]:
    """Sections by heading for markup, paragraph groups for prose."""
    text = document.text
    size = config.chunk_size
    is_markup = document.file.content_type == ContentType.MARKUP

    sections = markup_sections(text) if is_markup else [(0, len(text), None)]

    pieces: list[Piece] = []
    for start, end, title in sections:
        start, end = trim_span(text, start, end)
        if start >= end:
            continue
        meta = {"section": title} if title else {}

        if is_markup and end - start <= size:
            pieces.append(Piece(start, end, dict(meta)))
            continue

        for a, b in group_paragraphs(text, start, end, size, separators):
            pieces.append(Piece(a, b, dict(meta)))

    return pieces
