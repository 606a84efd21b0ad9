"""Section-aware splitting for job scripts, build recipes and container recipes."""

import re

import structlog

from flowboard.chunking.config import ChunkingConfig
from flowboard.models import Document

from .base import Piece, iter_lines, trim_span
from .recursive import apply_overlap, recursive_spans, split_recursive

logger = structlog.get_logger(__name__)

UNRECOGNIZED = "unrecognized"

_DIRECTIVE = re.compile(r"^#(?:SBATCH|PBS|BSUB|\$)(?:\s|$)", re.MULTILINE)
_MODULE = re.compile(
    r"^[ \t]*(?:module[ \t]+(?:load|unload|purge|use|swap|add|rm)\b|ml(?:[ \t]|$))",
    re.MULTILINE,
)
_SHEBANG = re.compile(r"^#!")
_COMMENT = re.compile(r"^[ \t]*#")

RECIPE_KEYS = ("package", "source", "build", "requirements", "test", "about", "outputs", "extra")
_RECIPE_KEY = re.compile(rf"^({'|'.join(RECIPE_KEYS)}):", re.MULTILINE)
_TOP_LEVEL_KEY = re.compile(r"^[A-Za-z_][\w-]*:")

_CONTAINER_HEADER = re.compile(
    r"^(?:Bootstrap|From|Stage|Include|MirrorURL|OSVersion):", re.MULTILINE | re.IGNORECASE
)
_CONTAINER_SECTION = re.compile(
    r"^%(post|environment|runscript|files|labels|help|setup|test|startscript|arguments|app\w*)\b",
    re.MULTILINE,
)


def detect_mode(text: str) -> str | None:
    """Which structured format the text looks like, if any."""
    if _CONTAINER_HEADER.search(text) or _CONTAINER_SECTION.search(text):
        return "container"
    if len(set(_RECIPE_KEY.findall(text))) >= 2:
        return "recipe"
    if _DIRECTIVE.search(text) or _MODULE.search(text):
        return "job"
    return None


def _job_label(line: str) -> str | None:
    if not line.strip():
        return None
    if _SHEBANG.match(line):
        return "header"
    if _DIRECTIVE.match(line):
        return "directives"
    if _COMMENT.match(line):
        return None
    if _MODULE.match(line):
        return "modules"
    return "commands"


def _recipe_label(line: str) -> str | None:
    if not line.strip() or line[0] in " \t#":
        return None
    match = _RECIPE_KEY.match(line)
    if match:
        return match.group(1)
    return UNRECOGNIZED


def _container_label(line: str) -> str | None:
    if _CONTAINER_HEADER.match(line):
        return "header"
    match = re.match(r"^%(\w+)", line)
    if match:
        return match.group(1).lower()
    return None


_LABELERS = {
    "job": _job_label,
    "recipe": _recipe_label,
    "container": _container_label,
}


def section_spans(text: str, mode: str) -> list[tuple[int, int, str]]:
    """Label contiguous regions of ``text`` with their section name.

    Blank and comment lines continue the current section. Adjacent lines
    with the same name form one region.
    """
    labeler = _LABELERS[mode]
    regions: list[tuple[int, int, str]] = []
    current_start, current_label = 0, UNRECOGNIZED

    for start, _end in iter_lines(text):
        label = labeler(text[start:_end])
        if label is None or label == current_label:
            continue
        if start > current_start:
            regions.append((current_start, start, current_label))
        current_start, current_label = start, label

    regions.append((current_start, len(text), current_label))
    return regions


def _region_pieces(
    text: str, start: int, end: int, label: str, config: ChunkingConfig, separators: list[str]
) -> list[Piece]:
    start, end = trim_span(text, start, end)
    if start >= end:
        return []
    if label != UNRECOGNIZED and end - start <= config.chunk_size:
        return [Piece(start, end, {"section": label})]

    spans = recursive_spans(text, start, end, separators, config.budget)
    pieces = apply_overlap(spans, config.overlap, floor=start)
    for part, piece in enumerate(pieces):
        piece.metadata["section"] = label
        if label != UNRECOGNIZED:
            piece.metadata["part"] = part
    return pieces


def split_domain(document: Document, config: ChunkingConfig, separators: list[str]) -> list[Piece]:
    """One chunk per recognized section of a structured script or recipe."""
    text = document.text
    mode = detect_mode(text)
    if mode is None:
        logger.debug("domain_split_unrecognized", file=document.file.name)
        return split_recursive(document, config, separators)

    regions = section_spans(text, mode)
    if all(label == UNRECOGNIZED for _, _, label in regions):
        return split_recursive(document, config, separators)

    pieces: list[Piece] = []
    for start, end, label in regions:
        for piece in _region_pieces(text, start, end, label, config, separators):
            piece.metadata["domain"] = mode
            pieces.append(piece)

    logger.debug("domain_split", mode=mode, sections=len(regions), pieces=len(pieces))
    return pieces
