"""Code-aware splitting at top-level declarations."""

import re
from dataclasses import dataclass

import structlog

from flowboard.chunking.config import ChunkingConfig
from flowboard.chunking.separators import detect_language
from flowboard.models import Document

from .base import Piece, iter_lines, line_end, trim_span
from .recursive import apply_overlap, recursive_spans, split_recursive

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class DeclarationPattern:
    """Regex recognizing one kind of top-level declaration.

    The pattern must expose the declared name as the ``name`` group.
    """

    declaration: str
    pattern: re.Pattern


@dataclass(frozen=True)
class LanguageSpec:
    """How to find and delimit declarations in one language."""

    name: str
    block_style: str  # "brace", "indent" or "end"
    patterns: tuple[DeclarationPattern, ...]
    quotes: str = "\"'`"
    line_comment: str = "//"


@dataclass
class Declaration:
    start: int
    end: int
    name: str
    declaration: str


def _p(declaration: str, pattern: str) -> DeclarationPattern:
    return DeclarationPattern(declaration, re.compile(pattern, re.MULTILINE))


_JS_PATTERNS = (
    _p(
        "function",
        r"^(?:export[ \t]+)?(?:default[ \t]+)?(?:async[ \t]+)?function\b[ \t]*\*?[ \t]*(?P<name>\w*)",
    ),
    _p(
        "class",
        r"^(?:export[ \t]+)?(?:default[ \t]+)?(?:abstract[ \t]+)?class[ \t]+(?P<name>\w+)",
    ),
    _p(
        "function",
        r"^(?:export[ \t]+)?(?:const|let|var)[ \t]+(?P<name>\w+)[ \t]*(?::[^=\n]+)?=[ \t]*"
        r"(?:async[ \t]*)?(?:\([^)]*\)|\w+)[ \t]*(?::[^=\n]+)?=>",
    ),
    _p("interface", r"^(?:export[ \t]+)?interface[ \t]+(?P<name>\w+)"),
)

LANGUAGE_SPECS: dict[str, LanguageSpec] = {
    "python": LanguageSpec(
        name="python",
        block_style="indent",
        patterns=(
            _p("function", r"^(?:async[ \t]+)?def[ \t]+(?P<name>\w+)"),
            _p("class", r"^class[ \t]+(?P<name>\w+)"),
        ),
        quotes="",
        line_comment="#",
    ),
    "javascript": LanguageSpec(name="javascript", block_style="brace", patterns=_JS_PATTERNS),
    "typescript": LanguageSpec(name="typescript", block_style="brace", patterns=_JS_PATTERNS),
    "java": LanguageSpec(
        name="java",
        block_style="brace",
        patterns=(
            _p(
                "class",
                r"^(?:(?:public|protected|private|static|final|abstract|sealed)[ \t]+)*"
                r"(?:class|interface|enum|record)[ \t]+(?P<name>\w+)",
            ),
        ),
        quotes="\"'",
    ),
    "go": LanguageSpec(
        name="go",
        block_style="brace",
        patterns=(
            _p("function", r"^func[ \t]+(?:\([^)]*\)[ \t]*)?(?P<name>\w+)"),
            _p("type", r"^type[ \t]+(?P<name>\w+)[ \t]+(?:struct|interface)\b"),
        ),
        quotes="\"`",
    ),
    "rust": LanguageSpec(
        name="rust",
        block_style="brace",
        patterns=(
            _p(
                "function",
                r"^(?:pub(?:\([^)]*\))?[ \t]+)?(?:const[ \t]+)?(?:async[ \t]+)?(?:unsafe[ \t]+)?"
                r"fn[ \t]+(?P<name>\w+)",
            ),
            _p(
                "type",
                r"^(?:pub(?:\([^)]*\))?[ \t]+)?(?:struct|enum|trait|mod)[ \t]+(?P<name>\w+)",
            ),
            _p("impl", r"^impl(?:<[^>\n]*>)?[ \t]+(?P<name>[\w:]+)"),
        ),
        quotes="\"",
    ),
    "ruby": LanguageSpec(
        name="ruby",
        block_style="end",
        patterns=(
            _p("function", r"^def[ \t]+(?P<name>[\w.?!=]+)"),
            _p("class", r"^(?:class|module)[ \t]+(?P<name>[\w:]+)"),
        ),
        quotes="",
        line_comment="#",
    ),
    "php": LanguageSpec(
        name="php",
        block_style="brace",
        patterns=(
            _p("function", r"^function[ \t]+(?P<name>\w+)"),
            _p(
                "class",
                r"^(?:(?:abstract|final)[ \t]+)?(?:class|interface|trait)[ \t]+(?P<name>\w+)",
            ),
        ),
        quotes="\"'",
    ),
}


def _skip_string(text: str, pos: int, quote: str) -> int:
    """Index just past the string literal opened at ``pos``."""
    i = pos + 1
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == quote:
            return i + 1
        if ch == "\n" and quote != "`":
            return i
        i += 1
    return n


def _brace_block_end(text: str, start: int, limit: int, spec: LanguageSpec) -> int:
    """End of a brace-delimited declaration starting at ``start``.

    Before the body opens, a ``;`` at paren depth 0 (or reaching the next
    declaration at ``limit``) means the declaration has no body and ends
    with its line. An unbalanced body runs to the end of the text.
    """
    n = len(text)
    depth = 0
    parens = 0
    opened = False
    i = start

    while i < n:
        if not opened and i >= limit:
            break
        ch = text[i]

        if spec.line_comment and text.startswith(spec.line_comment, i):
            i = line_end(text, i)
            continue
        if text.startswith("/*", i):
            close = text.find("*/", i + 2)
            i = n if close == -1 else close + 2
            continue
        if ch in spec.quotes:
            i = _skip_string(text, i, ch)
            continue

        if not opened:
            if ch in "([":
                parens += 1
            elif ch in ")]":
                parens = max(0, parens - 1)
            elif ch == ";" and parens == 0:
                return line_end(text, i)
            elif ch == "{" and parens == 0:
                opened = True
                depth = 1
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return line_end(text, i)
        i += 1

    if not opened:
        return line_end(text, start)
    return n


def _indent_block_end(text: str, start: int) -> int:
    """End of an indentation-delimited declaration (last non-blank body line)."""
    block_end = line_end(text, start)
    for a, b in iter_lines(text, min(block_end + 1, len(text))):
        line = text[a:b]
        if not line.strip():
            continue
        if line[0] in " \t)]}":
            block_end = b
            continue
        break
    return block_end


_RUBY_END = re.compile(r"^end\b", re.MULTILINE)


def _end_block_end(text: str, start: int) -> int:
    match = _RUBY_END.search(text, line_end(text, start))
    if match is None:
        return _indent_block_end(text, start)
    return line_end(text, match.start())


def _include_decorators(text: str, start: int, floor: int) -> int:
    """Extend a python declaration upwards over its decorator lines."""
    while start > floor:
        prev_end = start - 1
        prev_start = text.rfind("\n", floor, prev_end) + 1
        prev_start = max(prev_start, floor)
        if not text[prev_start:prev_end].startswith("@"):
            break
        start = prev_start
    return start


def find_declarations(text: str, spec: LanguageSpec) -> list[Declaration]:
    """Top-level declarations in source order, non-overlapping."""
    matches: list[tuple[int, str, str]] = []
    for dp in spec.patterns:
        for match in dp.pattern.finditer(text):
            matches.append((match.start(), match.group("name") or "<anonymous>", dp.declaration))
    matches.sort(key=lambda m: m[0])

    declarations: list[Declaration] = []
    last_end = 0
    for i, (start, name, kind) in enumerate(matches):
        if start < last_end:
            continue
        limit = next((m[0] for m in matches[i + 1:] if m[0] > start), len(text))

        if spec.block_style == "brace":
            end = _brace_block_end(text, start, limit, spec)
        elif spec.block_style == "end":
            end = _end_block_end(text, start)
        else:
            end = _indent_block_end(text, start)

        if spec.name == "python":
            start = _include_decorators(text, start, last_end)

        declarations.append(Declaration(start=start, end=end, name=name, declaration=kind))
        last_end = end

    return declarations


def _leftover_pieces(
    text: str, start: int, end: int, config: ChunkingConfig, separators: list[str], language: str
) -> list[Piece]:
    start, end = trim_span(text, start, end)
    if start >= end:
        return []
    spans = recursive_spans(text, start, end, separators, config.budget)
    pieces = apply_overlap(spans, config.overlap, floor=start)
    for piece in pieces:
        piece.metadata.update({"code_unit": "module", "language": language})
    return pieces


def _declaration_pieces(
    text: str, decl: Declaration, config: ChunkingConfig, separators: list[str], language: str
) -> list[Piece]:
    start, end = trim_span(text, decl.start, decl.end)
    if start >= end:
        return []
    meta = {
        "code_unit": "declaration",
        "symbol": decl.name,
        "declaration": decl.declaration,
        "language": language,
    }
    if end - start <= config.chunk_size:
        return [Piece(start, end, meta)]

    spans = recursive_spans(text, start, end, separators, config.budget)
    pieces = apply_overlap(spans, config.overlap, floor=start)
    for part, piece in enumerate(pieces):
        piece.metadata.update(meta)
        piece.metadata["part"] = part
    return pieces


def split_code(document: Document, config: ChunkingConfig, separators: list[str]) -> list[Piece]:
    """Carve named chunks at declarations; leftovers go through recursive splitting.

    Unsupported languages are split recursively as a whole.
    """
    language = detect_language(document.file.name) or document.metadata.get("language")
    spec = LANGUAGE_SPECS.get(language or "")
    if spec is None:
        logger.debug("code_split_unknown_language", file=document.file.name)
        return split_recursive(document, config, separators)

    text = document.text
    declarations = find_declarations(text, spec)

    pieces: list[Piece] = []
    cursor = 0
    for decl in declarations:
        if decl.start > cursor:
            pieces.extend(_leftover_pieces(text, cursor, decl.start, config, separators, spec.name))
        pieces.extend(_declaration_pieces(text, decl, config, separators, spec.name))
        cursor = max(cursor, decl.end)
    if cursor < len(text):
        pieces.extend(_leftover_pieces(text, cursor, len(text), config, separators, spec.name))

    logger.debug(
        "code_split",
        language=spec.name,
        declarations=len(declarations),
        pieces=len(pieces),
    )
    return pieces
