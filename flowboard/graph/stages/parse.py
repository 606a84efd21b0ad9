"""Parse stage: turns listing entries or free text into documents."""

import inspect
import json
import re
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import structlog

from flowboard.chunking.separators import detect_content_type
from flowboard.config.settings import Settings
from flowboard.exceptions import ConfigurationError, ParseError
from flowboard.filtering import extension_of
from flowboard.models import (
    Document,
    EntryType,
    FileMetadata,
    ListingEntry,
    OutputKind,
    ParsedOutput,
    StageKind,
    StageOutput,
    TextOutput,
)

from ..bus import TriggerBus
from ..stage import Stage
from ..store import GraphStore

logger = structlog.get_logger(__name__)

ContentLoader = Callable[[ListingEntry], Awaitable[str | None] | str | None]


@dataclass
class ParseOptions:
    """Per-run parser switches."""

    preserve_formatting: bool = True
    remove_empty_lines: bool = False
    normalize_whitespace: bool = False


_EMPTY_LINE = re.compile(r"^[ \t]*\r?\n", re.MULTILINE)
_WHITESPACE = re.compile(r"\s+")
_MD_HEADER = re.compile(r"^#{1,6}\s+", re.MULTILINE)
_MD_BOLD = re.compile(r"\*\*(.*?)\*\*")
_MD_ITALIC = re.compile(r"\*(.*?)\*")
_MD_INLINE_CODE = re.compile(r"`([^`\n]*)`")
_MD_FENCE = re.compile(r"^```[^\n]*$\n?", re.MULTILINE)
_MD_IMAGE = re.compile(r"!\[([^\]]*)\]\(([^)]+)\)")
_MD_LINK = re.compile(r"\[([^\]]+)\]\([^)]+\)")
_HTML_TAG = re.compile(r"<[^>]+>")
_HTML_SCRIPT = re.compile(r"<(script|style)\b[\s\S]*?</\1>", re.IGNORECASE)
_YAML_KEY = re.compile(r"^\s*[\w-]+:", re.MULTILINE)
_FUNCTION = re.compile(
    r"^\s*(?:async\s+)?def\s+\w+|function\s+\w+\s*\(|(?:const|let)\s+\w+\s*=\s*(?:async\s*)?\([^)]*\)\s*=>",
    re.MULTILINE,
)
_CLASS = re.compile(r"^\s*(?:export\s+)?class\s+\w+", re.MULTILINE)
_IMPORT = re.compile(r"^\s*(?:import|from)\s+\S", re.MULTILINE)

_CODE_EXTENSIONS = {"js", "jsx", "ts", "tsx", "mjs", "cjs", "py", "java", "go", "rs", "rb", "php"}


def parse_text(content: str, options: ParseOptions) -> tuple[str, dict[str, Any]]:
    text = content.strip()
    if options.remove_empty_lines:
        text = _EMPTY_LINE.sub("", text)
    if options.normalize_whitespace:
        text = _WHITESPACE.sub(" ", text)
    return text, {
        "type": "text",
        "lines": content.count("\n") + 1,
        "words": len(text.split()),
    }


def parse_code(content: str, options: ParseOptions) -> tuple[str, dict[str, Any]]:
    text = content.strip("\n")
    if options.remove_empty_lines:
        text = _EMPTY_LINE.sub("", text)
    return text, {
        "type": "code",
        "lines": content.count("\n") + 1,
        "functions": len(_FUNCTION.findall(content)),
        "classes": len(_CLASS.findall(content)),
        "imports": len(_IMPORT.findall(content)),
    }


def parse_markdown(content: str, options: ParseOptions) -> tuple[str, dict[str, Any]]:
    metadata = {
        "type": "markdown",
        "headers": len(_MD_HEADER.findall(content)),
        "links": len(_MD_LINK.findall(content)) - len(_MD_IMAGE.findall(content)),
        "images": len(_MD_IMAGE.findall(content)),
        "lines": content.count("\n") + 1,
    }
    text = content.strip()
    if not options.preserve_formatting:
        text = _MD_HEADER.sub("", text)
        text = _MD_BOLD.sub(r"\1", text)
        text = _MD_ITALIC.sub(r"\1", text)
        text = _MD_FENCE.sub("", text)
        text = _MD_INLINE_CODE.sub(r"\1", text)
        text = _MD_IMAGE.sub(r"\1", text)
        text = _MD_LINK.sub(r"\1", text)
    return text, metadata


def parse_json(content: str, options: ParseOptions) -> tuple[str, dict[str, Any]]:
    try:
        parsed = json.loads(content)
    except json.JSONDecodeError as e:
        return content.strip(), {"type": "json", "valid": False, "error": str(e)}
    text = content.strip() if options.preserve_formatting else json.dumps(parsed, indent=2)
    return text, {
        "type": "json",
        "valid": True,
        "keys": len(parsed) if isinstance(parsed, dict) else 0,
    }


def parse_html(content: str, options: ParseOptions) -> tuple[str, dict[str, Any]]:
    stripped = _HTML_SCRIPT.sub(" ", content)
    plain = _WHITESPACE.sub(" ", _HTML_TAG.sub(" ", stripped)).strip()
    text = content.strip() if options.preserve_formatting else plain
    return text, {
        "type": "html",
        "tags": len(_HTML_TAG.findall(content)),
        "text_length": len(plain),
    }


def parse_yaml(content: str, options: ParseOptions) -> tuple[str, dict[str, Any]]:
    return content.strip(), {
        "type": "yaml",
        "lines": content.count("\n") + 1,
        "keys": len(_YAML_KEY.findall(content)),
    }


_PARSERS: dict[str, Callable[[str, ParseOptions], tuple[str, dict[str, Any]]]] = {
    "md": parse_markdown,
    "markdown": parse_markdown,
    "json": parse_json,
    "html": parse_html,
    "htm": parse_html,
    "yaml": parse_yaml,
    "yml": parse_yaml,
    **{ext: parse_code for ext in _CODE_EXTENSIONS},
}


def parse_content(name: str, content: str, options: ParseOptions) -> tuple[str, dict[str, Any]]:
    """Parse one file's content with the parser for its extension."""
    parser = _PARSERS.get(extension_of(name), parse_text)
    return parser(content, options)


class ParseStage(Stage):
    """Produces one :class:`Document` per parsable upstream file.

    Per-file failures are counted in the output and do not fail the stage.
    """

    kind = StageKind.PARSE
    accepts = (OutputKind.FILTERED_LISTING, OutputKind.LISTING, OutputKind.TEXT)
    default_config = {
        "preserve_formatting": True,
        "remove_empty_lines": False,
        "normalize_whitespace": False,
        "max_file_size_mb": None,
    }

    def __init__(
        self,
        node_id: str,
        store: GraphStore,
        bus: TriggerBus,
        settings: Settings | None = None,
        content_loader: ContentLoader | None = None,
    ) -> None:
        super().__init__(node_id, store, bus, settings)
        self.content_loader = content_loader

    def validate_config(self, config: dict[str, Any]) -> None:
        limit = config.get("max_file_size_mb")
        if limit is not None and (not isinstance(limit, (int, float)) or limit <= 0):
            raise ConfigurationError(f"max_file_size_mb must be > 0, got {limit!r}")

    @property
    def options(self) -> ParseOptions:
        config = self.config
        return ParseOptions(
            preserve_formatting=bool(config["preserve_formatting"]),
            remove_empty_lines=bool(config["remove_empty_lines"]),
            normalize_whitespace=bool(config["normalize_whitespace"]),
        )

    @property
    def max_bytes(self) -> float:
        limit = self.config["max_file_size_mb"] or self.settings.parse_max_file_size_mb
        return limit * 1024 * 1024

    async def process(self, input_data: StageOutput | None) -> ParsedOutput:
        if isinstance(input_data, TextOutput):
            return self._parse_text_input(input_data)

        entries = [e for e in input_data.listing.contents if e.type == EntryType.FILE]
        output = ParsedOutput(total_files=len(entries))
        options = self.options

        for entry in entries:
            try:
                document = await self._parse_entry(entry, options)
            except _Skipped:
                output.skipped_files += 1
                continue
            except Exception as e:
                output.errors += 1
                logger.warning("parse_file_error", node_id=self.node_id, path=entry.path, error=str(e))
                continue
            if document is None:
                continue
            output.documents.append(document)
            output.parsed_files += 1
            output.total_size += document.file.size

        logger.info(
            "parse_complete",
            node_id=self.node_id,
            total=output.total_files,
            parsed=output.parsed_files,
            skipped=output.skipped_files,
            errors=output.errors,
        )
        if not output.documents:
            raise ParseError(
                f"No files could be parsed ({output.total_files} offered, "
                f"{output.skipped_files} skipped, {output.errors} errors)"
            )
        return output

    async def _load(self, entry: ListingEntry) -> str:
        if entry.content is not None:
            return entry.content
        if self.content_loader is None:
            raise ParseError(f"No content for '{entry.path}' and no content loader")
        content = self.content_loader(entry)
        if inspect.isawaitable(content):
            content = await content
        if content is None:
            raise ParseError(f"Content loader returned nothing for '{entry.path}'")
        return content

    async def _parse_entry(self, entry: ListingEntry, options: ParseOptions) -> Document | None:
        if entry.size and entry.size > self.max_bytes:
            logger.info("parse_file_skipped", path=entry.path, size=entry.size)
            raise _Skipped
        content = await self._load(entry)
        size = entry.size or len(content.encode("utf-8"))
        if size > self.max_bytes:
            logger.info("parse_file_skipped", path=entry.path, size=size)
            raise _Skipped

        text, metadata = parse_content(entry.name, content, options)
        if not text.strip():
            return None
        return Document(
            document_id=f"doc_{uuid.uuid4().hex[:12]}",
            file=FileMetadata(
                name=entry.name,
                path=entry.path,
                size=size,
                extension=extension_of(entry.name),
                content_type=detect_content_type(entry.name),
            ),
            text=text,
            metadata={**metadata, "original_path": entry.path},
        )

    def _parse_text_input(self, input_data: TextOutput) -> ParsedOutput:
        text, metadata = parse_text(input_data.text, self.options)
        size = len(input_data.text.encode("utf-8"))
        document = Document(
            document_id=f"doc_{uuid.uuid4().hex[:12]}",
            file=FileMetadata(name="input.txt", path="input.txt", size=size, extension="txt"),
            text=text,
            metadata={**metadata, "source": input_data.source},
        )
        return ParsedOutput(
            documents=[document],
            total_files=1,
            parsed_files=1,
            total_size=size,
        )


class _Skipped(Exception):
    """File exceeds the size limit."""
