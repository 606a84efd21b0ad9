"""Segmentation engine: strategy dispatch and chunk assembly."""

import uuid

import structlog
import tiktoken

from flowboard.config.settings import get_settings
from flowboard.exceptions import SegmentationError
from flowboard.models import Chunk, ChunkStrategy, Document

from .config import ChunkingConfig
from .separators import SeparatorRegistry, default_registry
from .strategies import (
    Piece,
    StrategyFn,
    split_code,
    split_domain,
    split_fixed,
    split_recursive,
    split_semantic,
)

logger = structlog.get_logger(__name__)

STRATEGIES: dict[ChunkStrategy, StrategyFn] = {
    ChunkStrategy.FIXED: split_fixed,
    ChunkStrategy.RECURSIVE: split_recursive,
    ChunkStrategy.SEMANTIC: split_semantic,
    ChunkStrategy.CODE: split_code,
    ChunkStrategy.DOMAIN: split_domain,
}


# Resolved encodings by name; None marks one that failed to load
_encodings: dict[str, tiktoken.Encoding | None] = {}


def _get_encoding(encoding_name: str) -> tiktoken.Encoding | None:
    if encoding_name not in _encodings:
        try:
            _encodings[encoding_name] = tiktoken.get_encoding(encoding_name)
        except Exception as e:
            logger.warning("tiktoken_encoding_fallback", encoding=encoding_name, error=str(e))
            _encodings[encoding_name] = None
    return _encodings[encoding_name]


def count_tokens(text: str, encoding_name: str | None = None) -> int:
    """Count tokens in text.

    Args:
        text: Text to count.
        encoding_name: Tiktoken encoding name, defaults to the configured one.

    Returns:
        Token count, or a ``len(text) // 4`` estimate if the encoding is unavailable.
    """
    encoding = _get_encoding(encoding_name or get_settings().token_encoding)
    if encoding is None:
        # Fallback estimate
        return len(text) // 4
    return len(encoding.encode(text))


def _run_strategy(
    document: Document, config: ChunkingConfig, separators: list[str]
) -> list[Piece]:
    strategy_fn = STRATEGIES[config.strategy]
    try:
        pieces = strategy_fn(document, config, separators)
        if not pieces:
            raise SegmentationError(
                f"{config.strategy.value} strategy produced no chunks for non-empty text"
            )
        return pieces
    except Exception as e:
        logger.warning(
            "segmentation_fallback",
            document_id=document.document_id,
            strategy=config.strategy.value,
            error=str(e),
        )
        return [
            Piece(
                0,
                len(document.text),
                {"error": str(e), "error_type": type(e).__name__, "fallback": True},
            )
        ]


def segment(
    document: Document,
    config: ChunkingConfig | None = None,
    registry: SeparatorRegistry | None = None,
) -> list[Chunk]:
    """Split a document into ordered chunks.

    Never raises for a valid configuration: a failing strategy degrades to
    a single verbatim chunk flagged with ``fallback``.

    Args:
        document: Document to segment.
        config: Chunking configuration, defaults to the configured settings.
        registry: Separator registry keyed by content type.

    Returns:
        Chunks numbered 0..N-1, each carrying ``total_chunks = N``.

    Raises:
        ConfigurationError: If the configuration is invalid.
    """
    config = (config or ChunkingConfig.from_settings()).validate()
    registry = registry or default_registry

    if not document.text.strip():
        logger.debug("segment_skip_empty", document_id=document.document_id)
        return []

    separators = config.separators or registry.get(document.file.content_type)
    pieces = _run_strategy(document, config, separators)

    total = len(pieces)
    chunks: list[Chunk] = []
    prev_end: int | None = None
    for index, piece in enumerate(pieces):
        text = document.text[piece.start:piece.end]
        overlap = max(0, prev_end - piece.start) if prev_end is not None else 0
        prev_end = piece.end

        metadata = {
            **piece.metadata,
            "token_count": count_tokens(text, config.token_encoding),
            "char_count": len(text),
            "overlap": overlap,
        }
        if config.preserve_metadata:
            metadata.update(
                {
                    "file_name": document.file.name,
                    "file_path": document.file.path,
                    "extension": document.file.extension,
                    "content_type": document.file.content_type.value,
                    "chunk_size": config.chunk_size,
                    "chunk_overlap": config.overlap,
                }
            )

        chunks.append(
            Chunk(
                chunk_id=f"chunk_{uuid.uuid4().hex[:12]}",
                document_id=document.document_id,
                chunk_index=index,
                total_chunks=total,
                text=text,
                strategy=config.strategy,
                start_offset=piece.start,
                end_offset=piece.end,
                metadata=metadata,
            )
        )

    logger.info(
        "chunking_complete",
        document_id=document.document_id,
        strategy=config.strategy.value,
        num_chunks=total,
    )
    return chunks
