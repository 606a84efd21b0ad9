"""Document segmentation."""

from .config import ChunkingConfig
from .engine import STRATEGIES, count_tokens, segment
from .separators import (
    DEFAULT_SEPARATORS,
    SeparatorRegistry,
    default_registry,
    detect_content_type,
    detect_language,
)

__all__ = [
    "ChunkingConfig",
    "DEFAULT_SEPARATORS",
    "STRATEGIES",
    "SeparatorRegistry",
    "count_tokens",
    "default_registry",
    "detect_content_type",
    "detect_language",
    "segment",
]
