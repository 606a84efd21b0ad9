"""Chunking configuration and validation."""

from dataclasses import dataclass, field
from typing import Any

from flowboard.config.settings import Settings, get_settings
from flowboard.exceptions import ConfigurationError
from flowboard.models import ChunkStrategy

# Accepted spellings for each field when a config arrives as a dict
_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "strategy": ("strategy", "chunkMethod", "chunk_method"),
    "chunk_size": ("chunk_size", "chunkSize", "size"),
    "overlap": ("overlap", "chunk_overlap", "chunkOverlap"),
    "preserve_metadata": ("preserve_metadata", "preserveMetadata"),
    "smart_boundaries": ("smart_boundaries", "smartBoundaries"),
    "separators": ("separators",),
    "token_encoding": ("token_encoding", "tokenEncoding"),
}


@dataclass
class ChunkingConfig:
    """Configuration for document segmentation.

    Invalid values raise ``ConfigurationError`` on construction, so a bad
    configuration never reaches a strategy.
    """

    strategy: ChunkStrategy | str = ChunkStrategy.RECURSIVE
    chunk_size: int = 1000
    overlap: int = 200
    preserve_metadata: bool = True
    smart_boundaries: bool = False
    separators: list[str] | None = field(default=None)
    # Tiktoken encoding for chunk token counts; None uses the configured default
    token_encoding: str | None = None

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> "ChunkingConfig":
        """Check the configuration, normalizing the strategy to its enum.

        Raises:
            ConfigurationError: If size, overlap, strategy or separators are invalid.
        """
        try:
            self.strategy = ChunkStrategy(self.strategy)
        except ValueError as e:
            valid = ", ".join(s.value for s in ChunkStrategy)
            raise ConfigurationError(
                f"Unknown chunking strategy '{self.strategy}'. Valid: {valid}"
            ) from e

        if isinstance(self.chunk_size, bool) or not isinstance(self.chunk_size, int):
            raise ConfigurationError(f"chunk_size must be an integer, got {self.chunk_size!r}")
        if isinstance(self.overlap, bool) or not isinstance(self.overlap, int):
            raise ConfigurationError(f"overlap must be an integer, got {self.overlap!r}")
        if self.chunk_size <= 0:
            raise ConfigurationError(f"chunk_size must be > 0, got {self.chunk_size}")
        if self.overlap < 0:
            raise ConfigurationError(f"overlap must be >= 0, got {self.overlap}")
        if self.overlap >= self.chunk_size:
            raise ConfigurationError(
                f"overlap ({self.overlap}) must be smaller than chunk_size ({self.chunk_size})"
            )
        if self.separators is not None and not any(self.separators):
            raise ConfigurationError("separators must contain at least one non-empty separator")
        return self

    @property
    def budget(self) -> int:
        """Characters of fresh content a bounded chunk may hold next to its overlap."""
        return self.chunk_size - self.overlap

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "ChunkingConfig":
        """Build the default configuration from application settings."""
        settings = settings or get_settings()
        return cls(
            strategy=settings.chunk_strategy,
            chunk_size=settings.chunk_size,
            overlap=settings.chunk_overlap,
            preserve_metadata=settings.chunk_preserve_metadata,
            smart_boundaries=settings.chunk_smart_boundaries,
            token_encoding=settings.token_encoding,
        )

    @classmethod
    def from_dict(
        cls, data: dict[str, Any], defaults: "ChunkingConfig | None" = None
    ) -> "ChunkingConfig":
        """Build a configuration from snake_case or camelCase keys.

        Missing keys are taken from ``defaults`` (or the dataclass defaults).
        """
        values: dict[str, Any] = {}
        if defaults is not None:
            values = {
                "strategy": defaults.strategy,
                "chunk_size": defaults.chunk_size,
                "overlap": defaults.overlap,
                "preserve_metadata": defaults.preserve_metadata,
                "smart_boundaries": defaults.smart_boundaries,
                "separators": defaults.separators,
                "token_encoding": defaults.token_encoding,
            }
        for name, aliases in _FIELD_ALIASES.items():
            for alias in aliases:
                if alias in data:
                    values[name] = data[alias]
                    break
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        """Configuration surface in the camelCase form used by the embedding payload."""
        return {
            "strategy": ChunkStrategy(self.strategy).value,
            "chunkSize": self.chunk_size,
            "overlap": self.overlap,
            "preserveMetadata": self.preserve_metadata,
            "smartBoundaries": self.smart_boundaries,
        }
