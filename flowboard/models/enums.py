"""Enumeration types for the pipeline models."""

from enum import Enum


class StageKind(str, Enum):
    """Kinds of stages that can sit on the pipeline graph."""

    TEXT = "text"
    REPOSITORY = "repository"
    FILTER = "filter"
    PARSE = "parse"
    CHUNK = "chunk"


class ProcessingState(str, Enum):
    """Lifecycle of a single stage run."""

    IDLE = "idle"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ChunkStrategy(str, Enum):
    """Segmentation strategies supported by the chunking engine."""

    FIXED = "fixed"
    RECURSIVE = "recursive"
    SEMANTIC = "semantic"
    CODE = "code"
    DOMAIN = "domain"


class ContentType(str, Enum):
    """Closed set of content families used to pick separator tables."""

    CODE = "code"
    MARKUP = "markup"
    CONFIG = "config"
    TEXT = "text"


class EntryType(str, Enum):
    """Type of a repository listing entry."""

    FILE = "file"
    FOLDER = "folder"


class OutputKind(str, Enum):
    """Discriminator for committed stage outputs."""

    TEXT = "text"
    LISTING = "listing"
    FILTERED_LISTING = "filtered_listing"
    PARSED = "parsed"
    CHUNKED = "chunked"
