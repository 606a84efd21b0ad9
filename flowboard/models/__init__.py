"""Pydantic data models for the pipeline."""

from .enums import (
    ChunkStrategy,
    ContentType,
    EntryType,
    OutputKind,
    ProcessingState,
    StageKind,
)
from .documents import Chunk, Document, FileMetadata, ListingEntry, RepositoryListing
from .outputs import (
    ChunkedFile,
    ChunkedOutput,
    FilteredListingOutput,
    ListingOutput,
    ParsedOutput,
    StageOutput,
    TextOutput,
)
from .graph import Edge, Node

__all__ = [
    # Enums
    "StageKind",
    "ProcessingState",
    "ChunkStrategy",
    "ContentType",
    "EntryType",
    "OutputKind",
    # Documents
    "ListingEntry",
    "RepositoryListing",
    "FileMetadata",
    "Document",
    "Chunk",
    # Stage outputs
    "TextOutput",
    "ListingOutput",
    "FilteredListingOutput",
    "ParsedOutput",
    "ChunkedFile",
    "ChunkedOutput",
    "StageOutput",
    # Graph
    "Node",
    "Edge",
]
