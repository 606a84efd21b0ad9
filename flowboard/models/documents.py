"""Models for repository listings, documents and chunks."""

from typing import Any

from pydantic import BaseModel, Field

from .enums import ChunkStrategy, ContentType, EntryType


class ListingEntry(BaseModel):
    """One entry of a repository listing."""

    path: str = Field(..., description="Path relative to the repository root")
    name: str = Field(..., description="Base name of the file or folder")
    type: EntryType = Field(..., description="File or folder")
    size: int = Field(default=0, ge=0, description="Size in bytes, 0 for folders")
    content: str | None = Field(None, description="File content when already fetched")

    @property
    def is_root(self) -> bool:
        """Entry sits directly in the repository root."""
        return "/" not in self.path


class RepositoryListing(BaseModel):
    """Flat listing produced by the repository-fetch collaborator."""

    contents: list[ListingEntry] = Field(default_factory=list)
    owner: str = Field(default="", description="Repository owner")
    repo: str = Field(default="", description="Repository name")
    platform: str = Field(default="github", description="Hosting platform")


class FileMetadata(BaseModel):
    """File-level metadata carried by a document."""

    name: str = Field(..., description="File name")
    path: str = Field(..., description="Path within the source repository")
    size: int = Field(default=0, ge=0, description="Original size in bytes")
    extension: str = Field(default="", description="Lowercased extension without dot")
    content_type: ContentType = Field(
        default=ContentType.TEXT, description="Detected content family"
    )


class Document(BaseModel):
    """A single parsed file ready for segmentation."""

    document_id: str = Field(..., description="Unique identifier for this document")
    file: FileMetadata
    text: str = Field(..., description="Raw text content")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Parser metadata")


class Chunk(BaseModel):
    """A bounded segment of a document's text."""

    chunk_id: str = Field(..., description="Unique identifier for this chunk")
    document_id: str = Field(..., description="Originating document")
    chunk_index: int = Field(..., ge=0, description="0-based ordinal within the run")
    total_chunks: int = Field(..., ge=1, description="Number of chunks the run produced")
    text: str = Field(..., description="Chunk text content")
    strategy: ChunkStrategy = Field(..., description="Strategy that produced the chunk")
    start_offset: int | None = Field(None, ge=0, description="Start offset in the document")
    end_offset: int | None = Field(None, ge=0, description="End offset in the document")
    metadata: dict[str, Any] = Field(default_factory=dict)
