"""Committed stage outputs.

Every stage commits exactly one of these variants. The ``kind`` field is the
discriminator, so consumers resolve the payload once instead of probing
field names.
"""

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .documents import Chunk, Document, FileMetadata, RepositoryListing
from .enums import OutputKind


class TextOutput(BaseModel):
    """Free text produced by a text stage."""

    kind: Literal[OutputKind.TEXT] = OutputKind.TEXT
    text: str = Field(default="", description="Text content")
    source: str = Field(default="manual_input", description="Where the text came from")

    def is_empty(self) -> bool:
        return not self.text.strip()


class ListingOutput(BaseModel):
    """Repository listing handed over by the fetch collaborator."""

    kind: Literal[OutputKind.LISTING] = OutputKind.LISTING
    listing: RepositoryListing

    def is_empty(self) -> bool:
        return not self.listing.contents


class FilteredListingOutput(BaseModel):
    """Listing after folder/format filtering."""

    kind: Literal[OutputKind.FILTERED_LISTING] = OutputKind.FILTERED_LISTING
    listing: RepositoryListing
    original_count: int = Field(default=0, ge=0)
    filtered_count: int = Field(default=0, ge=0)
    selected_folders: list[str] = Field(default_factory=list)
    selected_classes: list[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.listing.contents


class ParsedOutput(BaseModel):
    """Documents extracted by the parse stage."""

    kind: Literal[OutputKind.PARSED] = OutputKind.PARSED
    documents: list[Document] = Field(default_factory=list)
    total_files: int = Field(default=0, ge=0, description="Files offered to the parser")
    parsed_files: int = Field(default=0, ge=0, description="Files that produced content")
    skipped_files: int = Field(default=0, ge=0, description="Files over the size limit")
    errors: int = Field(default=0, ge=0, description="Files that failed to parse")
    total_size: int = Field(default=0, ge=0)

    def is_empty(self) -> bool:
        return not self.documents


class ChunkedFile(BaseModel):
    """Chunks produced for one original file."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    original_file: FileMetadata
    chunks: list[Chunk] = Field(default_factory=list)
    chunk_count: int = Field(default=0, ge=0)
    original_size: int = Field(default=0, ge=0)


class ChunkedOutput(BaseModel):
    """Payload handed to the embedding collaborator."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    kind: Literal[OutputKind.CHUNKED] = OutputKind.CHUNKED
    chunked_files: list[ChunkedFile] = Field(default_factory=list)
    total_chunks: int = Field(default=0, ge=0)
    chunking_config: dict[str, Any] = Field(default_factory=dict)

    def is_empty(self) -> bool:
        return self.total_chunks == 0

    def to_embedding_payload(self) -> dict[str, Any]:
        """Render the payload with the camelCase keys the embedder expects."""
        payload = self.model_dump(mode="json", by_alias=True)
        payload.pop("kind", None)
        return payload


StageOutput = Annotated[
    Union[TextOutput, ListingOutput, FilteredListingOutput, ParsedOutput, ChunkedOutput],
    Field(discriminator="kind"),
]
