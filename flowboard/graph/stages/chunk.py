"""Chunk stage: runs the segmentation engine over parsed documents."""

import asyncio
import uuid
from typing import Any

import structlog

from flowboard.chunking import ChunkingConfig, segment
from flowboard.models import (
    ChunkedFile,
    ChunkedOutput,
    Document,
    FileMetadata,
    OutputKind,
    StageKind,
    StageOutput,
    TextOutput,
)

from ..stage import Stage

logger = structlog.get_logger(__name__)


class ChunkStage(Stage):
    """Segments every upstream document and emits a :class:`ChunkedOutput`."""

    kind = StageKind.CHUNK
    accepts = (OutputKind.PARSED, OutputKind.TEXT)

    def chunking_config(self, config: dict[str, Any] | None = None) -> ChunkingConfig:
        defaults = ChunkingConfig.from_settings(self.settings)
        return ChunkingConfig.from_dict(self.config if config is None else config, defaults)

    def validate_config(self, config: dict[str, Any]) -> None:
        self.chunking_config(config)

    async def process(self, input_data: StageOutput | None) -> ChunkedOutput:
        config = self.chunking_config()

        if isinstance(input_data, TextOutput):
            documents = [
                Document(
                    document_id=f"doc_{uuid.uuid4().hex[:12]}",
                    file=FileMetadata(
                        name="input.txt",
                        path="input.txt",
                        size=len(input_data.text.encode("utf-8")),
                        extension="txt",
                    ),
                    text=input_data.text,
                    metadata={"source": input_data.source},
                )
            ]
        else:
            documents = input_data.documents

        chunked_files: list[ChunkedFile] = []
        for document in documents:
            chunks = segment(document, config)
            if chunks:
                chunked_files.append(
                    ChunkedFile(
                        original_file=document.file,
                        chunks=chunks,
                        chunk_count=len(chunks),
                        original_size=document.file.size or len(document.text),
                    )
                )
            # Let other stages run between documents
            await asyncio.sleep(0)

        total = sum(f.chunk_count for f in chunked_files)
        logger.info(
            "chunk_stage_complete",
            node_id=self.node_id,
            documents=len(documents),
            files=len(chunked_files),
            total_chunks=total,
            strategy=config.strategy.value,
        )
        return ChunkedOutput(
            chunked_files=chunked_files,
            total_chunks=total,
            chunking_config=config.to_dict(),
        )
