"""Pydantic schemas for document chunks."""

from typing import List, Optional

from pydantic import BaseModel, Field


class ChunkMetadata(BaseModel):
    """Where a chunk came from and how large it is."""

    document_id: str
    document_name: str
    dataroom_id: str
    team_id: str
    content_type: str = "document"
    chunk_index: int = Field(ge=0)
    token_count: int = Field(ge=0)
    page_ranges: List[str] = Field(default_factory=lambda: ["1"])
    section_header: Optional[str] = None
    header_hierarchy: List[str] = Field(default_factory=list)
    is_small_chunk: bool = False
    start_line: Optional[int] = None
    end_line: Optional[int] = None


class DocumentChunk(BaseModel):
    """A piece of extracted document text sized for embedding.

    Chunks exist only in memory between extraction and vector upsert.
    """

    id: str = Field(description="Chunk id, '{document_id}_chunk_{index}'")
    content: str = Field(min_length=1)
    metadata: ChunkMetadata
    chunk_hash: str
