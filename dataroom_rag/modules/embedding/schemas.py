"""Schemas for embedding generation."""

from typing import List, Optional

from pydantic import BaseModel, Field

from ..chunk.schemas import ChunkMetadata


class EmbeddingInput(BaseModel):
    """A chunk handed to the embedding generator."""

    chunk_id: str
    content: str
    metadata: Optional[ChunkMetadata] = None


class ChunkEmbedding(BaseModel):
    chunk_id: str
    embedding: List[float]


class EmbeddingResult(BaseModel):
    """Outcome of one ``generate_embeddings`` call.

    On failure ``success`` is False, ``error`` holds the reason and no
    embeddings are returned.
    """

    success: bool
    embeddings: List[ChunkEmbedding] = Field(default_factory=list)
    total_tokens: int = 0
    cached_count: int = 0
    new_count: int = 0
    processing_seconds: float = 0.0
    error: Optional[str] = None
