"""Embedding generation for document chunks."""

from .schemas import ChunkEmbedding, EmbeddingInput, EmbeddingResult
from .services import EmbeddingCache, EmbeddingGenerator

__all__ = [
    "ChunkEmbedding",
    "EmbeddingCache",
    "EmbeddingGenerator",
    "EmbeddingInput",
    "EmbeddingResult",
]
