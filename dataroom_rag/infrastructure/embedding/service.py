"""Embedding model access using sentence-transformers."""

import asyncio
from functools import lru_cache
from typing import List, Optional, cast

import numpy as np
from sentence_transformers import SentenceTransformer

from ..config.settings import get_settings


class EmbeddingService:
    """Service for generating vector embeddings from text.

    Loads the sentence-transformers model lazily on first use, off the event
    loop, and encodes batches in a worker thread. Embeddings are
    L2-normalized so cosine similarity in the vector store is well defined.
    """

    def __init__(self, model_name: str = "all-mpnet-base-v2", encode_batch_size: int = 32):
        """Initialize embedding service.

        Args:
            model_name: HuggingFace model name for sentence transformers
            encode_batch_size: Batch size handed to ``SentenceTransformer.encode``
        """
        self.model_name = model_name
        self.encode_batch_size = encode_batch_size
        self._model: Optional[SentenceTransformer] = None
        self._model_lock = asyncio.Lock()

    async def _get_model(self) -> SentenceTransformer:
        """Get model instance, loading it if necessary."""
        if self._model is None:
            async with self._model_lock:
                if self._model is None:
                    self._model = cast(SentenceTransformer, await asyncio.to_thread(SentenceTransformer, self.model_name))
        if self._model is None:
            raise RuntimeError("Model failed to load")
        return self._model

    async def embed_texts(self, texts: List[str]) -> List[List[float]]:
        """Generate embeddings for multiple texts.

        Args:
            texts: Non-empty texts to embed

        Returns:
            One embedding per text, in input order

        Raises:
            ValueError: If a text is blank or the model produced non-finite values
        """
        if not texts:
            return []

        if any(not text.strip() for text in texts):
            raise ValueError("All texts must be non-empty")

        model = await self._get_model()

        embeddings = await asyncio.to_thread(
            model.encode,
            texts,
            convert_to_tensor=False,
            normalize_embeddings=True,
            batch_size=self.encode_batch_size,
        )

        matrix = np.asarray(embeddings, dtype=np.float32)
        if matrix.ndim != 2 or matrix.shape[0] != len(texts):
            raise ValueError(f"Expected {len(texts)} embeddings, model returned shape {matrix.shape}")
        if not np.isfinite(matrix).all():
            raise ValueError("Model returned non-finite embedding values")

        return cast(List[List[float]], matrix.tolist())

    async def get_dimension(self) -> int:
        """Return the embedding dimension of the loaded model."""
        model = await self._get_model()
        dimension = model.get_sentence_embedding_dimension()
        if dimension is None:
            raise RuntimeError(f"Model {self.model_name} does not report an embedding dimension")
        return int(dimension)

    async def is_loaded(self) -> bool:
        """Check if model is loaded."""
        return self._model is not None


@lru_cache()
def get_embedding_service() -> EmbeddingService:
    """Get the process-wide embedding service."""
    return EmbeddingService(model_name=get_settings().EMBEDDING_MODEL_NAME)
