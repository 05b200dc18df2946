"""Batched, cached embedding generation for chunks."""

import asyncio
import hashlib
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Protocol, Sequence, Tuple

from ...infrastructure.logging import get_logger
from ..common.utils.token_estimator import TokenEstimator
from .schemas import ChunkEmbedding, EmbeddingInput, EmbeddingResult

logger = get_logger(__name__)

MIN_CONTENT_CHARS = 10
MIN_CONTENT_TOKENS = 5


class Encoder(Protocol):
    model_name: str

    async def embed_texts(self, texts: List[str]) -> List[List[float]]: ...

    async def get_dimension(self) -> int: ...


def content_hash(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


@dataclass
class _CacheEntry:
    embedding: List[float]
    stored_at: float


class EmbeddingCache:
    """LRU cache of embeddings keyed by content hash, with a per-entry TTL."""

    def __init__(self, max_size: int = 5000, ttl_seconds: float = 43200, clock: Callable[[], float] = time.monotonic):
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: "OrderedDict[str, _CacheEntry]" = OrderedDict()

    def get(self, key: str) -> Optional[List[float]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.stored_at > self.ttl_seconds:
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return entry.embedding

    def set(self, key: str, embedding: List[float]) -> None:
        self._entries[key] = _CacheEntry(embedding, self._clock())
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_size:
            self._entries.popitem(last=False)

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()


class EmbeddingGenerator:
    """Embeds chunks in batches, reusing cached and duplicate content.

    Chunks that are blank, shorter than 10 characters or under 5 estimated
    tokens are dropped. Chunks with identical content share one embedding.
    Uncached contents are sent to the encoder in batches of ``batch_size``,
    with at most ``concurrency`` batches in flight. The local encoder reports
    no usage, so token totals are estimated.
    """

    def __init__(
        self,
        encoder: Encoder,
        batch_size: int = 120,
        concurrency: int = 5,
        cache: Optional[EmbeddingCache] = None,
    ):
        self.encoder = encoder
        self.batch_size = max(1, batch_size)
        self.concurrency = max(1, concurrency)
        self.cache = cache if cache is not None else EmbeddingCache()

    async def get_embedding_dimensions(self) -> int:
        return await self.encoder.get_dimension()

    def preprocess_chunks(self, chunks: Sequence[EmbeddingInput]) -> List[EmbeddingInput]:
        valid = []
        for chunk in chunks:
            content = chunk.content.strip()
            if not content or len(content) < MIN_CONTENT_CHARS:
                continue
            if TokenEstimator.estimate_tokens(content, self.encoder.model_name) < MIN_CONTENT_TOKENS:
                continue
            valid.append(chunk.model_copy(update={"content": content}))
        return valid

    async def generate_embeddings(self, chunks: Sequence[EmbeddingInput]) -> EmbeddingResult:
        """Embed ``chunks``.

        Never raises: any failure, including a single failed batch, yields a
        result with ``success=False`` and the error message.
        """
        started = time.monotonic()
        try:
            embeddings, total_tokens, cached_count, new_count = await self._generate(chunks)
        except Exception as e:
            logger.error(f"Embedding generation failed: {e}", extra={"chunk_count": len(chunks)})
            return EmbeddingResult(
                success=False,
                error=str(e) or type(e).__name__,
                processing_seconds=time.monotonic() - started,
            )

        return EmbeddingResult(
            success=True,
            embeddings=embeddings,
            total_tokens=total_tokens,
            cached_count=cached_count,
            new_count=new_count,
            processing_seconds=time.monotonic() - started,
        )

    async def _generate(self, chunks: Sequence[EmbeddingInput]) -> Tuple[List[ChunkEmbedding], int, int, int]:
        valid = self.preprocess_chunks(chunks)
        if not valid:
            return [], 0, 0, 0

        groups: Dict[str, Tuple[str, List[str]]] = {}
        for chunk in valid:
            key = content_hash(chunk.content)
            if key in groups:
                groups[key][1].append(chunk.chunk_id)
            else:
                groups[key] = (chunk.content, [chunk.chunk_id])

        results: List[ChunkEmbedding] = []
        cached_count = 0
        pending: List[Tuple[str, str, List[str]]] = []
        for key, (content, chunk_ids) in groups.items():
            embedding = self.cache.get(key)
            if embedding is None:
                pending.append((key, content, chunk_ids))
                continue
            results.extend(ChunkEmbedding(chunk_id=chunk_id, embedding=embedding) for chunk_id in chunk_ids)
            cached_count += len(chunk_ids)

        if not pending:
            return results, 0, cached_count, 0

        batches = [pending[i : i + self.batch_size] for i in range(0, len(pending), self.batch_size)]
        semaphore = asyncio.Semaphore(self.concurrency)

        async def embed_batch(batch: List[Tuple[str, str, List[str]]]) -> List[List[float]]:
            async with semaphore:
                vectors = await self.encoder.embed_texts([content for _, content, _ in batch])
            if len(vectors) != len(batch):
                raise ValueError(f"Encoder returned {len(vectors)} embeddings for {len(batch)} inputs")
            return vectors

        batch_vectors = await asyncio.gather(*(embed_batch(batch) for batch in batches))

        new_count = 0
        total_tokens = 0
        for batch, vectors in zip(batches, batch_vectors):
            for (key, content, chunk_ids), vector in zip(batch, vectors):
                self.cache.set(key, vector)
                results.extend(ChunkEmbedding(chunk_id=chunk_id, embedding=vector) for chunk_id in chunk_ids)
                new_count += len(chunk_ids)
                total_tokens += TokenEstimator.estimate_tokens(content, self.encoder.model_name)

        logger.info(
            "Embeddings generated",
            extra={"batches": len(batches), "cached_count": cached_count, "new_count": new_count, "total_tokens": total_tokens},
        )
        return results, total_tokens, cached_count, new_count
