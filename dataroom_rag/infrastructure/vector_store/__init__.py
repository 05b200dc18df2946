"""Per-dataroom vector collections."""

from ..config.settings import Settings
from .base import VectorPoint, VectorStore, collection_name, generate_point_id
from .memory import InMemoryVectorStore
from .qdrant import QdrantVectorStore


def create_vector_store(settings: Settings) -> VectorStore:
    """Build the vector store selected by ``VECTOR_STORE_BACKEND``."""
    if settings.VECTOR_STORE_BACKEND.lower() == "memory":
        return InMemoryVectorStore()
    return QdrantVectorStore.from_url(
        settings.QDRANT_URL,
        api_key=settings.QDRANT_API_KEY,
        upsert_batch_size=settings.QDRANT_UPSERT_BATCH_SIZE,
    )


__all__ = [
    "InMemoryVectorStore",
    "QdrantVectorStore",
    "VectorPoint",
    "VectorStore",
    "collection_name",
    "create_vector_store",
    "generate_point_id",
]
