"""Qdrant-backed vector store."""

import asyncio
from typing import List, Optional, Sequence

from qdrant_client import AsyncQdrantClient, models
from qdrant_client.http.exceptions import UnexpectedResponse

from ..logging import get_logger
from .base import PAYLOAD_INDEX_FIELDS, VectorPoint, collection_name, generate_point_id, validate_points

logger = get_logger(__name__)

_SCHEMA_TYPES = {
    "keyword": models.PayloadSchemaType.KEYWORD,
    "integer": models.PayloadSchemaType.INTEGER,
}


class QdrantVectorStore:
    """Stores chunk vectors in one cosine-distance collection per dataroom.

    Upserts are split into fixed-size batches; up to ``concurrency`` batches
    are in flight at once.
    """

    def __init__(self, client: AsyncQdrantClient, upsert_batch_size: int = 100):
        self._client = client
        self.upsert_batch_size = upsert_batch_size

    @classmethod
    def from_url(cls, url: str, api_key: Optional[str] = None, upsert_batch_size: int = 100) -> "QdrantVectorStore":
        return cls(AsyncQdrantClient(url=url, api_key=api_key or None), upsert_batch_size=upsert_batch_size)

    def generate_point_id(self, chunk_id: str) -> str:
        return generate_point_id(chunk_id)

    async def collection_exists(self, dataroom_id: str) -> bool:
        return await self._client.collection_exists(collection_name(dataroom_id))

    async def create_collection(self, dataroom_id: str, vector_size: int) -> None:
        """Create the dataroom's collection and its payload indexes.

        A collection that already exists counts as created.
        """
        name = collection_name(dataroom_id)
        try:
            await self._client.create_collection(
                collection_name=name,
                vectors_config=models.VectorParams(size=vector_size, distance=models.Distance.COSINE),
            )
        except UnexpectedResponse as e:
            if e.status_code == 409 or "already exists" in str(e).lower():
                logger.info("Collection already exists", extra={"collection": name})
                return
            raise

        for field_name, schema in PAYLOAD_INDEX_FIELDS.items():
            await self._client.create_payload_index(
                collection_name=name,
                field_name=field_name,
                field_schema=_SCHEMA_TYPES[schema],
            )

        logger.info("Created collection", extra={"collection": name, "vector_size": vector_size})

    async def upsert_points(self, dataroom_id: str, points: Sequence[VectorPoint], concurrency: int = 3) -> bool:
        """Upsert ``points``; returns False if any batch failed."""
        if not points:
            return True

        name = collection_name(dataroom_id)
        try:
            validate_points(points)
        except ValueError as e:
            logger.error(f"Rejected points for upsert: {e}", extra={"collection": name})
            return False

        batches: List[Sequence[VectorPoint]] = [
            points[i : i + self.upsert_batch_size] for i in range(0, len(points), self.upsert_batch_size)
        ]
        semaphore = asyncio.Semaphore(max(1, concurrency))

        async def upsert_batch(index: int, batch: Sequence[VectorPoint]) -> bool:
            async with semaphore:
                try:
                    await self._client.upsert(
                        collection_name=name,
                        points=[
                            models.PointStruct(id=point.id, vector=point.vector, payload=point.payload) for point in batch
                        ],
                        wait=True,
                    )
                    return True
                except Exception as e:
                    logger.error(
                        f"Failed to upsert batch: {e}",
                        extra={"collection": name, "batch_index": index, "batch_size": len(batch)},
                    )
                    return False

        results = await asyncio.gather(*(upsert_batch(i, batch) for i, batch in enumerate(batches)))
        succeeded = all(results)
        logger.info(
            "Upserted points",
            extra={"collection": name, "points": len(points), "batches": len(batches), "succeeded": succeeded},
        )
        return succeeded

    async def close(self) -> None:
        await self._client.close()
