"""In-process vector store for local runs and tests."""

import asyncio
from typing import Dict, Sequence

from ..logging import get_logger
from .base import VectorPoint, collection_name, generate_point_id, validate_points

logger = get_logger(__name__)


class InMemoryVectorStore:
    """Keeps collections in dictionaries keyed by point id."""

    def __init__(self) -> None:
        self.collections: Dict[str, Dict[str, VectorPoint]] = {}
        self.dimensions: Dict[str, int] = {}

    def generate_point_id(self, chunk_id: str) -> str:
        return generate_point_id(chunk_id)

    async def collection_exists(self, dataroom_id: str) -> bool:
        return collection_name(dataroom_id) in self.collections

    async def create_collection(self, dataroom_id: str, vector_size: int) -> None:
        name = collection_name(dataroom_id)
        if name in self.collections:
            return
        self.collections[name] = {}
        self.dimensions[name] = vector_size

    async def upsert_points(self, dataroom_id: str, points: Sequence[VectorPoint], concurrency: int = 3) -> bool:
        name = collection_name(dataroom_id)
        if name not in self.collections:
            logger.error("Upsert into missing collection", extra={"collection": name})
            return False
        try:
            validate_points(points)
        except ValueError as e:
            logger.error(f"Rejected points for upsert: {e}", extra={"collection": name})
            return False
        if points and len(points[0].vector) != self.dimensions[name]:
            logger.error(
                "Vector dimension does not match collection",
                extra={"collection": name, "expected": self.dimensions[name], "actual": len(points[0].vector)},
            )
            return False

        semaphore = asyncio.Semaphore(max(1, concurrency))

        async def store(point: VectorPoint) -> None:
            async with semaphore:
                self.collections[name][point.id] = point

        await asyncio.gather(*(store(point) for point in points))
        return True

    def points(self, dataroom_id: str) -> Dict[str, VectorPoint]:
        return self.collections.get(collection_name(dataroom_id), {})

    async def close(self) -> None:
        return None
