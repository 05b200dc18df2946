"""Vector store contract and shared helpers."""

import hashlib
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Protocol, Sequence

from ...modules.common.constants import COLLECTION_NAME_PREFIX

PAYLOAD_INDEX_FIELDS: Dict[str, str] = {
    "documentId": "keyword",
    "dataroomId": "keyword",
    "teamId": "keyword",
    "contentType": "keyword",
    "sectionHeader": "keyword",
    "chunkIndex": "integer",
    "tokenCount": "integer",
}


@dataclass
class VectorPoint:
    """A vector with the chunk metadata it was computed from."""

    id: str
    vector: List[float]
    payload: Dict[str, Any] = field(default_factory=dict)


def collection_name(dataroom_id: str) -> str:
    """Name of the collection holding a dataroom's vectors."""
    return f"{COLLECTION_NAME_PREFIX}{dataroom_id}"


def generate_point_id(chunk_id: str) -> str:
    """Deterministic point id for a chunk.

    The MD5 digest of the chunk id is formatted as a UUID, which Qdrant
    accepts as a point id. Re-indexing a chunk overwrites its point.
    """
    return str(uuid.UUID(hashlib.md5(chunk_id.encode("utf-8")).hexdigest()))


def validate_points(points: Sequence[VectorPoint]) -> None:
    """Raise ``ValueError`` if points are empty-vectored or of mixed dimension."""
    if not points:
        return
    dimension = len(points[0].vector)
    if dimension == 0:
        raise ValueError(f"Point {points[0].id} has an empty vector")
    for point in points:
        if len(point.vector) != dimension:
            raise ValueError(f"Point {point.id} has dimension {len(point.vector)}, expected {dimension}")


class VectorStore(Protocol):
    """Per-dataroom vector collections."""

    async def collection_exists(self, dataroom_id: str) -> bool: ...

    async def create_collection(self, dataroom_id: str, vector_size: int) -> None: ...

    async def upsert_points(self, dataroom_id: str, points: Sequence[VectorPoint], concurrency: int = 3) -> bool: ...

    def generate_point_id(self, chunk_id: str) -> str: ...

    async def close(self) -> None: ...
