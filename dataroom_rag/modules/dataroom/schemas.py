"""Pydantic schemas for dataroom indexing state."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..document.models import ParsingStatus


class DataroomRAGStatus(BaseModel):
    """Indexing coverage of a dataroom, computed from its documents' statuses.

    Attributes:
        total_documents: Documents associated with the dataroom
        indexed_documents: Documents whose status is ``COMPLETED``
        all_indexed: Every document is indexed
        needs_indexing: At least one document exists and is not indexed
        unindexed_document_ids: Ids of documents not yet ``COMPLETED``
    """

    total_documents: int = 0
    indexed_documents: int = 0
    all_indexed: bool = True
    needs_indexing: bool = False
    unindexed_document_ids: List[str] = Field(default_factory=list)


class DataroomRAGSettingsRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    dataroom_id: str
    enabled: bool
    rag_indexing_status: ParsingStatus
    indexing_started_at: Optional[datetime] = None
    indexing_completed_at: Optional[datetime] = None
    indexing_progress: float = 0.0
    indexing_error: Optional[str] = None
    total_embedding_tokens: int = 0
    total_processing_tokens: int = 0
