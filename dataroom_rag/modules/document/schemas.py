"""Pydantic schemas for document entities."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .models import ParsingStatus


class DocumentIndexingRead(BaseModel):
    """Indexing state of a document."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    type: Optional[str] = None
    rag_indexing_status: ParsingStatus
    rag_indexing_progress: float = Field(ge=0.0, le=100.0)
    rag_indexing_started_at: Optional[datetime] = None
    rag_indexing_finished_at: Optional[datetime] = None
    rag_index_error: Optional[str] = None
    embedding_token_count: int = 0


class DocumentForProcessing(BaseModel):
    """A document resolved for extraction: where to fetch it and how to treat it."""

    id: str
    name: str
    url: str
    content_type: str = "document"


class DocumentStatusUpdate(BaseModel):
    """Outcome of one document's extraction."""

    document_id: str
    status: ParsingStatus
    error: Optional[str] = None
