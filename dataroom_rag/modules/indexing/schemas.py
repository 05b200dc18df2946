"""Schemas for indexing requests and outcomes."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..dataroom.schemas import DataroomRAGStatus


class IndexingRequest(BaseModel):
    """A queued request to index a dataroom.

    ``timestamp`` is milliseconds since the epoch and orders the queue.
    """

    dataroom_id: str = Field(alias="dataroomId")
    team_id: str = Field(alias="teamId")
    user_id: str = Field(alias="userId")
    timestamp: int
    request_id: str = Field(alias="requestId")

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def to_member(self) -> str:
        """Serialized form stored in the queue."""
        return self.model_dump_json(by_alias=True)


class TriggerStatus(str, Enum):
    STARTED = "started"
    QUEUED = "queued"
    NO_DOCUMENTS_TO_INDEX = "no_documents_to_index"
    FEATURE_DISABLED = "feature_disabled"


class TriggerResult(BaseModel):
    """Outcome of ``trigger_dataroom_indexing``; ``task_id`` is set only when started."""

    status: TriggerStatus
    task_id: Optional[str] = None
    unindexed_count: Optional[int] = None


class RequestResult(BaseModel):
    """Counts from processing one dequeued request."""

    documents_processed: int = 0
    documents_skipped: int = 0
    chunks_processed: int = 0
    vectors_stored: int = 0
    embedding_tokens: int = 0


class IndexingJobResult(RequestResult):
    """Totals of one worker run over every request it drained."""

    success: bool = True
    requests_processed: int = 0
    requests_failed: int = 0
    error: Optional[str] = None
    processing_id: str

    def add(self, result: RequestResult) -> None:
        self.documents_processed += result.documents_processed
        self.documents_skipped += result.documents_skipped
        self.chunks_processed += result.chunks_processed
        self.vectors_stored += result.vectors_stored
        self.embedding_tokens += result.embedding_tokens


class IndexingTriggerRequest(BaseModel):
    team_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)


class IndexingStatusResponse(BaseModel):
    """Current indexing state of a dataroom as reported to callers."""

    dataroom_id: str
    status: DataroomRAGStatus
    is_indexing: bool
    queue_length: int
    rag_indexing_status: Optional[str] = None
    indexing_progress: float = 0.0
    indexing_error: Optional[str] = None
    total_embedding_tokens: int = 0
