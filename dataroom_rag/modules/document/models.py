"""SQLAlchemy models for document entities."""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, Float, Integer, String, Text
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from ...infrastructure.database.models import StringIdMixin, TimestampMixin
from ...infrastructure.database.session import Base


class ParsingStatus(str, Enum):
    """Indexing status of a document or a dataroom."""

    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


parsing_status_type = SAEnum(ParsingStatus, name="parsing_status")


class Document(Base, StringIdMixin, TimestampMixin):
    """A stored file that can be indexed for retrieval.

    ``file`` is the blob store key; ``type`` is the content type recorded at
    upload, which decides whether the extraction engine can handle it.
    """

    __tablename__ = "documents"

    team_id: Mapped[str] = mapped_column(String(64), index=True)
    name: Mapped[str] = mapped_column(String(255))
    file: Mapped[str] = mapped_column(Text)
    type: Mapped[Optional[str]] = mapped_column(String(255), default=None)

    rag_indexing_status: Mapped[ParsingStatus] = mapped_column(
        parsing_status_type, default=ParsingStatus.NOT_STARTED, index=True
    )
    rag_indexing_started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), default=None)
    rag_indexing_finished_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), default=None)
    rag_indexing_progress: Mapped[float] = mapped_column(Float, default=0.0)
    rag_index_error: Mapped[Optional[str]] = mapped_column(Text, default=None)
    embedding_token_count: Mapped[int] = mapped_column(Integer, default=0)
