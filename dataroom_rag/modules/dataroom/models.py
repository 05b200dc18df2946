"""SQLAlchemy models for datarooms and their indexing settings."""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ...infrastructure.database.models import StringIdMixin, TimestampMixin
from ...infrastructure.database.session import Base
from ..document.models import ParsingStatus, parsing_status_type


class Dataroom(Base, StringIdMixin, TimestampMixin):
    """A team-owned collection of documents that is indexed as one unit."""

    __tablename__ = "datarooms"

    team_id: Mapped[str] = mapped_column(String(64), index=True)
    name: Mapped[str] = mapped_column(String(255))


class DataroomDocument(Base, StringIdMixin, TimestampMixin):
    """Association of a document with a dataroom."""

    __tablename__ = "dataroom_documents"
    __table_args__ = (UniqueConstraint("dataroom_id", "document_id", name="uq_dataroom_document"),)

    dataroom_id: Mapped[str] = mapped_column(String(64), ForeignKey("datarooms.id", ondelete="CASCADE"), index=True)
    document_id: Mapped[str] = mapped_column(String(64), ForeignKey("documents.id", ondelete="CASCADE"), index=True)


class DataroomRAGSettings(Base, StringIdMixin, TimestampMixin):
    """Indexing state and token totals of one dataroom.

    Created on the first indexing attempt and updated for the lifetime of the
    dataroom. The token totals only ever grow.
    """

    __tablename__ = "dataroom_rag_settings"

    dataroom_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("datarooms.id", ondelete="CASCADE"), unique=True, index=True
    )
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    rag_indexing_status: Mapped[ParsingStatus] = mapped_column(parsing_status_type, default=ParsingStatus.NOT_STARTED)
    indexing_started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), default=None)
    indexing_completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), default=None)
    indexing_progress: Mapped[float] = mapped_column(Float, default=0.0)
    indexing_error: Mapped[Optional[str]] = mapped_column(Text, default=None)
    total_embedding_tokens: Mapped[int] = mapped_column(Integer, default=0)
    total_processing_tokens: Mapped[int] = mapped_column(Integer, default=0)
