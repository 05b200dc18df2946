"""Dataroom indexing status service."""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ...infrastructure.logging import get_logger
from ..common.exceptions import DataroomNotFoundError
from ..document.models import Document, ParsingStatus
from .crud import dataroom_crud, dataroom_rag_settings_crud
from .models import DataroomDocument, DataroomRAGSettings
from .schemas import DataroomRAGSettingsRead, DataroomRAGStatus

logger = get_logger(__name__)

PENDING_EXCLUDED_STATUSES = (ParsingStatus.COMPLETED, ParsingStatus.IN_PROGRESS)


class DataroomService:
    """Reads and writes the indexing state of datarooms.

    Coverage (``DataroomRAGStatus``) is always computed from the documents'
    own status columns, never cached. The per-dataroom settings row is
    upserted on first use, and its token totals are only ever incremented.
    """

    async def check_dataroom_rag_status(self, dataroom_id: str, db: AsyncSession) -> DataroomRAGStatus:
        """Compute indexing coverage for a dataroom.

        Args:
            dataroom_id: Dataroom to inspect
            db: Database session

        Returns:
            Coverage counts and the ids of documents not yet ``COMPLETED``

        Raises:
            DataroomNotFoundError: If the dataroom does not exist
        """
        if not await dataroom_crud.exists(db=db, id=dataroom_id):
            raise DataroomNotFoundError(f"Dataroom not found: {dataroom_id}")

        stmt = (
            select(Document.id, Document.rag_indexing_status)
            .join(DataroomDocument, DataroomDocument.document_id == Document.id)
            .where(DataroomDocument.dataroom_id == dataroom_id)
        )
        rows = (await db.execute(stmt)).all()

        total_documents = len(rows)
        unindexed = [row.id for row in rows if row.rag_indexing_status != ParsingStatus.COMPLETED]
        indexed_documents = total_documents - len(unindexed)

        return DataroomRAGStatus(
            total_documents=total_documents,
            indexed_documents=indexed_documents,
            all_indexed=total_documents == indexed_documents,
            needs_indexing=total_documents > 0 and indexed_documents < total_documents,
            unindexed_document_ids=unindexed,
        )

    async def count_unindexed_documents(self, dataroom_id: str, db: AsyncSession) -> int:
        """Count documents that are neither indexed nor being indexed."""
        stmt = (
            select(func.count(DataroomDocument.id))
            .join(Document, DataroomDocument.document_id == Document.id)
            .where(
                DataroomDocument.dataroom_id == dataroom_id,
                Document.rag_indexing_status.not_in(PENDING_EXCLUDED_STATUSES),
            )
        )
        return int((await db.execute(stmt)).scalar_one())

    async def get_rag_settings(self, dataroom_id: str, db: AsyncSession) -> Optional[DataroomRAGSettingsRead]:
        row = await db.scalar(select(DataroomRAGSettings).where(DataroomRAGSettings.dataroom_id == dataroom_id))
        if row is None:
            return None
        return DataroomRAGSettingsRead.model_validate(row)

    async def update_dataroom_indexing_status(
        self,
        dataroom_id: str,
        db: AsyncSession,
        *,
        status: Optional[ParsingStatus] = None,
        started_at: Optional[datetime] = None,
        completed_at: Optional[datetime] = None,
        progress: Optional[float] = None,
        error: Optional[str] = None,
        clear_error: bool = False,
        embedding_tokens: Optional[int] = None,
        processing_tokens: Optional[int] = None,
    ) -> None:
        """Upsert the dataroom's indexing settings row.

        Only the given fields are written. Token counts are added to the
        running totals in the UPDATE statement itself, so concurrent
        increments are not lost.
        """
        if not await dataroom_rag_settings_crud.exists(db=db, dataroom_id=dataroom_id):
            try:
                await self._create_settings(
                    dataroom_id,
                    db,
                    status=status,
                    started_at=started_at,
                    completed_at=completed_at,
                    progress=progress,
                    error=error,
                    embedding_tokens=embedding_tokens,
                    processing_tokens=processing_tokens,
                )
                return
            except IntegrityError:
                await db.rollback()
                logger.debug("Settings row created concurrently, updating instead", extra={"dataroom_id": dataroom_id})

        values: Dict[str, Any] = {}
        if status is not None:
            values["rag_indexing_status"] = status
        if started_at is not None:
            values["indexing_started_at"] = started_at
        if completed_at is not None:
            values["indexing_completed_at"] = completed_at
        if progress is not None:
            values["indexing_progress"] = progress
        if error is not None:
            values["indexing_error"] = error
        elif clear_error:
            values["indexing_error"] = None
        if embedding_tokens is not None:
            values["total_embedding_tokens"] = DataroomRAGSettings.total_embedding_tokens + embedding_tokens
        if processing_tokens is not None:
            values["total_processing_tokens"] = DataroomRAGSettings.total_processing_tokens + processing_tokens

        if not values:
            return

        await db.execute(
            update(DataroomRAGSettings).where(DataroomRAGSettings.dataroom_id == dataroom_id).values(**values)
        )
        await db.commit()

    async def _create_settings(
        self,
        dataroom_id: str,
        db: AsyncSession,
        *,
        status: Optional[ParsingStatus],
        started_at: Optional[datetime],
        completed_at: Optional[datetime],
        progress: Optional[float],
        error: Optional[str],
        embedding_tokens: Optional[int],
        processing_tokens: Optional[int],
    ) -> None:
        db.add(
            DataroomRAGSettings(
                dataroom_id=dataroom_id,
                enabled=True,
                rag_indexing_status=status or ParsingStatus.NOT_STARTED,
                indexing_started_at=started_at,
                indexing_completed_at=completed_at,
                indexing_progress=progress or 0.0,
                indexing_error=error,
                total_embedding_tokens=embedding_tokens or 0,
                total_processing_tokens=processing_tokens or 0,
            )
        )
        await db.commit()
