"""Document indexing status service."""

import asyncio
from typing import Awaitable, Callable, Dict, List, Mapping, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ...infrastructure.database.models import utcnow
from ...infrastructure.logging import get_logger
from ..common.exceptions import IndexingError, IndexingErrorKind
from ..dataroom.models import DataroomDocument
from .crud import document_crud
from .models import Document, ParsingStatus
from .schemas import DocumentForProcessing, DocumentIndexingRead, DocumentStatusUpdate

logger = get_logger(__name__)

DEFAULT_CONTENT_TYPE = "document"

UrlSigner = Callable[[str], Awaitable[str]]


class DocumentService:
    """Status transitions of documents during an indexing run.

    Documents move ``NOT_STARTED``/``FAILED`` -> ``IN_PROGRESS`` before
    extraction, then ``COMPLETED`` or ``FAILED`` once extraction settles, and
    finally ``COMPLETED`` at 100% with their token count once their vectors are
    stored.
    """

    async def get_documents_for_processing(
        self,
        document_ids: Sequence[str],
        dataroom_id: str,
        db: AsyncSession,
        sign_url: UrlSigner,
        concurrency: int = 10,
    ) -> List[DocumentForProcessing]:
        """Resolve retrieval URLs for the dataroom's documents in ``document_ids``.

        Args:
            document_ids: Documents to resolve
            dataroom_id: Dataroom the documents must belong to
            db: Database session
            sign_url: Coroutine exchanging a stored file key for a URL
            concurrency: Maximum concurrent signing calls

        Returns:
            One entry per document found; a document whose URL could not be
            signed carries its raw stored key instead
        """
        if not document_ids:
            return []

        stmt = (
            select(Document.id, Document.name, Document.file, Document.type)
            .join(DataroomDocument, DataroomDocument.document_id == Document.id)
            .where(DataroomDocument.dataroom_id == dataroom_id, Document.id.in_(list(document_ids)))
        )
        rows = (await db.execute(stmt)).all()

        semaphore = asyncio.Semaphore(max(1, concurrency))

        async def resolve(row) -> DocumentForProcessing:
            async with semaphore:
                try:
                    url = await sign_url(row.file)
                except Exception as e:
                    logger.error(f"Failed to get presigned URL: {e}", extra={"document_id": row.id})
                    url = row.file
            return DocumentForProcessing(
                id=row.id,
                name=row.name,
                url=url,
                content_type=row.type or DEFAULT_CONTENT_TYPE,
            )

        return list(await asyncio.gather(*(resolve(row) for row in rows)))

    async def mark_documents_in_progress(self, document_ids: Sequence[str], db: AsyncSession) -> None:
        if not document_ids:
            return
        await document_crud.update(
            db=db,
            object={
                "rag_indexing_status": ParsingStatus.IN_PROGRESS,
                "rag_indexing_started_at": utcnow(),
                "rag_indexing_progress": 0.0,
            },
            allow_multiple=True,
            id__in=list(document_ids),
        )

    async def record_processing_results(self, updates: Sequence[DocumentStatusUpdate], db: AsyncSession) -> None:
        """Write each document's extraction outcome in one transaction."""
        if not updates:
            return

        finished_at = utcnow()
        for status_update in updates:
            completed = status_update.status == ParsingStatus.COMPLETED
            await db.execute(
                update(Document)
                .where(Document.id == status_update.document_id)
                .values(
                    rag_indexing_status=status_update.status,
                    rag_indexing_finished_at=finished_at,
                    rag_indexing_progress=100.0 if completed else 0.0,
                    rag_index_error=None if completed else (status_update.error or "Document processing failed"),
                )
            )
        await db.commit()

    async def mark_documents_as_indexed(
        self,
        document_ids: Sequence[str],
        dataroom_id: str,
        token_counts: Mapping[str, int],
        session_factory: async_sessionmaker,
        batch_size: int = 50,
        concurrency: int = 5,
    ) -> None:
        """Mark documents fully indexed, with their embedded token counts.

        Batches run concurrently, each in its own session and transaction.
        Every batch is attempted; if any failed, one error describing all
        failures is raised afterwards.

        Raises:
            IndexingError: ``database`` kind, if any batch failed
        """
        if not document_ids:
            return

        ids = list(document_ids)
        batches = [ids[i : i + batch_size] for i in range(0, len(ids), batch_size)]
        semaphore = asyncio.Semaphore(max(1, concurrency))

        async def write_batch(batch: List[str]) -> None:
            async with semaphore:
                async with session_factory() as db:
                    for document_id in batch:
                        await db.execute(
                            update(Document)
                            .where(Document.id == document_id)
                            .values(
                                rag_indexing_status=ParsingStatus.COMPLETED,
                                rag_indexing_progress=100.0,
                                embedding_token_count=token_counts.get(document_id, 0),
                            )
                        )
                    await db.commit()

        results = await asyncio.gather(*(write_batch(batch) for batch in batches), return_exceptions=True)

        failures: Dict[int, BaseException] = {
            index: result for index, result in enumerate(results) if isinstance(result, BaseException)
        }
        if failures:
            for index, error in failures.items():
                logger.error(
                    f"Failed to update document batch: {error}",
                    extra={"dataroom_id": dataroom_id, "batch_index": index, "batch_size": len(batches[index])},
                )
            raise IndexingError(
                IndexingErrorKind.DATABASE,
                f"Failed to mark {len(failures)} of {len(batches)} document batches as indexed",
                {
                    "operation": "mark_documents_as_indexed",
                    "dataroom_id": dataroom_id,
                    "failed_batches": sorted(failures),
                },
            )

        logger.info("Updated document statuses", extra={"dataroom_id": dataroom_id, "documents": len(ids)})

    async def list_dataroom_documents(self, dataroom_id: str, db: AsyncSession) -> List[DocumentIndexingRead]:
        stmt = (
            select(Document)
            .join(DataroomDocument, DataroomDocument.document_id == Document.id)
            .where(DataroomDocument.dataroom_id == dataroom_id)
            .order_by(Document.name)
        )
        documents = (await db.execute(stmt)).scalars().all()
        return [DocumentIndexingRead.model_validate(document) for document in documents]
