"""Processing of a single dequeued indexing request."""

from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ...infrastructure.config.settings import Settings
from ...infrastructure.database.models import utcnow
from ...infrastructure.logging import get_logger
from ...infrastructure.vector_store import VectorPoint, VectorStore
from ..chunk.schemas import DocumentChunk
from ..common.exceptions import IndexingError, IndexingErrorKind
from ..dataroom.services import DataroomService
from ..document.models import ParsingStatus
from ..document.schemas import DocumentStatusUpdate
from ..document.services import DocumentService, UrlSigner
from ..embedding.schemas import ChunkEmbedding, EmbeddingInput
from ..embedding.services import EmbeddingGenerator
from ..processing.processor import DocumentProcessor
from .schemas import IndexingRequest, RequestResult

logger = get_logger(__name__)

STARTED_PROGRESS = 5.0
COMPLETED_PROGRESS = 100.0


@dataclass(frozen=True)
class PipelineLimits:
    """Concurrency bounds for the external calls of one request."""

    url_signing_concurrency: int = 10
    document_concurrency: int = 3
    vector_upsert_concurrency: int = 3
    status_batch_size: int = 50
    status_batch_concurrency: int = 5

    @classmethod
    def from_settings(cls, settings: Settings) -> "PipelineLimits":
        return cls(
            url_signing_concurrency=settings.RAG_URL_SIGNING_CONCURRENCY,
            document_concurrency=settings.RAG_DOCUMENT_CONCURRENCY,
            vector_upsert_concurrency=settings.RAG_VECTOR_UPSERT_CONCURRENCY,
            status_batch_size=settings.RAG_STATUS_BATCH_SIZE,
            status_batch_concurrency=settings.RAG_STATUS_BATCH_CONCURRENCY,
        )


def build_vector_points(
    chunks: List[DocumentChunk],
    embeddings: Dict[str, List[float]],
    vector_store: VectorStore,
    created_at: str,
) -> List[VectorPoint]:
    """Pair each embedded chunk with its metadata as a vector point payload."""
    points = []
    for chunk in chunks:
        vector = embeddings.get(chunk.id)
        if vector is None:
            continue
        metadata = chunk.metadata
        points.append(
            VectorPoint(
                id=vector_store.generate_point_id(chunk.id),
                vector=vector,
                payload={
                    "chunkId": chunk.id,
                    "documentId": metadata.document_id,
                    "documentName": metadata.document_name,
                    "contentType": metadata.content_type,
                    "pageRanges": metadata.page_ranges,
                    "sectionHeader": metadata.section_header,
                    "headerHierarchy": metadata.header_hierarchy,
                    "chunkIndex": metadata.chunk_index,
                    "dataroomId": metadata.dataroom_id,
                    "teamId": metadata.team_id,
                    "content": chunk.content,
                    "tokenCount": metadata.token_count,
                    "createdAt": created_at,
                },
            )
        )
    return points


def document_token_counts(chunks: List[DocumentChunk]) -> Dict[str, int]:
    counts: Dict[str, int] = defaultdict(int)
    for chunk in chunks:
        counts[chunk.metadata.document_id] += chunk.metadata.token_count
    return dict(counts)


class IndexingPipeline:
    """Indexes the documents of one request: extract, embed, store, record.

    Coverage is recomputed from the database at the start of every request,
    since documents may have changed since the request was queued.
    Per-document extraction failures are recorded on the document and do not
    stop the request. Embedding and vector store failures abort the request
    with an ``IndexingError``.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        vector_store: VectorStore,
        sign_url: UrlSigner,
        limits: Optional[PipelineLimits] = None,
        dataroom_service: Optional[DataroomService] = None,
        document_service: Optional[DocumentService] = None,
    ):
        self.session_factory = session_factory
        self.vector_store = vector_store
        self.sign_url = sign_url
        self.limits = limits or PipelineLimits()
        self.dataroom_service = dataroom_service or DataroomService()
        self.document_service = document_service or DocumentService()

    async def process_rag_indexing_request(
        self,
        request: IndexingRequest,
        processing_id: str,
        processor: DocumentProcessor,
        generator: EmbeddingGenerator,
    ) -> RequestResult:
        """Index the unindexed documents of ``request.dataroom_id``.

        Args:
            request: The dequeued request
            processing_id: Id of the worker run, for logs
            processor: Extraction processor, reused across requests
            generator: Embedding generator, reused across requests

        Returns:
            Counts of processed and skipped documents, chunks, vectors and
            embedding tokens

        Raises:
            DataroomNotFoundError: If the dataroom no longer exists
            IndexingError: If embedding, vector storage or the final status
                write failed
        """
        dataroom_id = request.dataroom_id
        log_context = {"dataroom_id": dataroom_id, "processing_id": processing_id, "request_id": request.request_id}

        async with self.session_factory() as db:
            rag_status = await self.dataroom_service.check_dataroom_rag_status(dataroom_id, db)
            logger.info(
                "Processing RAG indexing request",
                extra={
                    **log_context,
                    "total_documents": rag_status.total_documents,
                    "indexed_documents": rag_status.indexed_documents,
                    "unindexed_count": len(rag_status.unindexed_document_ids),
                },
            )

            if not rag_status.needs_indexing:
                logger.info("All documents already indexed", extra=log_context)
                return RequestResult(documents_skipped=rag_status.total_documents)

            await self.dataroom_service.update_dataroom_indexing_status(
                dataroom_id,
                db,
                status=ParsingStatus.IN_PROGRESS,
                started_at=utcnow(),
                progress=STARTED_PROGRESS,
                clear_error=True,
            )

            if not rag_status.unindexed_document_ids:
                await self._mark_completed(dataroom_id, db)
                return RequestResult(documents_skipped=rag_status.total_documents)

            documents = await self.document_service.get_documents_for_processing(
                rag_status.unindexed_document_ids,
                dataroom_id,
                db,
                self.sign_url,
                concurrency=self.limits.url_signing_concurrency,
            )
            supported = [document for document in documents if processor.is_format_supported(document.content_type)]
            logger.info(
                "Document processing status",
                extra={**log_context, "total_documents": len(documents), "supported_documents": len(supported)},
            )

            await self.document_service.mark_documents_in_progress([document.id for document in supported], db)

            results = await processor.process_documents(
                supported, dataroom_id, request.team_id, max_concurrency=self.limits.document_concurrency
            )

            chunks: List[DocumentChunk] = []
            successful_ids: List[str] = []
            updates: List[DocumentStatusUpdate] = []
            for result in results:
                if result.ok:
                    chunks.extend(result.chunks)
                    successful_ids.append(result.document_id)
                    updates.append(DocumentStatusUpdate(document_id=result.document_id, status=ParsingStatus.COMPLETED))
                else:
                    updates.append(
                        DocumentStatusUpdate(
                            document_id=result.document_id,
                            status=ParsingStatus.FAILED,
                            error=result.error.message if result.error else None,
                        )
                    )
            await self.document_service.record_processing_results(updates, db)

            documents_processed = len(successful_ids)
            documents_skipped = len(results) - documents_processed

            if not chunks:
                logger.warning("No chunks generated from document processing", extra=log_context)
                await self._mark_completed(dataroom_id, db)
                return RequestResult(documents_processed=documents_processed, documents_skipped=documents_skipped)

            embedding_result = await generator.generate_embeddings(
                [EmbeddingInput(chunk_id=chunk.id, content=chunk.content, metadata=chunk.metadata) for chunk in chunks]
            )
            if not embedding_result.success:
                raise IndexingError(
                    IndexingErrorKind.EMBEDDING,
                    f"Embedding generation failed: {embedding_result.error}",
                    {"operation": "generate_embeddings", "dataroom_id": dataroom_id, "chunk_count": len(chunks)},
                )
            logger.info(
                "Embeddings generated",
                extra={
                    **log_context,
                    "embedding_count": len(embedding_result.embeddings),
                    "embedding_tokens": embedding_result.total_tokens,
                    "cached_count": embedding_result.cached_count,
                    "new_count": embedding_result.new_count,
                },
            )

            await self.dataroom_service.update_dataroom_indexing_status(
                dataroom_id, db, embedding_tokens=embedding_result.total_tokens
            )

        vectors_stored = await self._store_vectors(dataroom_id, chunks, embedding_result.embeddings, generator)

        await self.document_service.mark_documents_as_indexed(
            successful_ids,
            dataroom_id,
            document_token_counts(chunks),
            self.session_factory,
            batch_size=self.limits.status_batch_size,
            concurrency=self.limits.status_batch_concurrency,
        )

        async with self.session_factory() as db:
            await self._mark_completed(dataroom_id, db)

        logger.info(
            "Request processing completed",
            extra={
                **log_context,
                "documents_processed": documents_processed,
                "documents_skipped": documents_skipped,
                "chunks_processed": len(chunks),
                "vectors_stored": vectors_stored,
            },
        )
        return RequestResult(
            documents_processed=documents_processed,
            documents_skipped=documents_skipped,
            chunks_processed=len(chunks),
            vectors_stored=vectors_stored,
            embedding_tokens=embedding_result.total_tokens,
        )

    async def _store_vectors(
        self,
        dataroom_id: str,
        chunks: List[DocumentChunk],
        embeddings: List[ChunkEmbedding],
        generator: EmbeddingGenerator,
    ) -> int:
        try:
            if not await self.vector_store.collection_exists(dataroom_id):
                dimensions = await generator.get_embedding_dimensions()
                await self.vector_store.create_collection(dataroom_id, dimensions)
                logger.info("Created vector collection", extra={"dataroom_id": dataroom_id, "dimensions": dimensions})
        except IndexingError as e:
            raise IndexingError.wrap(e, e.kind, "create_collection", dataroom_id=dataroom_id)
        except Exception as e:
            raise IndexingError.wrap(e, IndexingErrorKind.VECTOR_STORE, "create_collection", dataroom_id=dataroom_id) from e

        vectors = {embedding.chunk_id: embedding.embedding for embedding in embeddings}
        points = build_vector_points(chunks, vectors, self.vector_store, utcnow().isoformat())

        stored = await self.vector_store.upsert_points(
            dataroom_id, points, concurrency=self.limits.vector_upsert_concurrency
        )
        if not stored:
            raise IndexingError(
                IndexingErrorKind.VECTOR_STORE,
                "Failed to store vectors",
                {"operation": "upsert_points", "dataroom_id": dataroom_id, "point_count": len(points)},
            )
        return len(points)

    async def _mark_completed(self, dataroom_id: str, db: AsyncSession) -> None:
        await self.dataroom_service.update_dataroom_indexing_status(
            dataroom_id,
            db,
            status=ParsingStatus.COMPLETED,
            completed_at=utcnow(),
            progress=COMPLETED_PROGRESS,
        )

    async def record_request_failure(self, request: IndexingRequest, error: Exception) -> None:
        """Record a failed request on the dataroom's settings row.

        Failures to write are logged, never raised.
        """
        try:
            async with self.session_factory() as db:
                await self.dataroom_service.update_dataroom_indexing_status(
                    request.dataroom_id, db, status=ParsingStatus.FAILED, error=str(error) or type(error).__name__
                )
        except Exception as e:
            logger.error(
                f"Failed to record request failure: {e}",
                extra={"dataroom_id": request.dataroom_id, "request_id": request.request_id},
            )
