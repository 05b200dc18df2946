"""Background worker draining a dataroom's indexing queue."""

import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from ...infrastructure.logging import correlation_context, get_logger
from ...infrastructure.tasks import RetryConfig, RetryExhausted, retry_async
from ..embedding.services import EmbeddingGenerator
from ..processing.processor import DocumentProcessor
from .pipeline import IndexingPipeline
from .queue import RAGQueueManager
from .schemas import IndexingJobResult

logger = get_logger(__name__)


@dataclass
class _WorkerResources:
    processor: Optional[DocumentProcessor] = None
    generator: Optional[EmbeddingGenerator] = None


class IndexingWorker:
    """Drains a dataroom's queue while holding its lock.

    Requests are processed one at a time in queue order until the queue is
    empty. A failed request is logged, recorded on the dataroom and skipped.
    The drain as a whole is retried with backoff; the lock is released and the
    extraction resources cleaned up exactly once, after the last attempt,
    however the run ends.
    """

    def __init__(
        self,
        queue: RAGQueueManager,
        pipeline: IndexingPipeline,
        processor_factory: Callable[[], DocumentProcessor],
        generator_factory: Callable[[], EmbeddingGenerator],
        retry_config: Optional[RetryConfig] = None,
    ):
        self.queue = queue
        self.pipeline = pipeline
        self.processor_factory = processor_factory
        self.generator_factory = generator_factory
        self.retry_config = retry_config or RetryConfig()

    async def run(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Task entry point; ``payload`` carries ``dataroom_id``, ``team_id`` and ``user_id``."""
        processing_id = payload.get("processing_id") or str(uuid.uuid4())
        with correlation_context(processing_id):
            result = await self.process(payload["dataroom_id"], payload["team_id"], processing_id)
        return result.model_dump()

    async def process(self, dataroom_id: str, team_id: str, processing_id: str) -> IndexingJobResult:
        log_context = {"dataroom_id": dataroom_id, "team_id": team_id, "processing_id": processing_id}
        logger.info("RAG indexing worker starting", extra=log_context)

        result = IndexingJobResult(processing_id=processing_id)
        resources = _WorkerResources()
        try:
            if not await self.queue.is_indexing_running(dataroom_id):
                logger.info("Lock was lost or expired, exiting", extra=log_context)
                return result

            def on_retry(attempt: int, error: Exception, backoff: float) -> None:
                logger.warning(
                    f"Worker attempt {attempt + 1} failed, retrying: {error}",
                    extra={**log_context, "backoff_seconds": round(backoff, 2)},
                )

            await retry_async(
                lambda: self._drain(dataroom_id, processing_id, result, resources),
                self.retry_config,
                on_retry=on_retry,
            )

            logger.info(
                "RAG indexing worker completed",
                extra={
                    **log_context,
                    "requests_processed": result.requests_processed,
                    "requests_failed": result.requests_failed,
                    "documents_processed": result.documents_processed,
                    "documents_skipped": result.documents_skipped,
                    "chunks_processed": result.chunks_processed,
                    "vectors_stored": result.vectors_stored,
                    "embedding_tokens": result.embedding_tokens,
                },
            )
            return result
        except Exception as e:
            error = e.last_exception if isinstance(e, RetryExhausted) else e
            logger.error(f"RAG indexing worker failed: {error}", extra=log_context)
            result.success = False
            result.error = str(error) or type(error).__name__
            return result
        finally:
            await self.queue.release_lock(dataroom_id)
            if resources.processor is not None:
                try:
                    await resources.processor.cleanup()
                except Exception as e:
                    logger.error(f"Failed to clean up extraction resources: {e}", extra=log_context)

    async def _drain(
        self, dataroom_id: str, processing_id: str, result: IndexingJobResult, resources: _WorkerResources
    ) -> None:
        while await self.queue.has_pending_requests(dataroom_id):
            request = await self.queue.get_next_from_queue(dataroom_id)
            if request is None:
                break

            if resources.processor is None:
                resources.processor = self.processor_factory()
            if resources.generator is None:
                resources.generator = self.generator_factory()

            logger.info(
                "Processing next request from queue",
                extra={"dataroom_id": dataroom_id, "processing_id": processing_id, "request_id": request.request_id},
            )
            try:
                request_result = await self.pipeline.process_rag_indexing_request(
                    request, processing_id, resources.processor, resources.generator
                )
            except Exception as e:
                result.requests_failed += 1
                logger.error(
                    f"Failed to process request from queue: {e}",
                    extra={"dataroom_id": dataroom_id, "processing_id": processing_id, "request_id": request.request_id},
                )
                await self.pipeline.record_request_failure(request, e)
                continue

            result.add(request_result)
            result.requests_processed += 1

        logger.info("No more requests in queue", extra={"dataroom_id": dataroom_id, "processing_id": processing_id})
