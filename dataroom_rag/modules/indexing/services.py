"""Wiring of the indexing components for one process."""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from ...infrastructure.config.settings import Settings
from ...infrastructure.embedding import EmbeddingService, get_embedding_service
from ...infrastructure.extraction import DoclingClient
from ...infrastructure.logging import get_logger
from ...infrastructure.redis import KeyValueStore, create_key_value_store
from ...infrastructure.storage import PresignedUrlClient
from ...infrastructure.tasks import RetryConfig, TaskRunner
from ...infrastructure.vector_store import VectorStore, create_vector_store
from ..common.constants import RAG_INDEXING_TASK_ID
from ..embedding.services import EmbeddingCache, EmbeddingGenerator, Encoder
from ..processing.processor import DocumentProcessor, Extractor
from .flags import FeatureFlagService
from .pipeline import IndexingPipeline, PipelineLimits
from .queue import RAGQueueManager
from .trigger import IndexingTrigger
from .worker import IndexingWorker

logger = get_logger(__name__)


@dataclass
class IndexingServices:
    """Everything the trigger endpoint and the background worker share.

    The embedding cache outlives worker runs so that identical content is
    embedded once per process; the extraction and storage clients are
    reused by every run and closed with ``close``.
    """

    store: KeyValueStore
    vector_store: VectorStore
    runner: TaskRunner
    queue: RAGQueueManager
    pipeline: IndexingPipeline
    worker: IndexingWorker
    trigger: IndexingTrigger
    extractor: Extractor
    storage: Optional[PresignedUrlClient] = None

    @classmethod
    def build(
        cls,
        settings: Settings,
        session_factory: async_sessionmaker,
        store: Optional[KeyValueStore] = None,
        vector_store: Optional[VectorStore] = None,
        extractor: Optional[Extractor] = None,
        encoder: Optional[Encoder] = None,
        storage: Optional[PresignedUrlClient] = None,
        retry_config: Optional[RetryConfig] = None,
    ) -> "IndexingServices":
        """Build the components from settings; any of them may be supplied instead."""
        store = store or create_key_value_store(settings)
        vector_store = vector_store or create_vector_store(settings)
        extractor = extractor or DoclingClient.from_settings(settings)
        storage = storage or PresignedUrlClient.from_settings(settings)
        encoder_instance: Encoder = encoder or _default_encoder(settings)
        cache = EmbeddingCache(max_size=settings.EMBEDDING_CACHE_SIZE, ttl_seconds=settings.EMBEDDING_CACHE_TTL_SECONDS)

        runner = TaskRunner()
        queue = RAGQueueManager(store, lock_ttl=settings.RAG_LOCK_TTL_SECONDS, queue_ttl=settings.RAG_QUEUE_TTL_SECONDS)
        pipeline = IndexingPipeline(
            session_factory,
            vector_store,
            storage.get_presigned_url,
            limits=PipelineLimits.from_settings(settings),
        )
        worker = IndexingWorker(
            queue,
            pipeline,
            processor_factory=lambda: DocumentProcessor(extractor),
            generator_factory=lambda: EmbeddingGenerator(
                encoder_instance,
                batch_size=settings.EMBEDDING_BATCH_SIZE,
                concurrency=settings.EMBEDDING_CONCURRENCY,
                cache=cache,
            ),
            retry_config=retry_config or RetryConfig.from_settings(settings),
        )
        runner.define(RAG_INDEXING_TASK_ID, worker.run, max_duration=settings.RAG_TASK_MAX_DURATION_SECONDS)
        trigger = IndexingTrigger(queue, runner, session_factory, FeatureFlagService.from_settings(settings))

        return cls(
            store=store,
            vector_store=vector_store,
            runner=runner,
            queue=queue,
            pipeline=pipeline,
            worker=worker,
            trigger=trigger,
            extractor=extractor,
            storage=storage,
        )

    async def close(self) -> None:
        """Stop active runs, then close the clients."""
        await self.runner.shutdown()
        if isinstance(self.extractor, DoclingClient):
            await self.extractor.close()
        if self.storage is not None:
            await self.storage.close()
        await self.vector_store.close()
        await self.store.close()
        logger.info("Indexing services closed")


def _default_encoder(settings: Settings) -> EmbeddingService:
    service = get_embedding_service()
    if service.model_name != settings.EMBEDDING_MODEL_NAME:
        return EmbeddingService(model_name=settings.EMBEDDING_MODEL_NAME)
    return service
