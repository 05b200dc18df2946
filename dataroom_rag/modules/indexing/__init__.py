"""Lock-coordinated dataroom indexing: queue, trigger, worker and pipeline."""

from .pipeline import IndexingPipeline, PipelineLimits
from .queue import RAGQueueManager
from .schemas import IndexingJobResult, IndexingRequest, RequestResult, TriggerResult, TriggerStatus
from .trigger import IndexingTrigger
from .worker import IndexingWorker

__all__ = [
    "IndexingJobResult",
    "IndexingPipeline",
    "IndexingRequest",
    "IndexingTrigger",
    "IndexingWorker",
    "PipelineLimits",
    "RAGQueueManager",
    "RequestResult",
    "TriggerResult",
    "TriggerStatus",
]
