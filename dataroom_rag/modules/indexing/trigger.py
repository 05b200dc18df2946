"""Entry point for requesting a dataroom to be indexed."""

from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from ...infrastructure.logging import get_logger
from ...infrastructure.tasks import TaskRunner
from ..common.constants import RAG_INDEXING_TASK_ID
from ..common.exceptions import IndexingError, IndexingErrorKind, ValidationError
from ..dataroom.services import DataroomService
from .flags import RAG_INDEXING_FLAG, FeatureFlagService
from .queue import RAGQueueManager
from .schemas import TriggerResult, TriggerStatus

logger = get_logger(__name__)


class IndexingTrigger:
    """Enqueues indexing requests and starts a worker when none is running.

    Every accepted call enqueues a request, whether or not a worker is
    already active, so no caller's intent is dropped. Only the caller that
    acquires the dataroom lock starts a worker; the others' requests are
    drained by the active worker's loop.
    """

    def __init__(
        self,
        queue: RAGQueueManager,
        runner: TaskRunner,
        session_factory: async_sessionmaker,
        feature_flags: FeatureFlagService,
        dataroom_service: Optional[DataroomService] = None,
    ):
        self.queue = queue
        self.runner = runner
        self.session_factory = session_factory
        self.feature_flags = feature_flags
        self.dataroom_service = dataroom_service or DataroomService()

    async def trigger_dataroom_indexing(self, dataroom_id: str, team_id: str, user_id: str) -> TriggerResult:
        """Request indexing of a dataroom.

        Returns:
            ``feature_disabled`` or ``no_documents_to_index`` without
            enqueueing; otherwise ``started`` with the worker's run id, or
            ``queued`` when a worker already holds the lock

        Raises:
            ValidationError: If an identifier is empty
            IndexingError: For store, database or task start failures
        """
        for field_name, value in (("dataroom_id", dataroom_id), ("team_id", team_id), ("user_id", user_id)):
            if not isinstance(value, str) or not value.strip():
                raise ValidationError(
                    f"Invalid {field_name}: must be a non-empty string",
                    field=field_name,
                    operation="trigger_dataroom_indexing",
                )

        identifiers = {"dataroom_id": dataroom_id, "team_id": team_id, "user_id": user_id}
        try:
            return await self._trigger(dataroom_id, team_id, user_id)
        except ValidationError:
            raise
        except IndexingError as e:
            raise IndexingError.wrap(e, e.kind, "trigger_dataroom_indexing", **identifiers)
        except SQLAlchemyError as e:
            raise IndexingError.wrap(e, IndexingErrorKind.DATABASE, "trigger_dataroom_indexing", **identifiers) from e
        except Exception as e:
            raise IndexingError.wrap(
                e, IndexingErrorKind.EXTERNAL_SERVICE, "trigger_dataroom_indexing", **identifiers
            ) from e

    async def _trigger(self, dataroom_id: str, team_id: str, user_id: str) -> TriggerResult:
        flags = await self.feature_flags.get_flags(team_id)
        if not flags.get(RAG_INDEXING_FLAG, False):
            logger.info("RAG indexing disabled for team", extra={"dataroom_id": dataroom_id, "team_id": team_id})
            return TriggerResult(status=TriggerStatus.FEATURE_DISABLED)

        async with self.session_factory() as db:
            unindexed_count = await self.dataroom_service.count_unindexed_documents(dataroom_id, db)

        if unindexed_count == 0:
            logger.info("No documents to index", extra={"dataroom_id": dataroom_id})
            return TriggerResult(status=TriggerStatus.NO_DOCUMENTS_TO_INDEX, unindexed_count=0)

        request = await self.queue.add_to_queue(dataroom_id, team_id, user_id)

        if not await self.queue.try_start_worker(dataroom_id):
            logger.info(
                "Worker already running, request queued",
                extra={"dataroom_id": dataroom_id, "request_id": request.request_id},
            )
            return TriggerResult(status=TriggerStatus.QUEUED, unindexed_count=unindexed_count)

        try:
            handle = await self.runner.trigger(
                RAG_INDEXING_TASK_ID,
                {"dataroom_id": dataroom_id, "team_id": team_id, "user_id": user_id},
                idempotency_key=f"{dataroom_id}:{request.request_id}",
                tags=(f"dataroom:{dataroom_id}", f"team:{team_id}"),
            )
        except Exception:
            await self.queue.release_lock(dataroom_id)
            raise

        logger.info(
            "Indexing worker started",
            extra={"dataroom_id": dataroom_id, "run_id": handle.id, "unindexed_count": unindexed_count},
        )
        return TriggerResult(status=TriggerStatus.STARTED, task_id=handle.id, unindexed_count=unindexed_count)
