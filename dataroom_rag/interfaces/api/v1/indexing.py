"""Dataroom indexing API endpoints."""

from fastapi import APIRouter, Depends, status

from ....modules.dataroom.services import DataroomService
from ....modules.indexing.queue import RAGQueueManager
from ....modules.indexing.schemas import IndexingStatusResponse, IndexingTriggerRequest, TriggerResult
from ....modules.indexing.trigger import IndexingTrigger
from ..dependencies import DbSession, get_dataroom_service, get_indexing_trigger, get_queue_manager

router = APIRouter(prefix="/datarooms", tags=["Indexing"])


@router.post(
    "/{dataroom_id}/indexing",
    status_code=status.HTTP_202_ACCEPTED,
    summary="Trigger Dataroom Indexing",
    description="""
    Requests indexing of every document in the dataroom that is not yet indexed.

    The request is queued. If no worker is running for the dataroom, one is
    started in the background and the response carries its run id; otherwise
    the active worker picks the request up before it exits.

    - **team_id**: Team that owns the dataroom
    - **user_id**: User requesting the indexing
    """,
    responses={
        202: {"description": "Indexing started, queued, or not needed"},
        422: {"description": "Invalid identifiers"},
        503: {"description": "Queue store or database unavailable"},
    },
    response_description="Trigger outcome with the worker run id when one was started",
)
async def trigger_indexing(
    dataroom_id: str,
    trigger_request: IndexingTriggerRequest,
    trigger: IndexingTrigger = Depends(get_indexing_trigger),
) -> TriggerResult:
    """Trigger indexing of a dataroom."""
    return await trigger.trigger_dataroom_indexing(dataroom_id, trigger_request.team_id, trigger_request.user_id)


@router.get(
    "/{dataroom_id}/indexing",
    summary="Get Dataroom Indexing Status",
    description="""
    Reports the dataroom's indexing coverage, the state recorded by the last
    worker run, whether a worker currently holds the dataroom's lock and how
    many requests are waiting.
    """,
    responses={
        200: {"description": "Indexing status"},
        404: {"description": "Dataroom not found"},
    },
)
async def get_indexing_status(
    dataroom_id: str,
    db: DbSession,
    queue: RAGQueueManager = Depends(get_queue_manager),
    dataroom_service: DataroomService = Depends(get_dataroom_service),
) -> IndexingStatusResponse:
    """Get the indexing status of a dataroom."""
    rag_status = await dataroom_service.check_dataroom_rag_status(dataroom_id, db)
    rag_settings = await dataroom_service.get_rag_settings(dataroom_id, db)

    response = IndexingStatusResponse(
        dataroom_id=dataroom_id,
        status=rag_status,
        is_indexing=await queue.is_indexing_running(dataroom_id),
        queue_length=await queue.get_queue_length(dataroom_id),
    )
    if rag_settings is not None:
        response.rag_indexing_status = rag_settings.rag_indexing_status.value
        response.indexing_progress = rag_settings.indexing_progress
        response.indexing_error = rag_settings.indexing_error
        response.total_embedding_tokens = rag_settings.total_embedding_tokens
    return response
