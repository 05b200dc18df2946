"""FastAPI dependencies for use in API endpoints."""

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ...infrastructure.database import async_session
from ...modules.dataroom.services import DataroomService
from ...modules.indexing.queue import RAGQueueManager
from ...modules.indexing.services import IndexingServices
from ...modules.indexing.trigger import IndexingTrigger

DbSession = Annotated[AsyncSession, Depends(async_session)]


def get_indexing_services(request: Request) -> IndexingServices:
    """Services built by the application lifespan."""
    return request.app.state.indexing


def get_indexing_trigger(request: Request) -> IndexingTrigger:
    return get_indexing_services(request).trigger


def get_queue_manager(request: Request) -> RAGQueueManager:
    return get_indexing_services(request).queue


def get_dataroom_service() -> DataroomService:
    """Dependency for providing a DataroomService instance."""
    return DataroomService()
