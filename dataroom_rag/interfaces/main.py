from ..infrastructure.app_factory import create_application
from ..infrastructure.config.settings import get_settings
from ..interfaces.api import router as api_router

settings = get_settings()

app = create_application(
    router=api_router,
    settings=settings,
    summary="Queued RAG indexing for dataroom documents",
    description="""
    # Dataroom Indexing API

    Indexes dataroom documents for retrieval:

    * **Trigger**: Request indexing of a dataroom; concurrent requests are queued
    * **Worker**: One background worker per dataroom drains its queue
    * **Pipeline**: Documents are extracted to markdown, chunked, embedded and stored as vectors
    * **Status**: Coverage, progress, queue length and worker state per dataroom
    """,
)
