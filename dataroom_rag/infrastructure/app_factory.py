from asyncio import Event
from collections.abc import AsyncGenerator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any, Optional

import anyio
from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from ..modules.common.utils.error_handler import register_exception_handlers
from ..modules.indexing.services import IndexingServices
from .config.settings import DatabaseSettings, EnvironmentOption, Settings, get_settings
from .database.session import create_tables, local_session
from .logging import get_logger

logger = get_logger(__name__)

ServicesFactory = Callable[[Settings], IndexingServices]


def default_services_factory(settings: Settings) -> IndexingServices:
    return IndexingServices.build(settings, local_session)


async def set_threadpool_tokens(number_of_tokens: int = 100) -> None:
    """Configure the number of threadpool tokens for anyio."""
    limiter = anyio.to_thread.current_default_thread_limiter()
    limiter.total_tokens = number_of_tokens


def lifespan_factory(
    settings: Settings,
    create_tables_on_startup: bool = True,
    services_factory: Optional[ServicesFactory] = None,
) -> Callable[[FastAPI], AbstractAsyncContextManager[None]]:
    """Factory to create a lifespan async context manager for a FastAPI app.

    The lifespan builds the indexing services, stores them on
    ``app.state.indexing``, and closes them on shutdown after canceling any
    worker run still in flight.

    Args:
        settings: Application settings
        create_tables_on_startup: Whether to create database tables on startup
        services_factory: Builds the indexing services; defaults to building
            them from settings

    Returns:
        An async context manager for FastAPI's lifespan
    """
    build_services = services_factory or default_services_factory

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        initialization_complete = Event()
        app.state.initialization_complete = initialization_complete

        await set_threadpool_tokens()

        services: Optional[IndexingServices] = None
        try:
            if isinstance(settings, DatabaseSettings) and create_tables_on_startup:
                await create_tables()

            services = build_services(settings)
            app.state.indexing = services
            logger.info("Indexing services started", extra={"environment": settings.ENVIRONMENT.value})

            initialization_complete.set()
            yield

        finally:
            if services is not None:
                await services.close()

    return lifespan


def create_application(
    router: APIRouter,
    settings: Optional[Settings] = None,
    lifespan: Optional[Callable[[FastAPI], AbstractAsyncContextManager[None]]] = None,
    services_factory: Optional[ServicesFactory] = None,
    create_tables_on_startup: Optional[bool] = None,
    summary: Optional[str] = None,
    description: Optional[str] = None,
    **kwargs: Any,
) -> FastAPI:
    """Creates the indexing API application.

    Middleware, docs visibility and metadata come from settings; docs are
    hidden in production unless ``ENABLE_DOCS_IN_PRODUCTION`` is set.

    Args:
        router: The APIRouter containing the routes for the application
        settings: Application settings (uses get_settings() if None)
        lifespan: Replaces the default lifespan that creates tables and
            owns the indexing services
        services_factory: Passed to the default lifespan; ignored with a custom ``lifespan``
        create_tables_on_startup: Defaults to settings.CREATE_TABLES_ON_STARTUP if None
        summary: A short summary of the API
        description: A detailed description of the API (supports Markdown)
        **kwargs: Additional keyword arguments passed to FastAPI constructor
    """
    if settings is None:
        settings = get_settings()

    if create_tables_on_startup is None:
        create_tables_on_startup = settings.CREATE_TABLES_ON_STARTUP

    kwargs.update(
        title=settings.APP_NAME,
        description=description if description is not None else settings.APP_DESCRIPTION,
        version=settings.VERSION,
    )
    if summary is not None:
        kwargs["summary"] = summary

    if settings.ENVIRONMENT == EnvironmentOption.PRODUCTION and not settings.ENABLE_DOCS_IN_PRODUCTION:
        kwargs.update(docs_url=None, redoc_url=None, openapi_url=None)
    else:
        kwargs.update(docs_url=settings.DOCS_URL, redoc_url=settings.REDOC_URL, openapi_url=settings.OPENAPI_URL)

    if lifespan is None:
        lifespan = lifespan_factory(
            settings, create_tables_on_startup=create_tables_on_startup, services_factory=services_factory
        )

    application = FastAPI(lifespan=lifespan, **kwargs)

    application.include_router(router)
    register_exception_handlers(application)

    if settings.CORS_ENABLED:
        application.add_middleware(
            CORSMiddleware,
            allow_origins=settings.CORS_ORIGINS_LIST,
            allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
            allow_methods=["GET", "POST"],
            allow_headers=["*"],
        )

    if settings.GZIP_ENABLED:
        application.add_middleware(GZipMiddleware, minimum_size=settings.GZIP_MINIMUM_SIZE)

    return application
