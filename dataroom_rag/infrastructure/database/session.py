from typing import Any, AsyncGenerator, Dict

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, MappedAsDataclass

from ..config.settings import settings


def _engine_options(database_url: str) -> Dict[str, Any]:
    """Pool options only apply to server databases; SQLite uses a static pool."""
    if database_url.startswith("sqlite"):
        return {}
    return {
        "pool_size": settings.POSTGRES_POOL_SIZE,
        "max_overflow": settings.POSTGRES_MAX_OVERFLOW,
        "pool_pre_ping": True,
    }


def build_engine(database_url: str) -> AsyncEngine:
    """Create an async engine for the given URL."""
    return create_async_engine(database_url, echo=False, future=True, **_engine_options(database_url))


engine = build_engine(settings.DATABASE_URL)

local_session = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase, MappedAsDataclass):
    """Base class for all database models.

    Combines SQLAlchemy's DeclarativeBase with MappedAsDataclass so that every
    model gets a generated ``__init__``/``__repr__`` from its mapped columns.
    Columns declared with ``init=False`` (ids, timestamps, status fields) are
    filled from their defaults.
    """

    pass


async def async_session() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for database session management.

    Yields:
        AsyncSession: A session bound to the application engine.

    Note:
        Used as a FastAPI dependency via ``Depends(async_session)`` and as the
        session source for the background indexing worker.
    """
    async with local_session() as db:
        yield db


async def create_tables() -> None:
    """Create all tables in the database if they don't exist."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
