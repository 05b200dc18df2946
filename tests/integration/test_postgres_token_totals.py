"""Integration tests for settings-row upserts against PostgreSQL."""

import asyncio

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# mypy: disable-error-code="import-untyped"
from testcontainers.core.docker_client import DockerClient
from testcontainers.postgres import PostgresContainer

from dataroom_rag.infrastructure.database.session import Base
from dataroom_rag.modules.dataroom.models import Dataroom
from dataroom_rag.modules.dataroom.services import DataroomService
from dataroom_rag.modules.document.models import ParsingStatus


def is_docker_running() -> bool:
    """Check if Docker daemon is running."""
    try:
        DockerClient()
        return True
    except Exception:
        return False


@pytest.fixture(scope="module")
def pg_container():
    """Create a PostgreSQL container for testing."""
    if not is_docker_running():
        pytest.skip("Docker is required, but not running")

    with PostgresContainer("postgres:16-alpine") as pg:
        yield pg


@pytest.fixture
def pg_url(pg_container) -> str:
    host = pg_container.get_container_host_ip()
    port = pg_container.get_exposed_port(5432)
    return f"postgresql+asyncpg://{pg_container.username}:{pg_container.password}@{host}:{port}/{pg_container.dbname}"


@pytest_asyncio.fixture
async def pg_sessions(pg_url):
    engine = create_async_engine(pg_url, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    sessions = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with sessions() as db:
        dataroom = Dataroom(team_id="team_1", name="Integration")
        dataroom.id = "dr_pg"
        db.add(dataroom)
        await db.commit()

    yield sessions

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.mark.asyncio
async def test_concurrent_token_increments_are_not_lost(pg_sessions):
    """Racing first writers fall back to incrementing the row another writer created."""
    service = DataroomService()

    async def record(tokens: int) -> None:
        async with pg_sessions() as db:
            await service.update_dataroom_indexing_status("dr_pg", db, embedding_tokens=tokens)

    await asyncio.gather(*(record(10) for _ in range(10)))

    async with pg_sessions() as db:
        settings = await service.get_rag_settings("dr_pg", db)

    assert settings.total_embedding_tokens == 100


@pytest.mark.asyncio
async def test_status_transitions_round_trip(pg_sessions):
    service = DataroomService()

    async with pg_sessions() as db:
        await service.update_dataroom_indexing_status("dr_pg", db, status=ParsingStatus.IN_PROGRESS, progress=5.0)
        await service.update_dataroom_indexing_status("dr_pg", db, status=ParsingStatus.COMPLETED, progress=100.0)

    async with pg_sessions() as db:
        settings = await service.get_rag_settings("dr_pg", db)

    assert settings.rag_indexing_status == ParsingStatus.COMPLETED
    assert settings.indexing_progress == 100.0
