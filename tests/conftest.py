"""Test configuration and fixtures for the dataroom indexing service."""

import hashlib
import json
import os
import tempfile
from typing import Callable, Dict, List, Optional, Set

_test_db_dir = tempfile.mkdtemp(prefix="dataroom-rag-tests-")

os.environ["ENVIRONMENT"] = "local"
os.environ["DATABASE_URI"] = f"sqlite+aiosqlite:///{os.path.join(_test_db_dir, 'test.db')}"
os.environ["CREATE_TABLES_ON_STARTUP"] = "false"
os.environ["REDIS_URL"] = "memory://"
os.environ["VECTOR_STORE_BACKEND"] = "memory"
os.environ["FEATURE_RAG_INDEXING_ENABLED"] = "true"
os.environ["FEATURE_RAG_INDEXING_TEAMS"] = ""
os.environ["GZIP_ENABLED"] = "false"

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy import select  # noqa: E402

from dataroom_rag.infrastructure.config.settings import get_settings  # noqa: E402
from dataroom_rag.infrastructure.database.session import Base, engine, local_session  # noqa: E402
from dataroom_rag.infrastructure.logging import configure_testing_logging  # noqa: E402
from dataroom_rag.infrastructure.redis import MemoryKeyValueStore  # noqa: E402
from dataroom_rag.infrastructure.storage import PresignedUrlClient  # noqa: E402
from dataroom_rag.infrastructure.tasks import RetryConfig  # noqa: E402
from dataroom_rag.infrastructure.vector_store import InMemoryVectorStore  # noqa: E402
from dataroom_rag.interfaces.main import app  # noqa: E402
from dataroom_rag.modules.common.exceptions import IndexingError, IndexingErrorKind  # noqa: E402
from dataroom_rag.modules.dataroom.models import Dataroom, DataroomDocument  # noqa: E402
from dataroom_rag.modules.document.models import Document, ParsingStatus  # noqa: E402
from dataroom_rag.modules.indexing.services import IndexingServices  # noqa: E402

configure_testing_logging()

EMBEDDING_DIMENSION = 8

SAMPLE_MARKDOWN = """# Quarterly Report

Revenue grew twelve percent over the previous quarter, driven by enterprise renewals
and a steady increase in new mid-market customers across every region.

## Outlook

Management expects margins to remain stable while the company continues to invest
in product development, customer support and international expansion."""

NO_RETRY = RetryConfig(max_attempts=1, initial_backoff=0.0)


class FakeExtractor:
    """Extraction stand-in returning canned markdown per document URL."""

    def __init__(self, markdown: Optional[Dict[str, str]] = None, failing_urls: Optional[Set[str]] = None):
        self.markdown = markdown or {}
        self.failing_urls = set(failing_urls or ())
        self.converted: List[str] = []
        self.cleanup_calls = 0

    @staticmethod
    def supported_formats() -> List[str]:
        return ["pdf", "docx", "md", "txt"]

    async def convert_to_markdown(self, document_url: str, content_type: str) -> str:
        self.converted.append(document_url)
        if document_url in self.failing_urls:
            raise IndexingError(
                IndexingErrorKind.PROCESSING,
                f"Conversion failed for {document_url}",
                {"operation": "convert_to_markdown"},
            )
        return self.markdown.get(document_url, SAMPLE_MARKDOWN)

    async def cleanup(self) -> None:
        self.cleanup_calls += 1


class FakeEncoder:
    """Deterministic encoder: each text maps to a fixed vector derived from its hash."""

    model_name = "fake-mpnet"

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: List[List[str]] = []

    async def embed_texts(self, texts: List[str]) -> List[List[float]]:
        self.calls.append(list(texts))
        if self.fail:
            raise RuntimeError("encoder unavailable")
        return [self._vector(text) for text in texts]

    async def get_dimension(self) -> int:
        return EMBEDDING_DIMENSION

    @staticmethod
    def _vector(text: str) -> List[float]:
        digest = hashlib.sha256(text.encode("utf-8")).digest()
        return [byte / 255.0 for byte in digest[:EMBEDDING_DIMENSION]]


async def sign_url(key: str) -> str:
    return f"https://files.test/{key}"


def storage_handler(request: httpx.Request) -> httpx.Response:
    """Presigned URL endpoint of the blob store."""
    key = json.loads(request.content)["key"]
    return httpx.Response(200, json={"url": f"https://files.test/{key}"})


@pytest_asyncio.fixture(scope="function")
async def db_tables():
    """Create all tables before a test and drop them afterwards."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture(scope="function")
async def db_session(db_tables):
    """A session on the test database."""
    async with local_session() as session:
        yield session


@pytest.fixture
def session_factory(db_tables):
    return local_session


@pytest.fixture
def seed_dataroom(db_tables) -> Callable:
    """Create a dataroom and its documents in a committed session.

    Returns a coroutine function taking the dataroom id and a list of
    ``(document_id, content_type, status)`` tuples.
    """

    async def seed(
        dataroom_id: str = "dr_1",
        documents: Optional[List[tuple]] = None,
        team_id: str = "team_1",
    ) -> Dict[str, str]:
        async with local_session() as db:
            dataroom = Dataroom(team_id=team_id, name=f"Dataroom {dataroom_id}")
            dataroom.id = dataroom_id
            db.add(dataroom)
            await db.commit()
        for document_id, content_type, status in documents or []:
            await _add_document(dataroom_id, document_id, content_type, status, team_id)
        return {"dataroom_id": dataroom_id, "team_id": team_id}

    return seed


async def _add_document(
    dataroom_id: str,
    document_id: str,
    content_type: Optional[str] = "application/pdf",
    status: ParsingStatus = ParsingStatus.NOT_STARTED,
    team_id: str = "team_1",
) -> None:
    async with local_session() as db:
        document = Document(team_id=team_id, name=f"{document_id}.pdf", file=f"files/{document_id}", type=content_type)
        document.id = document_id
        document.rag_indexing_status = status
        db.add(document)
        await db.flush()
        db.add(DataroomDocument(dataroom_id=dataroom_id, document_id=document_id))
        await db.commit()


@pytest.fixture
def add_document(db_tables) -> Callable:
    """Add a document to an existing dataroom."""
    return _add_document


async def document_statuses(dataroom_id: str) -> Dict[str, ParsingStatus]:
    """Current status of every document in a dataroom, read in a fresh session."""
    async with local_session() as db:
        rows = (
            await db.execute(
                select(Document.id, Document.rag_indexing_status)
                .join(DataroomDocument, DataroomDocument.document_id == Document.id)
                .where(DataroomDocument.dataroom_id == dataroom_id)
            )
        ).all()
    return {row.id: row.rag_indexing_status for row in rows}


@pytest.fixture
def read_statuses() -> Callable:
    return document_statuses


@pytest.fixture
def fake_extractor() -> FakeExtractor:
    return FakeExtractor()


@pytest.fixture
def fake_encoder() -> FakeEncoder:
    return FakeEncoder()


@pytest.fixture
def key_value_store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def vector_store() -> InMemoryVectorStore:
    return InMemoryVectorStore()


@pytest_asyncio.fixture
async def indexing_services(session_factory, key_value_store, vector_store, fake_extractor, fake_encoder):
    """Indexing services wired to in-memory stores and fake external services."""
    storage = PresignedUrlClient("http://storage.test", "test-key", transport=httpx.MockTransport(storage_handler))
    services = IndexingServices.build(
        get_settings(),
        session_factory,
        store=key_value_store,
        vector_store=vector_store,
        extractor=fake_extractor,
        encoder=fake_encoder,
        storage=storage,
        retry_config=NO_RETRY,
    )
    yield services
    await services.runner.wait_all()
    await services.close()


@pytest_asyncio.fixture(scope="function")
async def client(indexing_services):
    """HTTP client against the app, wired to the test indexing services."""
    app.state.indexing = indexing_services
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    del app.state.indexing
