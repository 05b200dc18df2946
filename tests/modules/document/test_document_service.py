"""Tests for document indexing status service."""

import asyncio

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dataroom_rag.modules.common.exceptions import IndexingError, IndexingErrorKind
from dataroom_rag.modules.document.models import Document, ParsingStatus
from dataroom_rag.modules.document.schemas import DocumentStatusUpdate
from dataroom_rag.modules.document.services import DocumentService


@pytest.fixture
def document_service():
    return DocumentService()


async def load_documents(session_factory):
    async with session_factory() as db:
        documents = (await db.execute(select(Document).order_by(Document.id))).scalars().all()
    return {document.id: document for document in documents}


@pytest.mark.asyncio
async def test_documents_for_processing_are_signed(
    document_service: DocumentService, seed_dataroom, db_session: AsyncSession
):
    await seed_dataroom(
        "dr_1",
        [("doc_1", "application/pdf", ParsingStatus.NOT_STARTED), ("doc_2", None, ParsingStatus.NOT_STARTED)],
    )
    signed = []

    async def sign_url(key: str) -> str:
        signed.append(key)
        return f"https://signed.test/{key}"

    documents = await document_service.get_documents_for_processing(["doc_1", "doc_2"], "dr_1", db_session, sign_url)

    by_id = {document.id: document for document in documents}
    assert by_id["doc_1"].url == "https://signed.test/files/doc_1"
    assert by_id["doc_1"].name == "doc_1.pdf"
    assert by_id["doc_1"].content_type == "application/pdf"
    assert by_id["doc_2"].content_type == "document"
    assert sorted(signed) == ["files/doc_1", "files/doc_2"]


@pytest.mark.asyncio
async def test_unsigned_document_keeps_stored_key(
    document_service: DocumentService, seed_dataroom, db_session: AsyncSession
):
    await seed_dataroom("dr_1", [("doc_1", "application/pdf", ParsingStatus.NOT_STARTED)])

    async def failing_signer(key: str) -> str:
        raise ConnectionError("storage unreachable")

    [document] = await document_service.get_documents_for_processing(["doc_1"], "dr_1", db_session, failing_signer)

    assert document.url == "files/doc_1"


@pytest.mark.asyncio
async def test_documents_of_other_datarooms_are_not_resolved(
    document_service: DocumentService, seed_dataroom, db_session: AsyncSession
):
    await seed_dataroom("dr_1", [("doc_1", "application/pdf", ParsingStatus.NOT_STARTED)])
    await seed_dataroom("dr_2", [("doc_2", "application/pdf", ParsingStatus.NOT_STARTED)])

    async def sign_url(key: str) -> str:
        return key

    documents = await document_service.get_documents_for_processing(["doc_1", "doc_2"], "dr_1", db_session, sign_url)

    assert [document.id for document in documents] == ["doc_1"]


@pytest.mark.asyncio
async def test_no_documents_requested(document_service: DocumentService, db_session: AsyncSession):
    async def sign_url(key: str) -> str:
        raise AssertionError("no signing expected")

    assert await document_service.get_documents_for_processing([], "dr_1", db_session, sign_url) == []


@pytest.mark.asyncio
async def test_processing_results_are_recorded(document_service: DocumentService, seed_dataroom, session_factory):
    await seed_dataroom(
        "dr_1",
        [("doc_ok", "application/pdf", ParsingStatus.NOT_STARTED), ("doc_bad", "application/pdf", ParsingStatus.NOT_STARTED)],
    )

    async with session_factory() as db:
        await document_service.mark_documents_in_progress(["doc_ok", "doc_bad"], db)

    in_progress = await load_documents(session_factory)
    assert in_progress["doc_ok"].rag_indexing_status == ParsingStatus.IN_PROGRESS
    assert in_progress["doc_ok"].rag_indexing_started_at is not None

    async with session_factory() as db:
        await document_service.record_processing_results(
            [
                DocumentStatusUpdate(document_id="doc_ok", status=ParsingStatus.COMPLETED),
                DocumentStatusUpdate(document_id="doc_bad", status=ParsingStatus.FAILED, error="Unreadable file"),
            ],
            db,
        )

    documents = await load_documents(session_factory)
    assert documents["doc_ok"].rag_indexing_status == ParsingStatus.COMPLETED
    assert documents["doc_ok"].rag_indexing_progress == 100.0
    assert documents["doc_ok"].rag_indexing_finished_at is not None
    assert documents["doc_bad"].rag_indexing_status == ParsingStatus.FAILED
    assert documents["doc_bad"].rag_indexing_progress == 0.0
    assert documents["doc_bad"].rag_index_error == "Unreadable file"


@pytest.mark.asyncio
async def test_failure_without_message_gets_default_error(
    document_service: DocumentService, seed_dataroom, session_factory
):
    await seed_dataroom("dr_1", [("doc_1", "application/pdf", ParsingStatus.NOT_STARTED)])

    async with session_factory() as db:
        await document_service.record_processing_results(
            [DocumentStatusUpdate(document_id="doc_1", status=ParsingStatus.FAILED)], db
        )

    documents = await load_documents(session_factory)
    assert documents["doc_1"].rag_index_error == "Document processing failed"


@pytest.mark.asyncio
async def test_mark_documents_as_indexed_in_batches(document_service: DocumentService, seed_dataroom, session_factory):
    ids = [f"doc_{i}" for i in range(5)]
    await seed_dataroom("dr_1", [(document_id, "application/pdf", ParsingStatus.IN_PROGRESS) for document_id in ids])
    token_counts = {document_id: 10 * (i + 1) for i, document_id in enumerate(ids)}

    await document_service.mark_documents_as_indexed(ids, "dr_1", token_counts, session_factory, batch_size=2, concurrency=1)

    documents = await load_documents(session_factory)
    for i, document_id in enumerate(ids):
        assert documents[document_id].rag_indexing_status == ParsingStatus.COMPLETED
        assert documents[document_id].rag_indexing_progress == 100.0
        assert documents[document_id].embedding_token_count == 10 * (i + 1)


@pytest.mark.asyncio
async def test_failed_batch_is_reported_after_all_batches_ran(
    document_service: DocumentService, seed_dataroom, session_factory
):
    ids = ["doc_a", "doc_b", "doc_c"]
    await seed_dataroom("dr_1", [(document_id, "application/pdf", ParsingStatus.IN_PROGRESS) for document_id in ids])
    opened = []

    def flaky_factory():
        opened.append(len(opened))
        if len(opened) == 1:
            raise ConnectionError("connection refused")
        return session_factory()

    with pytest.raises(IndexingError) as exc_info:
        await document_service.mark_documents_as_indexed(ids, "dr_1", {}, flaky_factory, batch_size=1, concurrency=1)

    assert exc_info.value.kind == IndexingErrorKind.DATABASE
    assert exc_info.value.context["failed_batches"] == [0]
    assert str(exc_info.value) == "Failed to mark 1 of 3 document batches as indexed"

    documents = await load_documents(session_factory)
    assert documents["doc_a"].rag_indexing_status == ParsingStatus.IN_PROGRESS
    assert documents["doc_b"].rag_indexing_status == ParsingStatus.COMPLETED
    assert documents["doc_c"].rag_indexing_status == ParsingStatus.COMPLETED


@pytest.mark.asyncio
async def test_list_dataroom_documents(document_service: DocumentService, seed_dataroom, db_session: AsyncSession):
    await seed_dataroom(
        "dr_1",
        [("doc_b", "application/pdf", ParsingStatus.COMPLETED), ("doc_a", "text/plain", ParsingStatus.FAILED)],
    )

    documents = await document_service.list_dataroom_documents("dr_1", db_session)

    assert [document.id for document in documents] == ["doc_a", "doc_b"]
    assert documents[0].rag_indexing_status == ParsingStatus.FAILED
    assert documents[1].type == "application/pdf"


@pytest.mark.asyncio
async def test_signing_concurrency_is_bounded(document_service: DocumentService, seed_dataroom, db_session: AsyncSession):
    await seed_dataroom("dr_1", [(f"doc_{i}", "application/pdf", ParsingStatus.NOT_STARTED) for i in range(6)])
    in_flight = 0
    peak = 0

    async def sign_url(key: str) -> str:
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        return key

    documents = await document_service.get_documents_for_processing(
        [f"doc_{i}" for i in range(6)], "dr_1", db_session, sign_url, concurrency=2
    )

    assert len(documents) == 6
    assert peak == 2
