"""Tests for the document conversion and presigned URL HTTP clients."""

import json
from typing import Dict, List

import httpx
import pytest

from dataroom_rag.infrastructure.extraction import PAGE_BREAK_PLACEHOLDER, DoclingClient, DoclingFormat, format_from_content_type
from dataroom_rag.infrastructure.storage import PresignedUrlClient
from dataroom_rag.infrastructure.storage.presigned import PRESIGNED_URL_PATH
from dataroom_rag.modules.common.exceptions import IndexingError, IndexingErrorKind, ValidationError


class DoclingService:
    """Scripted conversion service: poll statuses are returned in order."""

    def __init__(self, statuses: List[str], markdown: str = "# Report\n\nBody text.", submit_status: int = 200):
        self.statuses = list(statuses)
        self.markdown = markdown
        self.submit_status = submit_status
        self.requests: List[httpx.Request] = []
        self.submitted: List[Dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/v1/convert/source/async":
            self.submitted.append(json.loads(request.content))
            if self.submit_status != 200:
                return httpx.Response(self.submit_status, json={"detail": "rejected"})
            return httpx.Response(200, json={"task_id": "task-1", "task_status": "pending"})
        if path == "/v1/status/poll/task-1":
            return httpx.Response(200, json={"task_id": "task-1", "task_status": self.statuses.pop(0)})
        if path == "/v1/result/task-1":
            return httpx.Response(200, json={"document": {"md_content": self.markdown}})
        if path.startswith("/v1/clear/"):
            return httpx.Response(200, json={"status": "ok"})
        return httpx.Response(404)


def docling_client(service: DoclingService, poll_attempts: int = 5) -> DoclingClient:
    return DoclingClient(
        "http://docling.test", poll_attempts=poll_attempts, poll_interval=0.0, transport=httpx.MockTransport(service)
    )


@pytest.mark.parametrize(
    "content_type,expected",
    [
        ("application/pdf", DoclingFormat.PDF),
        ("application/vnd.openxmlformats-officedocument.wordprocessingml.document", DoclingFormat.DOCX),
        ("application/vnd.ms-powerpoint", DoclingFormat.PPTX),
        ("text/html", DoclingFormat.HTML),
        ("text/markdown", DoclingFormat.MD),
        ("text/csv", DoclingFormat.CSV),
        ("image/jpeg", DoclingFormat.IMAGE),
        ("application/octet-stream", DoclingFormat.PDF),
    ],
)
def test_format_from_content_type(content_type, expected):
    assert format_from_content_type(content_type) == expected


def test_ocr_only_for_scanned_formats():
    pdf = DoclingClient.build_request("https://files.test/a.pdf", "application/pdf")
    html = DoclingClient.build_request("https://files.test/a.html", "text/html")

    assert pdf["sources"] == [{"kind": "http", "url": "https://files.test/a.pdf"}]
    assert pdf["options"]["do_ocr"] is True
    assert pdf["options"]["md_page_break_placeholder"] == PAGE_BREAK_PLACEHOLDER
    assert pdf["options"]["to_formats"] == ["md"]
    assert html["options"]["do_ocr"] is False


def test_invalid_base_url_is_rejected():
    with pytest.raises(ValidationError):
        DoclingClient("docling.internal")


@pytest.mark.asyncio
async def test_convert_polls_until_success():
    service = DoclingService(["pending", "started", "success"])
    client = docling_client(service)

    markdown = await client.convert_to_markdown("https://files.test/a.pdf", "application/pdf")
    await client.close()

    assert markdown == "# Report\n\nBody text."
    assert [r.url.path for r in service.requests].count("/v1/status/poll/task-1") == 3
    assert service.submitted[0]["sources"][0]["url"] == "https://files.test/a.pdf"


@pytest.mark.asyncio
async def test_failed_conversion_is_a_processing_error():
    client = docling_client(DoclingService(["pending", "failure"]))

    with pytest.raises(IndexingError) as exc_info:
        await client.convert_to_markdown("https://files.test/a.pdf", "application/pdf")
    await client.close()

    assert exc_info.value.kind == IndexingErrorKind.PROCESSING
    assert exc_info.value.retryable is False


@pytest.mark.asyncio
async def test_conversion_still_running_times_out():
    client = docling_client(DoclingService(["pending"] * 3), poll_attempts=3)

    with pytest.raises(IndexingError) as exc_info:
        await client.convert_to_markdown("https://files.test/a.pdf", "application/pdf")
    await client.close()

    assert exc_info.value.kind == IndexingErrorKind.TIMEOUT
    assert exc_info.value.context["task_id"] == "task-1"


@pytest.mark.asyncio
async def test_empty_markdown_is_a_processing_error():
    client = docling_client(DoclingService(["success"], markdown=""))

    with pytest.raises(IndexingError) as exc_info:
        await client.convert_to_markdown("https://files.test/a.pdf", "application/pdf")
    await client.close()

    assert str(exc_info.value) == "No markdown content extracted from document"


@pytest.mark.asyncio
async def test_rejected_submission_is_not_retried():
    service = DoclingService([], submit_status=400)
    client = docling_client(service)

    with pytest.raises(IndexingError) as exc_info:
        await client.convert_to_markdown("https://files.test/a.pdf", "application/pdf")
    await client.close()

    assert exc_info.value.kind == IndexingErrorKind.EXTERNAL_SERVICE
    assert exc_info.value.context["operation"] == "docling_submit"
    assert len(service.submitted) == 1


@pytest.mark.asyncio
async def test_submit_validates_url():
    client = docling_client(DoclingService([]))

    with pytest.raises(ValidationError):
        await client.submit("", "application/pdf")
    with pytest.raises(ValidationError):
        await client.submit("https://files.test/" + "a" * 2048, "application/pdf")
    await client.close()


@pytest.mark.asyncio
async def test_cleanup_clears_converters_and_results():
    service = DoclingService([])
    client = docling_client(service)

    await client.cleanup()
    await client.close()

    assert [request.url.path for request in service.requests] == ["/v1/clear/converters", "/v1/clear/results"]
    assert service.requests[1].url.params["older_then"] == "3600"


@pytest.mark.asyncio
async def test_cleanup_failures_are_not_raised():
    def unavailable(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503)

    client = DoclingClient("http://docling.test", transport=httpx.MockTransport(unavailable))

    await client.cleanup()
    await client.close()


@pytest.mark.asyncio
async def test_presigned_url_is_requested_with_api_key():
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"url": "https://s3.test/files/doc_1?signature=abc"})

    client = PresignedUrlClient("http://storage.test", "secret", transport=httpx.MockTransport(handler))

    url = await client.get_presigned_url("files/doc_1")
    await client.close()

    assert url == "https://s3.test/files/doc_1?signature=abc"
    assert seen[0].method == "POST"
    assert seen[0].url.path == PRESIGNED_URL_PATH
    assert seen[0].headers["Authorization"] == "Bearer secret"
    assert json.loads(seen[0].content) == {"key": "files/doc_1"}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, json={"error": "internal"}),
        httpx.Response(200, json={}),
        httpx.Response(200, content=b"not json"),
    ],
)
async def test_presigned_url_failures_are_external_service_errors(response):
    client = PresignedUrlClient("http://storage.test", "secret", transport=httpx.MockTransport(lambda request: response))

    with pytest.raises(IndexingError) as exc_info:
        await client.get_presigned_url("files/doc_1")
    await client.close()

    assert exc_info.value.kind == IndexingErrorKind.EXTERNAL_SERVICE
    assert exc_info.value.context["key"] == "files/doc_1"
