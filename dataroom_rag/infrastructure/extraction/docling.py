"""HTTP client for a Docling document conversion service.

Conversion is asynchronous on the service side: a source URL is submitted,
the returned task is polled until it settles, and the markdown rendition is
fetched from the task's result.
"""

import asyncio
import re
import time
from enum import Enum
from typing import Any, Dict, List, Optional

import httpx

from ...modules.common.exceptions import IndexingError, IndexingErrorKind, ValidationError
from ..config.settings import Settings
from ..logging import get_logger
from ..tasks.retry import RetryConfig, with_retry

logger = get_logger(__name__)

PAGE_BREAK_PLACEHOLDER = "---PAGE_BREAK---"

SUCCESS_STATUSES = frozenset({"success", "partial_success"})
FAILURE_STATUSES = frozenset({"failed", "failure", "skipped"})

SUBMIT_RETRY_CONFIG = RetryConfig(max_attempts=3, initial_backoff=1.0, backoff_multiplier=2.0, max_backoff=10.0)


class DoclingFormat(str, Enum):
    """Input formats the conversion service accepts."""

    PDF = "pdf"
    DOCX = "docx"
    PPTX = "pptx"
    HTML = "html"
    IMAGE = "image"
    MD = "md"
    CSV = "csv"


OCR_FORMATS = frozenset({DoclingFormat.PDF, DoclingFormat.IMAGE})


def format_from_content_type(content_type: str) -> DoclingFormat:
    """Map a MIME type or short type name to a Docling input format; unknown types are sent as PDF."""
    lower = content_type.lower()
    if "pdf" in lower:
        return DoclingFormat.PDF
    if "docx" in lower or "word" in lower:
        return DoclingFormat.DOCX
    if "pptx" in lower or "powerpoint" in lower or "presentation" in lower:
        return DoclingFormat.PPTX
    if "html" in lower:
        return DoclingFormat.HTML
    if "markdown" in lower or lower == "md" or lower.endswith("/md"):
        return DoclingFormat.MD
    if "csv" in lower:
        return DoclingFormat.CSV
    if "image" in lower or "jpg" in lower or "jpeg" in lower or "png" in lower:
        return DoclingFormat.IMAGE
    return DoclingFormat.PDF


def _is_transient_http_error(error: Exception) -> bool:
    if isinstance(error, httpx.TransportError):
        return True
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code >= 500
    return False


class DoclingClient:
    """Converts documents at a URL to markdown through a Docling service."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 300.0,
        poll_attempts: int = 30,
        poll_interval: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not re.match(r"^https?://.+", base_url or ""):
            raise ValidationError(f"Invalid Docling base URL: {base_url}", field="base_url", operation="docling_client")

        self.base_url = base_url.rstrip("/")
        self.poll_attempts = max(1, poll_attempts)
        self.poll_interval = poll_interval
        self._client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)

    @classmethod
    def from_settings(cls, settings: Settings) -> "DoclingClient":
        return cls(
            settings.DOCLING_API_URL,
            timeout=settings.DOCLING_REQUEST_TIMEOUT,
            poll_attempts=settings.DOCLING_POLL_ATTEMPTS,
            poll_interval=settings.DOCLING_POLL_INTERVAL_SECONDS,
        )

    @staticmethod
    def supported_formats() -> List[str]:
        return [fmt.value for fmt in DoclingFormat]

    @staticmethod
    def build_request(document_url: str, content_type: str) -> Dict[str, Any]:
        """Conversion request for one source document."""
        requires_ocr = format_from_content_type(content_type) in OCR_FORMATS
        return {
            "sources": [{"kind": "http", "url": document_url}],
            "options": {
                "to_formats": ["md"],
                "image_export_mode": "placeholder",
                "do_ocr": requires_ocr,
                "force_ocr": False,
                "pdf_backend": "dlparse_v4",
                "table_mode": "accurate",
                "abort_on_error": False,
                "do_table_structure": True,
                "md_page_break_placeholder": PAGE_BREAK_PLACEHOLDER,
            },
        }

    @with_retry(SUBMIT_RETRY_CONFIG, is_retryable=_is_transient_http_error)
    async def _post_submit(self, body: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._client.post("/v1/convert/source/async", json=body)
        response.raise_for_status()
        return response.json()

    async def submit(self, document_url: str, content_type: str) -> str:
        """Submit a conversion and return the service's task id."""
        if not document_url:
            raise ValidationError("Document URL is required", field="document_url", operation="docling_submit")
        if len(document_url) > 2048:
            raise ValidationError("Document URL is too long (max 2048 characters)", field="document_url", operation="docling_submit")

        try:
            data = await self._post_submit(self.build_request(document_url, content_type))
        except IndexingError as e:
            raise IndexingError.wrap(e, e.kind, "docling_submit")
        except Exception as e:
            raise IndexingError.wrap(e, IndexingErrorKind.EXTERNAL_SERVICE, "docling_submit") from e

        task_id = data.get("task_id")
        if not task_id:
            raise IndexingError(IndexingErrorKind.PROCESSING, "No task_id received", {"operation": "docling_submit"})
        return str(task_id)

    async def poll(self, task_id: str) -> Dict[str, Any]:
        """Poll until the task succeeds.

        Raises:
            IndexingError: ``processing`` if the task failed, ``timeout`` if
                it was still running after the configured attempts
        """
        for attempt in range(self.poll_attempts):
            try:
                response = await self._client.get(f"/v1/status/poll/{task_id}")
                response.raise_for_status()
                status = response.json()
            except httpx.HTTPError as e:
                raise IndexingError.wrap(e, IndexingErrorKind.EXTERNAL_SERVICE, "docling_poll", task_id=task_id) from e

            task_status = status.get("task_status")
            if task_status in SUCCESS_STATUSES:
                return status
            if task_status in FAILURE_STATUSES:
                raise IndexingError(
                    IndexingErrorKind.PROCESSING,
                    f"Docling job failed with status '{task_status}'",
                    {"operation": "docling_poll", "task_id": task_id},
                )

            logger.debug("Conversion still running", extra={"task_id": task_id, "attempt": attempt + 1, "status": task_status})
            await asyncio.sleep(self.poll_interval)

        raise IndexingError(
            IndexingErrorKind.TIMEOUT,
            f"Docling job {task_id} did not finish after {self.poll_attempts} polls",
            {"operation": "docling_poll", "task_id": task_id},
        )

    async def fetch_markdown(self, task_id: str) -> str:
        try:
            response = await self._client.get(f"/v1/result/{task_id}")
            response.raise_for_status()
            result = response.json()
        except httpx.HTTPError as e:
            raise IndexingError.wrap(e, IndexingErrorKind.EXTERNAL_SERVICE, "docling_result", task_id=task_id) from e

        markdown = (result.get("document") or {}).get("md_content")
        if not markdown:
            raise IndexingError(
                IndexingErrorKind.PROCESSING,
                "No markdown content extracted from document",
                {"operation": "docling_result", "task_id": task_id},
            )
        return str(markdown)

    async def convert_to_markdown(self, document_url: str, content_type: str) -> str:
        """Submit, wait for and fetch the markdown rendition of a document."""
        started = time.monotonic()
        task_id = await self.submit(document_url, content_type)
        await self.poll(task_id)
        markdown = await self.fetch_markdown(task_id)
        logger.info(
            "Document converted",
            extra={
                "task_id": task_id,
                "content_length": len(markdown),
                "processing_seconds": round(time.monotonic() - started, 2),
            },
        )
        return markdown

    async def cleanup(self) -> None:
        """Ask the service to drop cached converters and results older than an hour.

        Failures are logged, never raised.
        """
        for path, params in (("/v1/clear/converters", None), ("/v1/clear/results", {"older_then": 3600})):
            try:
                response = await self._client.get(path, params=params)
                response.raise_for_status()
                logger.info("Cleared Docling resources", extra={"path": path})
            except httpx.HTTPError as e:
                logger.warning(f"Failed to clear Docling resources: {e}", extra={"path": path})

    async def close(self) -> None:
        await self._client.aclose()
