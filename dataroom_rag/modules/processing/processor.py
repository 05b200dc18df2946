"""Extraction and chunking of dataroom documents."""

import asyncio
import time
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

from ...infrastructure.logging import get_logger
from ..chunk.services import DocumentChunker
from ..common.exceptions import IndexingError, IndexingErrorKind
from ..document.schemas import DocumentForProcessing
from .schemas import ProcessingResult

logger = get_logger(__name__)

MAX_DOCUMENT_CONCURRENCY = 10
DEFAULT_DOCUMENT_CONCURRENCY = 3

FORMAT_ALIASES: Dict[str, Tuple[str, ...]] = {
    "md": ("markdown", "text/markdown"),
    "docx": ("word", "application/vnd.openxmlformats-officedocument.wordprocessingml.document"),
    "doc": ("msword", "application/msword"),
    "pptx": ("powerpoint", "application/vnd.openxmlformats-officedocument.presentationml.presentation"),
    "ppt": ("powerpoint", "application/vnd.ms-powerpoint"),
    "xlsx": ("excel", "spreadsheet", "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"),
    "xls": ("excel", "spreadsheet", "application/vnd.ms-excel"),
    "pdf": ("application/pdf",),
    "txt": ("text", "text/plain"),
    "html": ("text/html",),
    "rtf": ("application/rtf", "text/rtf"),
    "csv": ("text/csv", "comma-separated"),
    "json": ("application/json",),
    "xml": ("text/xml", "application/xml"),
}


class Extractor(Protocol):
    """Converts a document at a URL to markdown."""

    @staticmethod
    def supported_formats() -> List[str]: ...

    async def convert_to_markdown(self, document_url: str, content_type: str) -> str: ...

    async def cleanup(self) -> None: ...


def is_format_supported(content_type: Optional[str], supported_formats: Sequence[str]) -> bool:
    """Whether ``content_type`` (a MIME type or short name) maps onto a supported format."""
    content = (content_type or "").lower()
    for fmt in (s.lower() for s in supported_formats):
        if fmt in content:
            return True
        if any(alias in content for alias in FORMAT_ALIASES.get(fmt, ())):
            return True
    return False


class DocumentProcessor:
    """Turns documents into chunks: extraction to markdown, then chunking.

    The processor holds the extraction client across requests of one worker
    run; ``cleanup`` releases the extraction service's cached resources and
    must be called once the run is over.
    """

    def __init__(self, extractor: Extractor, chunker: Optional[DocumentChunker] = None):
        self.extractor = extractor
        self.chunker = chunker or DocumentChunker()

    def get_supported_formats(self) -> List[str]:
        return list(self.extractor.supported_formats())

    def is_format_supported(self, content_type: Optional[str]) -> bool:
        return is_format_supported(content_type, self.get_supported_formats())

    async def process_document(
        self, document: DocumentForProcessing, dataroom_id: str, team_id: str
    ) -> ProcessingResult:
        """Extract and chunk one document; failures come back as a failed result."""
        started = time.monotonic()
        try:
            markdown = await self.extractor.convert_to_markdown(document.url, document.content_type)
            chunks = self.chunker.create_chunks(
                markdown,
                document_id=document.id,
                document_name=document.name,
                dataroom_id=dataroom_id,
                team_id=team_id,
                content_type=document.content_type,
            )
        except IndexingError as e:
            elapsed = time.monotonic() - started
            logger.error(
                f"Document processing failed: {e}",
                extra={"document_id": document.id, "dataroom_id": dataroom_id, "kind": e.kind.value},
            )
            return ProcessingResult.failure(document.id, str(e), e.kind, elapsed)
        except Exception as e:
            elapsed = time.monotonic() - started
            logger.exception(
                f"Unexpected error processing document: {e}",
                extra={"document_id": document.id, "dataroom_id": dataroom_id},
            )
            return ProcessingResult.failure(document.id, str(e) or type(e).__name__, IndexingErrorKind.PROCESSING, elapsed)

        elapsed = time.monotonic() - started
        logger.info(
            "Document processed",
            extra={
                "document_id": document.id,
                "chunk_count": len(chunks),
                "content_length": len(markdown),
                "processing_seconds": round(elapsed, 2),
            },
        )
        return ProcessingResult.success(document.id, chunks, elapsed)

    async def process_documents(
        self,
        documents: Sequence[DocumentForProcessing],
        dataroom_id: str,
        team_id: str,
        max_concurrency: int = DEFAULT_DOCUMENT_CONCURRENCY,
    ) -> List[ProcessingResult]:
        """Process ``documents`` with at most ``max_concurrency`` in flight.

        Returns one result per document, in input order.
        """
        if not documents:
            logger.warning("No documents to process", extra={"dataroom_id": dataroom_id, "team_id": team_id})
            return []

        if not 1 <= max_concurrency <= MAX_DOCUMENT_CONCURRENCY:
            logger.warning(
                "Invalid concurrency level, using default",
                extra={"requested": max_concurrency, "default": DEFAULT_DOCUMENT_CONCURRENCY},
            )
            max_concurrency = DEFAULT_DOCUMENT_CONCURRENCY

        started = time.monotonic()
        semaphore = asyncio.Semaphore(max_concurrency)

        async def run(document: DocumentForProcessing) -> ProcessingResult:
            async with semaphore:
                return await self.process_document(document, dataroom_id, team_id)

        results = list(await asyncio.gather(*(run(document) for document in documents)))

        succeeded = sum(1 for result in results if result.ok)
        logger.info(
            "Batch document processing completed",
            extra={
                "dataroom_id": dataroom_id,
                "total_documents": len(documents),
                "successful_documents": succeeded,
                "failed_documents": len(results) - succeeded,
                "processing_seconds": round(time.monotonic() - started, 2),
            },
        )
        return results

    async def cleanup(self) -> None:
        await self.extractor.cleanup()
