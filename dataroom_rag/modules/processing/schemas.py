"""Per-document processing outcomes."""

from dataclasses import dataclass, field
from typing import List, Optional

from ..chunk.schemas import DocumentChunk
from ..common.exceptions import IndexingErrorKind


@dataclass(frozen=True)
class ProcessingError:
    """Why a single document could not be processed."""

    message: str
    kind: IndexingErrorKind = IndexingErrorKind.PROCESSING


@dataclass(frozen=True)
class ProcessingResult:
    """Outcome of extracting and chunking one document.

    Exactly one of ``chunks`` (on success) or ``error`` is meaningful. A
    failed document never raises; the caller records the error against the
    document and carries on with the rest.
    """

    document_id: str
    chunks: List[DocumentChunk] = field(default_factory=list)
    error: Optional[ProcessingError] = None
    processing_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, document_id: str, chunks: List[DocumentChunk], processing_seconds: float = 0.0) -> "ProcessingResult":
        return cls(document_id=document_id, chunks=list(chunks), processing_seconds=processing_seconds)

    @classmethod
    def failure(
        cls,
        document_id: str,
        message: str,
        kind: IndexingErrorKind = IndexingErrorKind.PROCESSING,
        processing_seconds: float = 0.0,
    ) -> "ProcessingResult":
        return cls(document_id=document_id, error=ProcessingError(message, kind), processing_seconds=processing_seconds)
