"""Common constants used across the application."""

from typing import Callable, Dict, Type

from fastapi import HTTPException, status

from .exceptions import (
    DomainError,
    IndexingError,
    IndexingErrorKind,
    ResourceNotFoundError,
    ValidationError,
)


def _indexing_error_to_http(error: DomainError) -> HTTPException:
    if isinstance(error, IndexingError) and error.kind == IndexingErrorKind.VALIDATION:
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail={"message": str(error)})
    if isinstance(error, IndexingError) and error.retryable:
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(error))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error))


def _validation_error_to_http(error: DomainError) -> HTTPException:
    detail: Dict[str, str] = {"message": str(error)}
    if isinstance(error, ValidationError) and error.field:
        detail["field"] = error.field
    return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)


EXCEPTION_MAPPING: Dict[Type[DomainError], Callable[[DomainError], HTTPException]] = {
    ResourceNotFoundError: lambda error: HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error)),
    ValidationError: _validation_error_to_http,
    IndexingError: _indexing_error_to_http,
}

LOCK_KEY_PREFIX = "rag_indexing_lock:"
QUEUE_KEY_PREFIX = "rag_indexing_queue:"
COLLECTION_NAME_PREFIX = "dataroom_"

RAG_INDEXING_TASK_ID = "rag-indexing"
