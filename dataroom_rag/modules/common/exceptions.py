"""Domain exception classes for business logic errors."""

from enum import Enum
from typing import Any, Dict, Optional


class DomainError(Exception):
    """Base class for all domain-specific errors."""

    pass


class ResourceNotFoundError(DomainError):
    """Raised when a requested resource cannot be found."""

    pass


class ValidationError(DomainError):
    """Raised when input validation fails.

    Attributes:
        field: Name of the offending input, when known.
        operation: Operation that rejected the input.
    """

    def __init__(self, message: str, field: Optional[str] = None, operation: Optional[str] = None):
        super().__init__(message)
        self.field = field
        self.operation = operation


class DataroomNotFoundError(ResourceNotFoundError):
    """Raised when a dataroom cannot be found."""

    pass


class IndexingErrorKind(str, Enum):
    """Failure categories of the indexing pipeline."""

    VALIDATION = "validation"
    EXTERNAL_SERVICE = "external_service"
    PROCESSING = "processing"
    EMBEDDING = "embedding"
    VECTOR_STORE = "vector_store"
    DATABASE = "database"
    TIMEOUT = "timeout"


_RETRYABLE_KINDS = frozenset(
    {
        IndexingErrorKind.EXTERNAL_SERVICE,
        IndexingErrorKind.EMBEDDING,
        IndexingErrorKind.VECTOR_STORE,
        IndexingErrorKind.DATABASE,
        IndexingErrorKind.TIMEOUT,
    }
)


class IndexingError(DomainError):
    """Error raised across the trigger, queue and worker boundary.

    Carries the failure kind and the operation context (operation name and
    identifiers) so that a log line or API response can be traced back to the
    call that failed.

    Attributes:
        kind: Failure category.
        context: Operation name and identifiers.
        retryable: Whether retrying the whole operation can help.
    """

    def __init__(
        self,
        kind: IndexingErrorKind,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        retryable: Optional[bool] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.context = dict(context or {})
        self.retryable = kind in _RETRYABLE_KINDS if retryable is None else retryable

    @classmethod
    def wrap(cls, error: Exception, kind: IndexingErrorKind, operation: str, **identifiers: Any) -> "IndexingError":
        """Wrap ``error`` with the operation name and identifiers.

        An ``IndexingError`` is returned unchanged apart from missing context
        keys being filled in, so wrapping at several layers doesn't nest.
        """
        if isinstance(error, IndexingError):
            error.context.setdefault("operation", operation)
            for key, value in identifiers.items():
                error.context.setdefault(key, value)
            return error
        context = {"operation": operation, **identifiers}
        return cls(kind, f"{operation} failed: {error}", context)

    def __str__(self) -> str:
        return self.args[0] if self.args else self.kind.value
