"""Centralized logging for the indexing service.

Every module obtains its logger through ``get_logger`` so that configuration
happens once, based on the application settings and environment.

Usage:
    ```python
    from dataroom_rag.infrastructure.logging import get_logger

    logger = get_logger(__name__)
    logger.info("Worker started", extra={"dataroom_id": dataroom_id})
    ```

Worker runs bind their ``processing_id`` as the correlation id with
``correlation_context`` so that nested pipeline logs can be traced back to
the run that produced them.
"""

from .config import (
    configure_testing_logging,
    correlation_context,
    get_correlation_id,
    set_correlation_id,
    setup_logging_configuration,
)
from .factory import configure_logging, get_logger

__all__ = [
    "configure_logging",
    "configure_testing_logging",
    "correlation_context",
    "get_correlation_id",
    "get_logger",
    "set_correlation_id",
    "setup_logging_configuration",
]
