"""Infrastructure: configuration, database, logging, external clients and task execution."""

from .config import get_settings
from .database import create_tables, local_session

__all__ = [
    "create_tables",
    "get_settings",
    "local_session",
]
