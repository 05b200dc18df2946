import logging
import os
from enum import Enum
from typing import List

from pydantic_settings import BaseSettings
from starlette.config import Config

logger = logging.getLogger(__name__)

current_file_dir = os.path.dirname(os.path.realpath(__file__))
project_root = os.path.abspath(os.path.join(current_file_dir, "..", "..", ".."))

env_paths = [
    "/code/.env",
    os.path.join(project_root, ".env"),
    "/.env",
]

env_path = next((path for path in env_paths if os.path.isfile(path)), env_paths[0])
logger.info(f"Using environment file at: {env_path}")

config = Config(env_path)


class EnvironmentOption(str, Enum):
    """Environment options for the application."""

    PRODUCTION = "production"
    STAGING = "staging"
    DEVELOPMENT = "development"
    LOCAL = "local"


class EnvironmentSettings(BaseSettings):
    """Environment-related settings."""

    ENVIRONMENT: EnvironmentOption = config("ENVIRONMENT", default=EnvironmentOption.DEVELOPMENT, cast=EnvironmentOption)


class DatabaseSettings(BaseSettings):
    """Database-related settings.

    ``DATABASE_URI`` takes precedence over the composed Postgres URL so that
    tests and local runs can point the engine at ``sqlite+aiosqlite``.
    """

    DATABASE_URI: str = config("DATABASE_URI", default="")
    POSTGRES_USER: str = config("POSTGRES_USER", default="postgres")
    POSTGRES_PASSWORD: str = config("POSTGRES_PASSWORD", default="postgres")
    POSTGRES_SERVER: str = config("POSTGRES_SERVER", default="localhost")
    POSTGRES_PORT: int = config("POSTGRES_PORT", default=5432, cast=int)
    POSTGRES_DB: str = config("POSTGRES_DB", default="postgres")
    POSTGRES_ASYNC_PREFIX: str = config("POSTGRES_ASYNC_PREFIX", default="postgresql+asyncpg://")
    CREATE_TABLES_ON_STARTUP: bool = config("CREATE_TABLES_ON_STARTUP", default=True, cast=bool)

    POSTGRES_POOL_SIZE: int = config("POSTGRES_POOL_SIZE", default=20, cast=int)
    POSTGRES_MAX_OVERFLOW: int = config("POSTGRES_MAX_OVERFLOW", default=0, cast=int)

    @property
    def DATABASE_URL(self) -> str:
        """Get the full database URL."""
        if self.DATABASE_URI:
            return self.DATABASE_URI
        return (
            f"{self.POSTGRES_ASYNC_PREFIX}{self.POSTGRES_USER}:"
            f"{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:"
            f"{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )


class RedisSettings(BaseSettings):
    """Lock and queue store settings.

    ``memory://`` selects the in-process store, which only coordinates
    workers living in the same process.
    """

    REDIS_URL: str = config("REDIS_URL", default="redis://localhost:6379/0")
    REDIS_MAX_CONNECTIONS: int = config("REDIS_MAX_CONNECTIONS", default=20, cast=int)
    RAG_LOCK_TTL_SECONDS: int = config("RAG_LOCK_TTL_SECONDS", default=3600, cast=int)
    RAG_QUEUE_TTL_SECONDS: int = config("RAG_QUEUE_TTL_SECONDS", default=3600, cast=int)


class IndexingSettings(BaseSettings):
    """Backpressure and task-execution knobs for the indexing worker."""

    RAG_URL_SIGNING_CONCURRENCY: int = config("RAG_URL_SIGNING_CONCURRENCY", default=10, cast=int)
    RAG_DOCUMENT_CONCURRENCY: int = config("RAG_DOCUMENT_CONCURRENCY", default=3, cast=int)
    RAG_VECTOR_UPSERT_CONCURRENCY: int = config("RAG_VECTOR_UPSERT_CONCURRENCY", default=3, cast=int)
    RAG_STATUS_BATCH_SIZE: int = config("RAG_STATUS_BATCH_SIZE", default=50, cast=int)
    RAG_STATUS_BATCH_CONCURRENCY: int = config("RAG_STATUS_BATCH_CONCURRENCY", default=5, cast=int)

    RAG_TASK_MAX_DURATION_SECONDS: float = config("RAG_TASK_MAX_DURATION_SECONDS", default=3600.0, cast=float)
    RAG_TASK_MAX_ATTEMPTS: int = config("RAG_TASK_MAX_ATTEMPTS", default=3, cast=int)
    RAG_TASK_RETRY_MIN_SECONDS: float = config("RAG_TASK_RETRY_MIN_SECONDS", default=1.0, cast=float)
    RAG_TASK_RETRY_MAX_SECONDS: float = config("RAG_TASK_RETRY_MAX_SECONDS", default=30.0, cast=float)
    RAG_TASK_RETRY_FACTOR: float = config("RAG_TASK_RETRY_FACTOR", default=2.0, cast=float)


class StorageSettings(BaseSettings):
    """Settings for the presigned URL endpoint of the blob store."""

    STORAGE_API_URL: str = config("STORAGE_API_URL", default="http://localhost:3000")
    INTERNAL_API_KEY: str = config("INTERNAL_API_KEY", default="")
    STORAGE_REQUEST_TIMEOUT: float = config("STORAGE_REQUEST_TIMEOUT", default=30.0, cast=float)


class DoclingSettings(BaseSettings):
    """Document extraction service settings."""

    DOCLING_API_URL: str = config("DOCLING_API_URL", default="http://localhost:5001")
    DOCLING_REQUEST_TIMEOUT: float = config("DOCLING_REQUEST_TIMEOUT", default=300.0, cast=float)
    DOCLING_POLL_ATTEMPTS: int = config("DOCLING_POLL_ATTEMPTS", default=30, cast=int)
    DOCLING_POLL_INTERVAL_SECONDS: float = config("DOCLING_POLL_INTERVAL_SECONDS", default=5.0, cast=float)


class EmbeddingSettings(BaseSettings):
    """Embedding model and generator settings."""

    EMBEDDING_MODEL_NAME: str = config("EMBEDDING_MODEL_NAME", default="all-mpnet-base-v2")
    EMBEDDING_BATCH_SIZE: int = config("EMBEDDING_BATCH_SIZE", default=120, cast=int)
    EMBEDDING_CONCURRENCY: int = config("EMBEDDING_CONCURRENCY", default=5, cast=int)
    EMBEDDING_CACHE_SIZE: int = config("EMBEDDING_CACHE_SIZE", default=5000, cast=int)
    EMBEDDING_CACHE_TTL_SECONDS: float = config("EMBEDDING_CACHE_TTL_SECONDS", default=43200.0, cast=float)


class VectorStoreSettings(BaseSettings):
    """Vector store settings."""

    VECTOR_STORE_BACKEND: str = config("VECTOR_STORE_BACKEND", default="qdrant")
    QDRANT_URL: str = config("QDRANT_URL", default="http://localhost:6333")
    QDRANT_API_KEY: str = config("QDRANT_API_KEY", default="")
    QDRANT_UPSERT_BATCH_SIZE: int = config("QDRANT_UPSERT_BATCH_SIZE", default=100, cast=int)


class FeatureFlagSettings(BaseSettings):
    """Per-team feature switches."""

    FEATURE_RAG_INDEXING_ENABLED: bool = config("FEATURE_RAG_INDEXING_ENABLED", default=True, cast=bool)
    FEATURE_RAG_INDEXING_TEAMS: str = config("FEATURE_RAG_INDEXING_TEAMS", default="")

    @property
    def FEATURE_RAG_INDEXING_TEAMS_LIST(self) -> List[str]:
        """Get the team allow-list as a list; empty means every team."""
        return [x.strip() for x in self.FEATURE_RAG_INDEXING_TEAMS.split(",") if x.strip()]


class CORSSettings(BaseSettings):
    """CORS-related settings."""

    CORS_ENABLED: bool = config("CORS_ENABLED", default=True, cast=bool)
    CORS_ORIGINS: str = config("CORS_ORIGINS", default="*")
    CORS_ALLOW_CREDENTIALS: bool = config("CORS_ALLOW_CREDENTIALS", default=True, cast=bool)

    @property
    def CORS_ORIGINS_LIST(self) -> List[str]:
        """Get CORS origins as a list."""
        if not self.CORS_ORIGINS:
            return ["*"]
        return [x.strip() for x in self.CORS_ORIGINS.split(",") if x.strip()]


class CompressionSettings(BaseSettings):
    """Compression-related settings."""

    GZIP_ENABLED: bool = config("GZIP_ENABLED", default=True, cast=bool)
    GZIP_MINIMUM_SIZE: int = config("GZIP_MINIMUM_SIZE", default=1000, cast=int)


class APIDocSettings(BaseSettings):
    """API documentation settings."""

    ENABLE_DOCS_IN_PRODUCTION: bool = config("ENABLE_DOCS_IN_PRODUCTION", default=False, cast=bool)
    DOCS_URL: str = config("DOCS_URL", default="/docs")
    REDOC_URL: str = config("REDOC_URL", default="/redoc")
    OPENAPI_URL: str = config("OPENAPI_URL", default="/openapi.json")


class APISettings(BaseSettings):
    """API-related settings."""

    API_PREFIX: str = "/api"


class AppSettings(BaseSettings):
    """Application-related settings."""

    APP_NAME: str = "Dataroom Indexing API"
    APP_DESCRIPTION: str = "Queued RAG indexing for dataroom documents"
    DEBUG: bool = config("DEBUG", default=False, cast=bool)
    VERSION: str = "0.1.0"


class LoggingSettings(BaseSettings):
    """Centralized logging configuration settings."""

    LOG_LEVEL: str = config("LOG_LEVEL", default="INFO")
    LOG_FORMAT: str = config("LOG_FORMAT", default="structured")  # "detailed", "structured", "json"

    LOG_CONSOLE_ENABLED: bool = config("LOG_CONSOLE_ENABLED", default=True, cast=bool)
    LOG_FILE_ENABLED: bool = config("LOG_FILE_ENABLED", default=False, cast=bool)
    LOG_FILE_PATH: str = config("LOG_FILE_PATH", default="logs/dataroom-indexing.log")
    LOG_FILE_MAX_SIZE: int = config("LOG_FILE_MAX_SIZE", default=10485760, cast=int)
    LOG_FILE_BACKUP_COUNT: int = config("LOG_FILE_BACKUP_COUNT", default=5, cast=int)

    LOG_CORRELATION_ID: bool = config("LOG_CORRELATION_ID", default=True, cast=bool)
    LOG_DEVELOPMENT_VERBOSE: bool = config("LOG_DEVELOPMENT_VERBOSE", default=True, cast=bool)
    LOG_PRODUCTION_OPTIMIZE: bool = config("LOG_PRODUCTION_OPTIMIZE", default=True, cast=bool)

    @property
    def LOG_LEVEL_INT(self) -> int:
        """Convert string log level to integer."""
        level_map = {
            "DEBUG": logging.DEBUG,
            "INFO": logging.INFO,
            "WARNING": logging.WARNING,
            "ERROR": logging.ERROR,
            "CRITICAL": logging.CRITICAL,
        }
        return level_map.get(self.LOG_LEVEL.upper(), logging.INFO)


class Settings(
    EnvironmentSettings,
    DatabaseSettings,
    RedisSettings,
    IndexingSettings,
    StorageSettings,
    DoclingSettings,
    EmbeddingSettings,
    VectorStoreSettings,
    FeatureFlagSettings,
    CORSSettings,
    CompressionSettings,
    APIDocSettings,
    APISettings,
    AppSettings,
    LoggingSettings,
):
    """Main settings class that combines all setting categories."""

    pass


settings = Settings()


def get_settings() -> Settings:
    """Get application settings.

    Returns:
        The application settings.
    """
    return settings
