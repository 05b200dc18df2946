"""Script to create the dataroom indexing tables from SQLAlchemy models."""

import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from dataroom_rag.infrastructure.database.session import create_tables  # noqa: E402
from dataroom_rag.infrastructure.logging import get_logger  # noqa: E402
from dataroom_rag.modules.dataroom import models as dataroom_models  # noqa: E402, F401
from dataroom_rag.modules.document import models as document_models  # noqa: E402, F401

logger = get_logger(__name__)


async def main() -> None:
    """Create database tables."""
    logger.info("Creating database tables...")

    try:
        await create_tables()
        logger.info("Database tables created successfully")
    except Exception as e:
        logger.error(f"Error creating database tables: {str(e)}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
