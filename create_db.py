# create_db.py
import asyncio
import logging

from shared.db import engine, Base
from shared.log import configure_logging

# Import all models here so they are registered with SQLAlchemy's metadata
import services.user_management.models  # noqa: F401
import services.class_management.models  # noqa: F401
import services.assignment_management.models  # noqa: F401

logger = logging.getLogger(__name__)


async def init_models():
    async with engine.begin() as conn:
        logger.info("Creating tables...")
        await conn.run_sync(Base.metadata.create_all)
        logger.info("Tables created.")
    await engine.dispose()

if __name__ == "__main__":
    configure_logging()
    asyncio.run(init_models())
