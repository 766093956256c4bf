# reset_db.py
import asyncio
import logging

from shared.db import engine, Base
from shared.log import configure_logging

import services.user_management.models  # noqa: F401
import services.class_management.models  # noqa: F401
import services.assignment_management.models  # noqa: F401

logger = logging.getLogger(__name__)


async def reset_db():
    async with engine.begin() as conn:
        logger.warning("Dropping all tables...")
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
        logger.info("Tables recreated.")
    await engine.dispose()

if __name__ == "__main__":
    configure_logging()
    asyncio.run(reset_db())
